"""Query rewriting helpers used to apply ad-hoc filters."""

from .promql import add_label_to_promql
from .sql import add_labels_to_sql

__all__ = ["add_label_to_promql", "add_labels_to_sql"]
