"""Change detection for template variables.

Decides whether a new variable-store snapshot warrants re-running a panel.
Two independent checks are made, each against its own baseline:

- bound variables the panel's queries actually reference;
- the flattened list of complete ad-hoc filters.

A value only counts as unchanged when it equals the baseline value AND the
baseline value is non-empty, so a variable resolved from an empty value
always triggers a reload. Baselines are immutable tuples, replaced wholesale
when a change is confirmed and never merged.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ..domain.models import AdHocFilter, QueryDefinition, VariableBinding
from .substitution import bound_variables, collect_ad_hoc_filters, stringify_value

logger = logging.getLogger(__name__)


def dependent_variables(
    variables: Sequence[VariableBinding], queries: Sequence[QueryDefinition]
) -> List[VariableBinding]:
    """Return bound variables whose ``$name`` token occurs in any query."""
    return [
        v
        for v in bound_variables(variables)
        if any(f"${v.name}" in (q.query or "") for q in queries)
    ]


def can_run(
    variables: Sequence[VariableBinding], queries: Sequence[QueryDefinition]
) -> bool:
    """Dependency gate: no referenced bound variable is still loading.

    Ad-hoc filters apply globally and never hold a panel back.
    """
    return all(not v.is_loading for v in dependent_variables(variables, queries))


def _all_same(new: Iterable[Any], baseline: Sequence[Any]) -> bool:
    """Name-wise comparison against ``baseline``; empty old values never match."""
    for item in new:
        old = next((b for b in baseline if b.name == item.name), None)
        old_value = stringify_value(old.value) if old is not None else None
        if old_value is None or old_value == "":
            return False
        if stringify_value(item.value) != old_value:
            return False
    return True


class ChangeDetector:
    """Track the variable values a panel last ran with.

    Parameters
    ----------
    initial_variables: Sequence[VariableBinding]
        Snapshot present when the panel is created; it seeds both baselines.
    """

    def __init__(self, initial_variables: Sequence[VariableBinding] = ()) -> None:
        self._bound: Tuple[VariableBinding, ...] = tuple(
            v.model_copy(deep=True) for v in bound_variables(initial_variables)
        )
        self._ad_hoc: Tuple[AdHocFilter, ...] = tuple(
            f.model_copy(deep=True) for f in collect_ad_hoc_filters(initial_variables)
        )

    @property
    def last_bound_variables(self) -> Tuple[VariableBinding, ...]:
        return self._bound

    @property
    def last_ad_hoc_filters(self) -> Tuple[AdHocFilter, ...]:
        return self._ad_hoc

    def bound_variables_changed(
        self,
        variables: Sequence[VariableBinding],
        queries: Sequence[QueryDefinition],
    ) -> bool:
        """Check referenced bound variables; replace the baseline on change."""
        current = dependent_variables(variables, queries)
        if not current:
            return False
        if _all_same(current, self._bound):
            return False
        self._bound = tuple(v.model_copy(deep=True) for v in current)
        logger.debug(
            "changes.bound_variables",
            extra={"variables": [v.name for v in current]},
        )
        return True

    def ad_hoc_filters_changed(self, variables: Sequence[VariableBinding]) -> bool:
        """Check ad-hoc filters; replace the baseline on change."""
        current = collect_ad_hoc_filters(variables)
        if len(current) != len(self._ad_hoc):
            self._replace_ad_hoc(current)
            return True
        if not current:
            return False
        if _all_same(current, self._ad_hoc):
            return False
        self._replace_ad_hoc(current)
        return True

    def _replace_ad_hoc(self, current: List[AdHocFilter]) -> None:
        self._ad_hoc = tuple(f.model_copy(deep=True) for f in current)
        logger.debug("changes.ad_hoc_filters", extra={"filters": len(current)})

    def variables_changed(
        self,
        variables: Sequence[VariableBinding],
        queries: Optional[Sequence[QueryDefinition]],
    ) -> bool:
        """Evaluate both checks; either one changing triggers a reload."""
        if not queries:
            return False
        bound_changed = self.bound_variables_changed(variables, queries)
        ad_hoc_changed = self.ad_hoc_filters_changed(variables)
        return bound_changed or ad_hoc_changed
