"""Template variable substitution for panel queries.

A raw panel query is turned into an executable one in three steps:

1. fixed variables derived from the time range and the panel width
   (``$__interval_ms``, ``$__interval``, ``$__rate_interval``);
2. bound (scalar) variables from the variable store, in declaration order;
3. ad-hoc filters, injected as PromQL label matchers or SQL predicates.

Steps 1 and 2 are literal substring replacement with no escaping. Every
replacement that actually happens is recorded in a ledger of
:class:`SubstitutionEntry` so the published metadata shows exactly how the
executed query was derived.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

from ..adapters import ViewportSize
from ..domain.models import (
    AdHocFilter,
    QueryMetadata,
    SubstitutionEntry,
    VariableBinding,
)
from ..domain.utils.interval import (
    DEFAULT_SCRAPE_INTERVAL,
    compute_interval,
    format_number,
    format_rate_interval,
)
from ..query import add_label_to_promql, add_labels_to_sql

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT_WIDTH = 1000


def collect_ad_hoc_filters(variables: Sequence[VariableBinding]) -> List[AdHocFilter]:
    """Flatten every ad-hoc binding and keep only complete filters."""
    filters: List[AdHocFilter] = []
    for variable in variables:
        if not variable.is_ad_hoc or not isinstance(variable.value, list):
            continue
        for item in variable.value:
            if isinstance(item, AdHocFilter) and item.is_complete:
                filters.append(item)
    return filters


def bound_variables(variables: Sequence[VariableBinding]) -> List[VariableBinding]:
    """Return the non-ad-hoc bindings in declaration order."""
    return [v for v in variables if not v.is_ad_hoc]


def stringify_value(value: Any) -> str:
    """Coerce a variable value to the text substituted into a query."""
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(stringify_value(v) for v in value)
    if isinstance(value, float):
        return format_number(value)
    return str(value)


class VariableSubstitutor:
    """Rewrite panel queries using fixed, bound and ad-hoc variables.

    Parameters
    ----------
    viewport: Optional[ViewportSize]
        Rendering surface whose ``width`` is the sampling denominator.
    scrape_interval: Optional[float]
        Organization scrape interval in seconds; 15 when unset.
    default_width: int
        Width used when the viewport is missing or reports no width.
    """

    def __init__(
        self,
        viewport: Optional[ViewportSize] = None,
        scrape_interval: Optional[float] = None,
        default_width: int = DEFAULT_VIEWPORT_WIDTH,
    ) -> None:
        self._viewport = viewport
        self._scrape_interval = (
            scrape_interval if scrape_interval is not None else DEFAULT_SCRAPE_INTERVAL
        )
        self._default_width = default_width

    def _viewport_width(self) -> float:
        width = getattr(self._viewport, "width", None)
        return width if width is not None else self._default_width

    def fixed_variables(self, start_ms: int, end_ms: int) -> List[Tuple[str, str]]:
        """Return ``(name, value)`` pairs for the time-derived variables.

        ``__interval_ms`` comes before ``__interval`` so the shorter name
        never matches inside the longer token.
        """
        result = compute_interval(
            end_ms - start_ms, self._viewport_width(), self._scrape_interval
        )
        return [
            ("__interval_ms", f"{result.interval_ms}ms"),
            ("__interval", str(result.interval)),
            ("__rate_interval", format_rate_interval(result.rate_window_seconds)),
        ]

    def substitute_time_and_bound_variables(
        self,
        query: str,
        start_ms: int,
        end_ms: int,
        query_type: str,
        variables: Sequence[VariableBinding] = (),
    ) -> Tuple[str, List[SubstitutionEntry]]:
        """Replace ``$name`` tokens for fixed and bound variables.

        Tokens that do not occur are skipped without a ledger entry.
        """
        _ = query_type
        ledger: List[SubstitutionEntry] = []

        for name, value in self.fixed_variables(start_ms, end_ms):
            token = f"${name}"
            if token in query:
                ledger.append(SubstitutionEntry(type="fixed", name=name, value=value))
                query = query.replace(token, value)

        for variable in bound_variables(variables):
            token = f"${variable.name}"
            if token in query:
                ledger.append(
                    SubstitutionEntry(
                        type="variable", name=variable.name, value=variable.value
                    )
                )
                query = query.replace(token, stringify_value(variable.value))

        return query, ledger

    def apply_ad_hoc_filters(
        self,
        query: str,
        query_type: str,
        variables: Sequence[VariableBinding] = (),
    ) -> Tuple[str, List[SubstitutionEntry]]:
        """Inject every complete ad-hoc filter into ``query``.

        Every considered filter is recorded as a ``dynamicVariable`` entry,
        whether or not the query text changed. Query types other than
        ``promql`` and ``sql`` are returned untouched.
        """
        ledger: List[SubstitutionEntry] = []
        filters = collect_ad_hoc_filters(variables)
        if not filters:
            return query, ledger

        if query_type == "promql":
            for flt in filters:
                ledger.append(_dynamic_entry(flt))
                query = add_label_to_promql(
                    query, flt.name, flt.value, flt.operator  # type: ignore[arg-type]
                )
        elif query_type == "sql":
            ledger.extend(_dynamic_entry(flt) for flt in filters)
            query = add_labels_to_sql(query, filters)
        else:
            logger.debug(
                "substitution.ad_hoc.unsupported_query_type",
                extra={"query_type": query_type, "filters": len(filters)},
            )

        return query, ledger

    def build_query(
        self,
        query: str,
        start_ms: int,
        end_ms: int,
        query_type: str,
        variables: Sequence[VariableBinding] = (),
    ) -> QueryMetadata:
        """Run the full pipeline and return the executable query with metadata."""
        substituted, fixed_ledger = self.substitute_time_and_bound_variables(
            query, start_ms, end_ms, query_type, variables
        )
        final, ad_hoc_ledger = self.apply_ad_hoc_filters(
            substituted, query_type, variables
        )
        return QueryMetadata(
            original_query=query,
            query=final,
            start_time=start_ms,
            end_time=end_ms,
            query_type=query_type,
            variables=[*fixed_ledger, *ad_hoc_ledger],
        )


def _dynamic_entry(flt: AdHocFilter) -> SubstitutionEntry:
    return SubstitutionEntry(
        type="dynamicVariable",
        name=flt.name or "",
        value=flt.value,
        operator=flt.operator,
    )
