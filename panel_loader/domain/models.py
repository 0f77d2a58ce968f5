"""Canonical panel data model used by the loader and its surfaces.

These Pydantic models describe the inputs a panel evaluation reads (panel
schema, time range, variable bindings) and the state it publishes (load
state with per-query substitution metadata). Input models accept both the
snake_case field names and the camelCase names used by dashboard JSON.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

AD_HOC_FILTERS = "ad-hoc-filters"


class IntervalUnit(str, Enum):
    """Units a discretized sampling interval can be expressed in."""

    MILLISECONDS = "ms"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"
    DAYS = "d"
    WEEKS = "w"
    YEARS = "y"


class IntervalSpec(BaseModel):
    """A "nice" sampling interval such as ``10s`` or ``24h``."""

    model_config = ConfigDict(frozen=True)

    value: int = Field(..., gt=0)
    unit: IntervalUnit

    def __str__(self) -> str:
        return f"{self.value}{self.unit.value}"


class IntervalResult(BaseModel):
    """Output of the interval calculator.

    Attributes
    ----------
    interval: IntervalSpec
        Bucketed display interval.
    rate_window_seconds: float
        Window to use for rate-style functions, in seconds.
    interval_ms: int
        The bucketed interval in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    interval: IntervalSpec
    rate_window_seconds: float
    interval_ms: int


class TimeRange(BaseModel):
    """Selected time window as supplied by the time-range provider.

    Values are date-like: ``datetime``, ISO8601 strings or epoch numbers.
    The UI may hand over ``"Invalid Date"``; such ranges are not ready.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    start_time: Optional[Union[datetime, int, float, str]] = Field(
        None, alias="startTime"
    )
    end_time: Optional[Union[datetime, int, float, str]] = Field(
        None, alias="endTime"
    )


class AdHocFilter(BaseModel):
    """One ad-hoc filter entry: ``name <operator> value``."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    operator: Optional[str] = None
    value: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.name and self.operator and self.value)


class VariableBinding(BaseModel):
    """A template variable as exposed by the variable store.

    Attributes
    ----------
    name: str
        Variable name, referenced in queries as ``$name``.
    value: Any
        Scalar value, or a list of ad-hoc filters for ``ad-hoc-filters``.
    type: str
        Variable kind; anything other than ``ad-hoc-filters`` is scalar.
    is_loading: bool
        True while the store is still resolving the value.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    value: Union[List[AdHocFilter], List[str], str, int, float, None] = None
    type: str = "query_values"
    is_loading: bool = Field(False, alias="isLoading")

    @property
    def is_ad_hoc(self) -> bool:
        return self.type == AD_HOC_FILTERS


class QueryFields(BaseModel):
    """Field selection attached to a sub-query; only ``stream_type`` is read."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    stream_type: Optional[str] = None


class QueryDefinition(BaseModel):
    """One sub-query of a panel."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    fields: QueryFields = Field(default_factory=QueryFields)


class PanelSchema(BaseModel):
    """Panel definition: the query language and the list of sub-queries."""

    model_config = ConfigDict(populate_by_name=True)

    query_type: str = Field("sql", alias="queryType")
    queries: List[QueryDefinition] = Field(default_factory=list)

    def has_runnable_query(self) -> bool:
        return any(q.query for q in self.queries)


class SubstitutionEntry(BaseModel):
    """One replacement applied to a raw query, kept for provenance."""

    type: Literal["fixed", "variable", "dynamicVariable"]
    name: str
    value: Any = None
    operator: Optional[str] = None


class QueryMetadata(BaseModel):
    """Per-sub-query record of what was actually sent to the service."""

    original_query: str
    query: str
    start_time: int
    end_time: int
    query_type: str
    variables: List[SubstitutionEntry] = Field(default_factory=list)


class LoadMetadata(BaseModel):
    """Metadata published alongside the results."""

    queries: List[QueryMetadata] = Field(default_factory=list)


class LoadState(BaseModel):
    """State published by a panel loader.

    Attributes
    ----------
    data: List[Any]
        One result per sub-query, ``None`` where the sub-query failed.
    loading: bool
        True while a fetch attempt is in flight.
    error_detail: str
        Truncated message of the last failing sub-query, or empty.
    metadata: LoadMetadata
        Substitution metadata for every sub-query of the last attempt.
    """

    data: List[Any] = Field(default_factory=list)
    loading: bool = False
    error_detail: str = ""
    metadata: LoadMetadata = Field(default_factory=LoadMetadata)
