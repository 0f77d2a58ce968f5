"""Visibility-gated, dirty-tracked data loading for one dashboard panel.

:class:`PanelDataLoader` owns the published :class:`LoadState` of a panel
and decides, on every input change, whether a fetch is needed. All triggers
go through a single condition:

    visible AND dirty AND a non-empty sub-query AND no referenced variable
    still loading

A fetch attempt claims the dirty flag as soon as it starts, fans every
sub-query out to the query service concurrently, waits for all of them to
settle and then replaces the published state in one step. A failing
sub-query contributes ``None`` and an error message; its siblings are not
affected. Attempts are stamped with an increasing token and only the
latest one may publish, so a slow earlier attempt cannot overwrite newer
results.

Triggers schedule attempts as tasks on the running event loop and must be
called from within it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, Optional, Sequence, Set, Tuple

from ..adapters import QueryService, ViewportSize
from ..config.models import EnvSettings
from ..domain.models import (
    LoadMetadata,
    LoadState,
    PanelSchema,
    QueryMetadata,
    TimeRange,
    VariableBinding,
)
from ..domain.utils.timestamps import to_epoch_ms
from ..utils.correlation import attempt_scope
from ..utils.partial_results import gather_partial
from .changes import ChangeDetector, can_run
from .substitution import VariableSubstitutor

logger = logging.getLogger(__name__)

StateListener = Callable[[LoadState], None]


def truncate_error(message: str, max_length: int = 300) -> str:
    """Cut ``message`` to ``max_length`` characters, marking the cut with " ..."."""
    if len(message) > max_length:
        return message[:max_length] + " ..."
    return message


def _response_payload(exc: BaseException) -> Dict[str, Any]:
    """Return the decoded JSON error body carried by an HTTP error, if any."""
    response = getattr(exc, "response", None)
    if response is None:
        return {}
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def error_detail_for(
    exc: BaseException, query_type: str, max_length: int = 300
) -> str:
    """Build the user-facing message for a failed sub-query.

    Metrics errors read ``error`` from the response body; search errors
    read ``error_detail`` then ``message``. The exception text is the
    fallback in both cases.
    """
    payload = _response_payload(exc)
    fallback = str(exc) or type(exc).__name__
    if query_type == "promql":
        message = payload.get("error") or fallback
    else:
        message = payload.get("error_detail") or payload.get("message") or fallback
    return truncate_error(str(message), max_length)


class PanelDataLoader:  # pylint: disable=too-many-instance-attributes
    """Data loader for one panel.

    Parameters
    ----------
    service: QueryService
        Query execution service.
    panel: PanelSchema
        Panel definition (query type and sub-queries).
    time_range: Optional[TimeRange]
        Selected time window; may be missing or invalid until the UI is ready.
    variables: Sequence[VariableBinding]
        Variable-store snapshot at creation time; seeds change baselines.
    org_id: str
        Organization identifier passed to every service call.
    viewport: Optional[ViewportSize]
        Rendering surface used to size ``$__interval``.
    scrape_interval: Optional[float]
        Organization scrape interval in seconds; falls back to settings.
    settings: Optional[EnvSettings]
        Environment settings (defaults, error message length).
    on_change: Optional[StateListener]
        Called with a copy of the state after every publication.
    name: str
        Panel name used in attempt ids and log records.
    """

    def __init__(
        self,
        service: QueryService,
        panel: PanelSchema,
        time_range: Optional[TimeRange] = None,
        variables: Sequence[VariableBinding] = (),
        *,
        org_id: str = "default",
        viewport: Optional[ViewportSize] = None,
        scrape_interval: Optional[float] = None,
        settings: Optional[EnvSettings] = None,
        on_change: Optional[StateListener] = None,
        name: str = "panel",
    ) -> None:
        self._settings = settings or EnvSettings()
        self._service = service
        self._panel = panel
        self._time_range = time_range or TimeRange()
        self._variables: Tuple[VariableBinding, ...] = tuple(variables)
        self._org_id = org_id
        self._on_change = on_change
        self._name = name
        self._substitutor = VariableSubstitutor(
            viewport,
            scrape_interval
            if scrape_interval is not None
            else self._settings.scrape_interval,
            self._settings.default_viewport_width,
        )
        self._changes = ChangeDetector(self._variables)
        self._state = LoadState()
        self._dirty = True
        self._visible = False
        self._torn_down = False
        self._attempts = itertools.count(1)
        self._latest_attempt = 0
        self._tasks: Set["asyncio.Task[None]"] = set()

    # ---------------- Published output ----------------
    @property
    def state(self) -> LoadState:
        """Copy of the currently published state."""
        return self._state.model_copy(deep=True)

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def panel(self) -> PanelSchema:
        return self._panel

    @property
    def variables(self) -> Tuple[VariableBinding, ...]:
        return self._variables

    @property
    def change_detector(self) -> ChangeDetector:
        return self._changes

    def _publish(self, state: LoadState) -> None:
        self._state = state
        if self._on_change is not None:
            self._on_change(state.model_copy(deep=True))

    # ---------------- Triggers ----------------
    def update_panel(self, panel: PanelSchema) -> bool:
        """Panel definition changed; returns True if a fetch was scheduled."""
        self._panel = panel
        self._dirty = True
        return self._evaluate("panel_changed")

    def update_time_range(self, time_range: TimeRange) -> bool:
        """Selected time range changed; returns True if a fetch was scheduled."""
        self._time_range = time_range
        self._dirty = True
        return self._evaluate("time_range_changed")

    def update_variables(self, variables: Sequence[VariableBinding]) -> bool:
        """Variable-store snapshot changed; returns True if a fetch was scheduled.

        The panel becomes dirty only when the change detector reports a
        relevant change. A panel that is still dirty because a dependency
        was loading fetches as soon as the dependency resolves.
        """
        self._variables = tuple(variables)
        if self._changes.variables_changed(self._variables, self._panel.queries):
            self._dirty = True
        return self._evaluate("variables_changed")

    def set_visible(self, visible: bool) -> bool:
        """Visibility changed; returns True if a fetch was scheduled."""
        self._visible = visible
        if not visible:
            return False
        return self._evaluate("became_visible")

    def teardown(self) -> None:
        """Stop reacting to triggers; in-flight attempts are not cancelled."""
        self._torn_down = True
        logger.debug("loader.teardown", extra={"panel": self._name})

    def should_fetch(self) -> bool:
        """The single fetch condition shared by every trigger."""
        return (
            not self._torn_down
            and self._visible
            and self._dirty
            and self._panel.has_runnable_query()
            and can_run(self._variables, self._panel.queries)
        )

    def _evaluate(self, trigger: str) -> bool:
        decision = self.should_fetch()
        logger.debug(
            "loader.trigger",
            extra={
                "panel": self._name,
                "trigger": trigger,
                "fetch": decision,
                "visible": self._visible,
                "dirty": self._dirty,
            },
        )
        if decision:
            self._schedule()
        return decision

    def _schedule(self) -> None:
        task = asyncio.get_running_loop().create_task(self.load_data())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait until every scheduled attempt has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ---------------- Fetching ----------------
    def _resolve_window(self) -> Optional[Tuple[int, int]]:
        start_ms = to_epoch_ms(self._time_range.start_time)
        end_ms = to_epoch_ms(self._time_range.end_time)
        if start_ms is None or end_ms is None:
            return None
        return start_ms, end_ms

    async def load_data(self) -> None:
        """Run one fetch attempt.

        May be called directly to force an attempt regardless of the dirty
        and visibility flags. Returns silently when a referenced variable is
        still loading or the time range is not ready; never raises for
        query service failures.
        """
        panel = self._panel
        variables = self._variables

        if not can_run(variables, panel.queries):
            logger.debug(
                "loader.fetch.waiting_for_variables", extra={"panel": self._name}
            )
            return

        self._dirty = False
        window = self._resolve_window()
        if window is None:
            logger.debug("loader.fetch.time_range_not_ready", extra={"panel": self._name})
            return
        start_ms, end_ms = window

        # An attempt only supersedes in-flight ones once it publishes loading.
        attempt = next(self._attempts)
        self._latest_attempt = attempt
        with attempt_scope(self._name, attempt):
            await self._run_attempt(attempt, panel, variables, start_ms, end_ms)

    async def _run_attempt(
        self,
        attempt: int,
        panel: PanelSchema,
        variables: Tuple[VariableBinding, ...],
        start_ms: int,
        end_ms: int,
    ) -> None:
        self._publish(self._state.model_copy(update={"loading": True}))
        logger.info(
            "loader.fetch.start",
            extra={
                "panel": self._name,
                "query_type": panel.query_type,
                "queries": len(panel.queries),
                "start_time": start_ms,
                "end_time": end_ms,
            },
        )

        page_type = panel.queries[0].fields.stream_type if panel.queries else None
        metadata = [
            self._substitutor.build_query(
                q.query, start_ms, end_ms, panel.query_type, variables
            )
            for q in panel.queries
        ]
        operations = {
            f"query-{index}": self._execute(panel.query_type, meta, page_type)
            for index, meta in enumerate(metadata)
        }
        outcome = await gather_partial(operations, "panel_query")

        if attempt != self._latest_attempt:
            logger.info(
                "loader.fetch.stale_discarded",
                extra={
                    "panel": self._name,
                    "attempt": attempt,
                    "latest": self._latest_attempt,
                },
            )
            return

        error_detail = ""
        if outcome.has_failures:
            for failure in outcome.failures:
                error_detail = error_detail_for(
                    failure.exception or RuntimeError(failure.error),
                    panel.query_type,
                    self._settings.error_detail_max_length,
                )
                logger.warning(
                    "loader.fetch.subquery_failed",
                    extra={
                        "panel": self._name,
                        "index": failure.index,
                        "error_type": failure.error_type,
                        "error_detail": error_detail,
                    },
                )
            if outcome.all_failed:
                logger.error(
                    "loader.fetch.all_failed",
                    extra={"panel": self._name, "queries": len(metadata)},
                )

        self._publish(
            LoadState(
                data=outcome.results,
                loading=False,
                error_detail=error_detail,
                metadata=LoadMetadata(queries=metadata),
            )
        )
        logger.info(
            "loader.fetch.complete",
            extra={
                "panel": self._name,
                "queries": len(metadata),
                "failures": len(outcome.failures),
            },
        )

    async def _execute(
        self, query_type: str, meta: QueryMetadata, page_type: Optional[str]
    ) -> Any:
        if query_type == "promql":
            response = await self._service.metrics_query_range(
                self._org_id, meta.query, meta.start_time, meta.end_time
            )
            return response.get("data")
        response = await self._service.search(
            self._org_id,
            {
                "sql": meta.query,
                "sql_mode": "full",
                "start_time": meta.start_time,
                "end_time": meta.end_time,
                "size": 0,
            },
            page_type,
        )
        return response.get("hits")
