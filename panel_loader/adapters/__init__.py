"""External collaborator interfaces and the query service registry."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Protocol

IntersectionCallback = Callable[[Any], None]


class QueryService(Protocol):
    """Protocol for query execution services.

    Implementations run a metrics range query or a log/SQL search for an
    organization and return the decoded response body. Failures are raised
    as exceptions (typically :class:`httpx.HTTPStatusError`); the panel
    loader converts them into per-query error messages.
    """

    async def metrics_query_range(
        self, org_id: str, query: str, start_time: int, end_time: int
    ) -> Dict[str, Any]:
        """Run a PromQL range query; the result series are under ``data``."""
        raise NotImplementedError

    async def search(
        self, org_id: str, query: Dict[str, Any], page_type: Optional[str] = None
    ) -> Dict[str, Any]:
        """Run a SQL search; the result rows are under ``hits``."""
        raise NotImplementedError


class ViewportSize(Protocol):  # pylint: disable=too-few-public-methods
    """Rendering surface size; ``width`` is ``None`` until it is laid out."""

    width: Optional[float]


class VisibilitySignal(Protocol):  # pylint: disable=too-few-public-methods
    """Source of viewport intersection notifications for one panel.

    ``observe`` registers ``callback`` and returns a function that removes
    the subscription. The callback receives either a boolean or an object
    exposing ``is_intersecting`` and ``intersection_ratio``.
    """

    def observe(
        self,
        callback: IntersectionCallback,
        *,
        threshold: float,
        root_margin: str,
    ) -> Callable[[], None]:
        raise NotImplementedError


_services: Dict[str, QueryService] = {}


def register_service(name: str, service: QueryService) -> None:
    """Register a query service instance under a logical ``name``."""
    _services[name] = service


def get_service(name: str) -> QueryService:
    """Retrieve a registered query service by ``name``."""
    return _services[name]


def get_available_service_names() -> list[str]:
    """Get list of registered query service names."""
    return list(_services.keys())


def log_service_status() -> None:
    """Log which query services are configured."""
    logger = logging.getLogger(__name__)

    if not _services:
        logger.warning(
            "No query service configured. Panels cannot be loaded.\n"
            "  - 💡 Set 'service.endpoint' in the JSON config passed with --config"
        )
    else:
        logger.info(
            "Query services configured: %s",
            ", ".join(
                f"'{name}' ({type(svc).__name__})" for name, svc in _services.items()
            ),
        )


def reset_services() -> None:
    """Test-only helper to clear registered services."""
    _services.clear()
