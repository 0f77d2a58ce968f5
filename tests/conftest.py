"""Pytest configuration for test suite.

Ensures the project root is on ``sys.path`` so imports like
``import panel_loader`` resolve correctly regardless of the working directory
pytest chooses.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _ensure_project_root_on_syspath() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        # Prepend to prefer local sources over site-packages
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_syspath()


@pytest.fixture(autouse=True)
def reset_service_registry():
    """Reset the query service registry before each test."""
    from panel_loader.adapters import reset_services

    reset_services()
    yield
    reset_services()


class FakeQueryService:
    """In-memory query service recording every call.

    ``responses`` maps a query text to either a response body or an
    exception instance to raise. Unknown queries answer with an empty body.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses: Dict[str, Any] = responses or {}
        self.calls: List[Tuple[str, Any]] = []

    def _answer(self, key: str) -> Dict[str, Any]:
        outcome = self.responses.get(key, {})
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def metrics_query_range(
        self, org_id: str, query: str, start_time: int, end_time: int
    ) -> Dict[str, Any]:
        self.calls.append(("metrics", (org_id, query, start_time, end_time)))
        return self._answer(query)

    async def search(
        self, org_id: str, query: Dict[str, Any], page_type: Optional[str] = None
    ) -> Dict[str, Any]:
        self.calls.append(("search", (org_id, query, page_type)))
        return self._answer(query["sql"])


@pytest.fixture
def fake_service() -> FakeQueryService:
    return FakeQueryService()
