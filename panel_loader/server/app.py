"""One-shot panel evaluation shared by the HTTP surface and the CLI.

A :class:`PanelDataLoader` is built for the request, marked visible (the
panel starts dirty) and awaited until its attempt settles. The published
state is returned together with whether a fetch actually ran; a panel
without a runnable query or with a referenced variable still loading is
returned untouched.
"""

from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..adapters import QueryService
from ..config.models import EnvSettings
from ..domain.models import LoadState, PanelSchema, TimeRange, VariableBinding
from ..loader.orchestrator import PanelDataLoader

logger = logging.getLogger(__name__)


class PanelLoadRequest(BaseModel):
    """Inputs needed to evaluate one panel."""

    model_config = ConfigDict(populate_by_name=True)

    panel: PanelSchema
    time_range: TimeRange = Field(..., alias="timeRange")
    variables: List[VariableBinding] = Field(default_factory=list)
    width: Optional[float] = Field(None, gt=0, description="Viewport width (px)")
    org_id: Optional[str] = Field(None, alias="orgId")
    name: str = "panel"


class PanelLoadResponse(BaseModel):
    """Outcome of a one-shot evaluation."""

    fetched: bool
    state: LoadState


async def load_panel_once(
    service: QueryService,
    request: PanelLoadRequest,
    *,
    org_id: str = "default",
    scrape_interval: Optional[float] = None,
    settings: Optional[EnvSettings] = None,
) -> PanelLoadResponse:
    """Evaluate ``request`` against ``service`` and return the published state."""
    loader = PanelDataLoader(
        service,
        request.panel,
        request.time_range,
        request.variables,
        org_id=request.org_id or org_id,
        viewport=SimpleNamespace(width=request.width),
        scrape_interval=scrape_interval,
        settings=settings,
        name=request.name,
    )
    fetched = loader.set_visible(True)
    await loader.wait_idle()
    loader.teardown()
    logger.info(
        "panel.evaluate.done",
        extra={
            "panel": request.name,
            "fetched": fetched,
            "queries": len(request.panel.queries),
        },
    )
    return PanelLoadResponse(fetched=fetched, state=loader.state)
