"""HTTP server exposing panel evaluation via FastAPI.

Endpoints implement a thin HTTP transport over :func:`load_panel_once`.
The query service is configured from the JSON file named by
``PANEL_LOADER_CONFIG``; authentication is an optional bearer token taken
from ``PANEL_LOADER_HTTP_TOKEN``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..adapters import (
    get_available_service_names,
    get_service,
    log_service_status,
    register_service,
)
from ..adapters.http import HttpQueryService
from ..config.models import AppConfig, EnvSettings
from ..observability import setup_logging
from .app import PanelLoadRequest, PanelLoadResponse, load_panel_once

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "default"

__all__ = [
    "create_app",
    "configure_services",
    "_make_auth_dependency",
    "_register_health",
    "_register_panels",
]


class HealthResponse(BaseModel):
    """Simple health/readiness response model."""

    status: str


class ErrorResponse(BaseModel):
    """Structured JSON error response for HTTP endpoints.

    Fields
    ------
    detail: str
        Human-readable explanation of the error.
    error_type: str
        Machine-readable error classification.
    available_options: list[str] | None
        Optional list of valid options, e.g. the configured service names.
    """

    detail: str = Field(..., description="Human-readable error detail")
    error_type: str = Field(..., description="Machine-readable error type")
    available_options: List[str] | None = Field(
        default=None, description="Optional list of valid alternative options"
    )


def _get_expected_token() -> str | None:
    """Return expected bearer token from environment, or ``None`` if disabled.

    Environment variable: ``PANEL_LOADER_HTTP_TOKEN``.
    """
    token = os.environ.get("PANEL_LOADER_HTTP_TOKEN")
    return token if token else None


def _make_auth_dependency():
    """Return a dependency function that enforces optional bearer token."""

    def _auth_dependency(authorization: str | None = Header(default=None)) -> None:
        expected = _get_expected_token()
        if expected is None:
            return
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        token = authorization.split(" ", 1)[1]
        if token != expected:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

    return _auth_dependency


def configure_services(cfg: AppConfig) -> List[str]:
    """Register the query service described by ``cfg``; return its names."""
    if cfg.service is None:
        return []
    register_service(
        DEFAULT_SERVICE,
        HttpQueryService(
            cfg.service.endpoint,
            cfg.service.api_key,
            cfg.service.timeout_seconds,
        ),
    )
    return [DEFAULT_SERVICE]


def _register_health(app: FastAPI) -> None:
    """Register health and readiness endpoints."""

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Liveness probe",
    )
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get(
        "/ready",
        response_model=HealthResponse,
        summary="Readiness probe",
    )
    async def ready() -> HealthResponse:
        if not get_available_service_names():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ErrorResponse(
                    detail="No query service configured",
                    error_type="service_unavailable",
                ).model_dump(),
            )
        return HealthResponse(status="ready")

    _ = (health, ready)


def _register_panels(app: FastAPI, auth_dep: Any) -> None:
    """Register the panel evaluation endpoint."""

    @app.post(
        "/api/panels/load",
        response_model=PanelLoadResponse,
        summary="Evaluate a panel once and return its load state",
        dependencies=[Depends(auth_dep)],
    )
    async def load_panel(req: PanelLoadRequest) -> PanelLoadResponse:
        try:
            service = get_service(DEFAULT_SERVICE)
        except KeyError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ErrorResponse(
                    detail="No query service configured",
                    error_type="service_unavailable",
                    available_options=get_available_service_names(),
                ).model_dump(),
            ) from exc
        return await load_panel_once(
            service,
            req,
            org_id=app.state.org_id,
            scrape_interval=app.state.scrape_interval,
            settings=app.state.settings,
        )

    _ = load_panel


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = EnvSettings()
    # Respect prior logging configuration from CLI; otherwise use env setting
    if not logging.getLogger().hasHandlers():
        setup_logging(settings.log_level)

    cfg_env = os.environ.get("PANEL_LOADER_CONFIG")
    cfg_path = Path(cfg_env) if cfg_env else None
    cfg_found = cfg_path is not None and cfg_path.exists()
    cfg = AppConfig()
    config_error: str | None = None
    services_initialized: List[str] = []
    if cfg_found and cfg_path is not None:
        try:
            cfg = AppConfig.load(cfg_path)
            services_initialized = configure_services(cfg)
        except (OSError, ValueError, ValidationError) as exc:
            config_error = str(exc)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("http.startup")
        try:
            yield
        finally:
            logger.info("http.shutdown")
            for name in get_available_service_names():
                close = getattr(get_service(name), "aclose", None)
                if callable(close):
                    await close()

    app = FastAPI(title="Panel Loader", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.org_id = cfg.service.org_id if cfg.service else "default"
    app.state.scrape_interval = cfg.organization.scrape_interval

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        err = ErrorResponse(detail=str(exc), error_type="validation_error")
        return JSONResponse(status_code=400, content={"detail": err.model_dump()})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Any, exc: Any):  # noqa: D401
        detail = getattr(exc, "detail", "")
        if isinstance(detail, dict) and {"detail", "error_type"} <= detail.keys():
            payload: Dict[str, Any] = {"detail": detail}
        else:
            payload = {
                "detail": ErrorResponse(
                    detail=str(detail) or "HTTP error", error_type="http_error"
                ).model_dump()
            }
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        logger.error("http.unhandled_exception", exc_info=exc)
        err = ErrorResponse(
            detail="Internal error. See server logs.",
            error_type="internal_server_error",
        )
        return JSONResponse(status_code=500, content={"detail": err.model_dump()})

    _ = (
        validation_exception_handler,
        http_exception_handler,
        unhandled_exception_handler,
    )

    _register_health(app)
    _register_panels(app, _make_auth_dependency())

    logger.info(
        "http.startup.settings",
        extra={
            "log_level": settings.log_level,
            "http_auth": "enabled" if _get_expected_token() else "disabled",
            "config_path": str(cfg_path) if cfg_path else None,
            "config_found": cfg_found,
            "config_error": config_error,
            "services_initialized": services_initialized,
        },
    )
    if config_error:
        logger.warning(
            "http.startup.config_error",
            extra={"config_path": str(cfg_path), "error": config_error},
        )
    log_service_status()
    return app
