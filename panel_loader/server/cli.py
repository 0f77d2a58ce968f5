"""Command-line interface for evaluating a panel or serving the HTTP API.

This CLI loads application configuration, registers the query service and
evaluates one panel definition against it, printing the published load
state as JSON. With ``--http`` it serves the FastAPI application instead.

Usage
-----
    panel-loader --config config.json --panel panel.json \
        --start 2024-01-01T00:00:00Z --end 2024-01-01T01:00:00Z
    panel-loader --http --port 8080
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson

from ..adapters import get_service, log_service_status, reset_services
from ..config.models import AppConfig, EnvSettings
from ..domain.models import PanelSchema, TimeRange, VariableBinding
from ..observability import setup_logging
from .app import PanelLoadRequest, PanelLoadResponse, load_panel_once
from .http import DEFAULT_SERVICE, configure_services, create_app


def _time_arg(text: str) -> Any:
    """Accept epoch seconds/milliseconds as numbers, anything else as ISO8601."""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def _read_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def _build_request(args: argparse.Namespace) -> PanelLoadRequest:
    """Assemble the evaluation request from CLI arguments."""
    variables: List[Dict[str, Any]] = (
        _read_json(Path(args.variables)) if args.variables else []
    )
    return PanelLoadRequest(
        panel=PanelSchema.model_validate(_read_json(Path(args.panel))),
        time_range=TimeRange(start_time=args.start, end_time=args.end),
        variables=[VariableBinding.model_validate(v) for v in variables],
        width=args.width,
        name=Path(args.panel).stem,
    )


async def _run(config_path: Path, request: PanelLoadRequest) -> PanelLoadResponse:
    """Register the configured service, evaluate the panel, close the client."""
    cfg = AppConfig.load(config_path)
    if not configure_services(cfg):
        log_service_status()
        raise SystemExit("config has no 'service' section")
    log_service_status()
    service = get_service(DEFAULT_SERVICE)
    try:
        return await load_panel_once(
            service,
            request,
            org_id=cfg.service.org_id if cfg.service else "default",
            scrape_interval=cfg.organization.scrape_interval,
            settings=EnvSettings(),
        )
    finally:
        await service.aclose()  # type: ignore[attr-defined]
        reset_services()


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entrypoint for the panel loader.

    Provides two modes:
    - one-shot panel evaluation (default) using --config and --panel
    - HTTP mode with FastAPI when --http is specified
    """
    parser = argparse.ArgumentParser(description="Panel loader CLI")
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument("--panel", help="Path to JSON panel definition")
    parser.add_argument("--variables", help="Path to JSON list of variables")
    parser.add_argument(
        "--start", type=_time_arg, help="Range start (ISO8601 or epoch)"
    )
    parser.add_argument(
        "--end", type=_time_arg, help="Range end (ISO8601 or epoch)"
    )
    parser.add_argument(
        "--width", type=float, default=None, help="Viewport width in pixels"
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
        ],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    parser.add_argument(
        "--http",
        action="store_true",
        help="Run HTTP server (requires fastapi/uvicorn)",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="HTTP bind host (default 127.0.0.1)"
    )
    parser.add_argument("--port", type=int, default=8080, help="HTTP port")
    args = parser.parse_args(argv)

    # Determine effective log level
    env_level = os.environ.get("PANEL_LOADER_LOG_LEVEL", "INFO").upper()
    effective_level = args.log_level or ("DEBUG" if args.verbose > 0 else env_level)
    setup_logging(effective_level)

    if args.http:
        # Lazy import uvicorn only for HTTP mode
        import importlib

        uvicorn = importlib.import_module("uvicorn")
        if args.config:
            os.environ.setdefault("PANEL_LOADER_CONFIG", args.config)
        app = create_app()
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_level=effective_level.lower(),
        )
        return

    missing = [
        flag
        for flag, value in (
            ("--config", args.config),
            ("--panel", args.panel),
            ("--start", args.start),
            ("--end", args.end),
        )
        if value is None
    ]
    if missing:
        parser.error(f"{', '.join(missing)} required unless --http is used")

    result = asyncio.run(_run(Path(args.config), _build_request(args)))
    sys.stdout.write(result.model_dump_json(indent=2) + "\n")


if __name__ == "__main__":
    main()
