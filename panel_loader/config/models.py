"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration. The JSON config file is parsed with `orjson` and validated by
Pydantic; environment settings come from `pydantic-settings` with the
``PANEL_LOADER_`` prefix and optional ``.env`` support.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import orjson
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseModel):
    """Configuration for the query execution service.

    Attributes
    ----------
    endpoint: str
        Base URL of the query service (e.g., "http://localhost:5080").
    api_key: Optional[str]
        Optional bearer token used to authenticate to the service.
    org_id: str
        Organization identifier used in every query path.
    timeout_seconds: int
        HTTP request timeout in seconds.
    """

    endpoint: str = Field(..., description="Query service base URL")
    api_key: Optional[str] = Field(None, description="Authentication token")
    org_id: str = Field("default", description="Organization identifier")
    timeout_seconds: int = Field(30, ge=1)


class OrganizationSettings(BaseModel):
    """Organization-level settings that affect query construction.

    Attributes
    ----------
    scrape_interval: Optional[int]
        Metrics scrape interval in seconds. ``None`` falls back to the
        environment default (15 seconds unless overridden).
    """

    scrape_interval: Optional[int] = Field(None, ge=1)


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    service: Optional[ServiceConfig]
        Connection settings for the query execution service.
    organization: OrganizationSettings
        Organization settings (scrape interval).
    """

    service: Optional[ServiceConfig] = None
    organization: OrganizationSettings = Field(default_factory=OrganizationSettings)

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        return AppConfig.model_validate(orjson.loads(path.read_bytes()))


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".
    scrape_interval: int
        Default metrics scrape interval in seconds used for the rate window.
    default_viewport_width: int
        Pixel width assumed when the rendering surface reports none.
    visibility_threshold: float
        Fraction of the panel that must be on screen to count as visible.
    visibility_root_margin: str
        Root margin passed to the visibility signal.
    error_detail_max_length: int
        Sub-query error messages longer than this are truncated.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="PANEL_LOADER_")

    log_level: str = Field("INFO")
    scrape_interval: int = Field(15, ge=1)
    default_viewport_width: int = Field(1000, ge=1)
    visibility_threshold: float = Field(0.1, ge=0.0, le=1.0)
    visibility_root_margin: str = Field("0px")
    error_detail_max_length: int = Field(300, ge=1)
