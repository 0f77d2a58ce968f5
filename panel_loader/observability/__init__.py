"""Observability utilities: logging setup.

This module configures standard logging and integrates `structlog` for
structured logs emitted by the HTTP surface and CLI. Library modules log via
``logging.getLogger(__name__)`` with dotted event names and ``extra`` fields.
"""

from __future__ import annotations

import logging

import structlog

from ..utils.correlation import get_attempt_id


class AttemptIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Attach the current fetch attempt id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "attempt_id"):
            record.attempt_id = get_attempt_id()
        return True


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Parameters
    ----------
    level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".

    Behavior
    --------
    - Initializes Python's logging with the requested level.
    - Adds the attempt-id filter to the root handlers.
    - Configures structlog with a filtering bound logger at the same level.
    - Keeps httpx/httpcore request logging at WARNING unless DEBUG is asked.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format=("%(asctime)s %(levelname)s %(name)s [%(attempt_id)s] - %(message)s"),
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, AttemptIdFilter) for f in handler.filters):
            handler.addFilter(AttemptIdFilter())

    transport_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for logger_name in ("httpx", "httpcore"):
        logging.getLogger(logger_name).setLevel(transport_level)

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
    )
