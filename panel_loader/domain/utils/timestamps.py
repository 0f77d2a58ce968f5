"""
Timestamp parsing and conversion utilities.

Provides utilities for turning the date-like values handed over by the
time-range provider (datetimes, ISO8601 strings, Unix seconds or
milliseconds) into epoch milliseconds. Unparseable input yields ``None`` so
callers can treat the range as "not ready" instead of failing.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

INVALID_DATE = "Invalid Date"

DateLike = Union[datetime, str, int, float]


def parse_timestamp(value: Optional[DateLike]) -> Optional[datetime]:
    """
    Parse a timestamp from various formats.

    Supports:
    - ``datetime`` instances (naive values are taken as UTC)
    - ISO8601 strings (with or without 'Z' suffix)
    - Unix timestamps in seconds (< 10000000000)
    - Unix timestamps in milliseconds (≥ 10000000000)

    Parameters
    ----------
    value : datetime, str, int, float, or None
        The timestamp to parse

    Returns
    -------
    datetime or None
        Parsed datetime in UTC, or None if parsing fails

    Examples
    --------
    >>> parse_timestamp("2025-10-15T12:00:00Z")
    datetime.datetime(2025, 10, 15, 12, 0, tzinfo=datetime.timezone.utc)
    >>> parse_timestamp(1697385600000)  # Unix milliseconds
    datetime.datetime(2023, 10, 15, 16, 0, tzinfo=datetime.timezone.utc)
    >>> parse_timestamp("Invalid Date") is None
    True
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    # bool is an int subclass; never a timestamp
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        return _parse_iso8601(value)

    if isinstance(value, (int, float)):
        return _parse_unix_timestamp(value)

    return None


def _parse_iso8601(value: str) -> Optional[datetime]:
    """
    Parse an ISO8601 timestamp string.

    Handles trailing 'Z' by converting to '+00:00'.
    """
    if not value or value == INVALID_DATE:
        return None

    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"

        dt = datetime.fromisoformat(value)

        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)

        return dt
    except (ValueError, TypeError):
        logger.warning(
            "timestamps.parse_iso8601_failed",
            extra={"value": value, "error": "invalid format"},
        )
        return None


def _parse_unix_timestamp(value: Union[int, float]) -> Optional[datetime]:
    """
    Parse a Unix timestamp (seconds or milliseconds since epoch).

    Auto-detects seconds vs milliseconds:
    - Values < 10000000000 are treated as seconds
    - Values ≥ 10000000000 are treated as milliseconds
    """
    try:
        if value >= 10000000000:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (ValueError, TypeError, OSError, OverflowError):
        logger.warning(
            "timestamps.parse_unix_failed",
            extra={"value": value, "error": "invalid timestamp"},
        )
        return None


def to_unix_timestamp(
    dt: Optional[datetime], milliseconds: bool = False
) -> Optional[int]:
    """
    Convert datetime to Unix timestamp.

    Parameters
    ----------
    dt : datetime or None
        The datetime to convert
    milliseconds : bool, default=False
        If True, return milliseconds; if False, return seconds

    Returns
    -------
    int or None
        Unix timestamp, or None if input is None

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> dt = datetime(2023, 10, 15, 12, 0, 0, tzinfo=timezone.utc)
    >>> to_unix_timestamp(dt)
    1697371200
    >>> to_unix_timestamp(dt, milliseconds=True)
    1697371200000
    """
    if dt is None:
        return None

    try:
        timestamp = dt.timestamp()
        if milliseconds:
            return int(round(timestamp * 1000))
        return int(timestamp)
    except (ValueError, AttributeError, OSError, OverflowError):
        logger.warning(
            "timestamps.to_unix_failed",
            extra={"dt": str(dt)},
        )
        return None


def to_epoch_ms(value: Optional[DateLike]) -> Optional[int]:
    """Convert a date-like value to epoch milliseconds, or ``None`` if invalid."""
    return to_unix_timestamp(parse_timestamp(value), milliseconds=True)
