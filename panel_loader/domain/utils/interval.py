"""
Sampling interval and rate window calculation.

Derives the fixed query variables ``$__interval``, ``$__interval_ms`` and
``$__rate_interval`` from a time range and the pixel width of the panel:
one pixel is roughly one sample, and the raw per-pixel interval is snapped
onto a table of human-friendly buckets.
"""

import logging
import math
from typing import List, Tuple, Union

from ..models import IntervalResult, IntervalSpec, IntervalUnit

logger = logging.getLogger(__name__)

DEFAULT_SCRAPE_INTERVAL = 15

# (upper bound in ms, inclusive) -> bucket. The 24h bucket is reachable from
# two breakpoints; both are kept.
_INTERVAL_BREAKPOINTS: List[Tuple[float, IntervalSpec]] = [
    (10, IntervalSpec(value=1, unit=IntervalUnit.MILLISECONDS)),
    (15, IntervalSpec(value=10, unit=IntervalUnit.MILLISECONDS)),
    (35, IntervalSpec(value=20, unit=IntervalUnit.MILLISECONDS)),
    (75, IntervalSpec(value=50, unit=IntervalUnit.MILLISECONDS)),
    (150, IntervalSpec(value=100, unit=IntervalUnit.MILLISECONDS)),
    (350, IntervalSpec(value=200, unit=IntervalUnit.MILLISECONDS)),
    (750, IntervalSpec(value=500, unit=IntervalUnit.MILLISECONDS)),
    (1500, IntervalSpec(value=1, unit=IntervalUnit.SECONDS)),
    (3500, IntervalSpec(value=2, unit=IntervalUnit.SECONDS)),
    (7500, IntervalSpec(value=5, unit=IntervalUnit.SECONDS)),
    (12500, IntervalSpec(value=10, unit=IntervalUnit.SECONDS)),
    (17500, IntervalSpec(value=15, unit=IntervalUnit.SECONDS)),
    (25000, IntervalSpec(value=20, unit=IntervalUnit.SECONDS)),
    (45000, IntervalSpec(value=30, unit=IntervalUnit.SECONDS)),
    (90000, IntervalSpec(value=1, unit=IntervalUnit.MINUTES)),
    (210000, IntervalSpec(value=2, unit=IntervalUnit.MINUTES)),
    (450000, IntervalSpec(value=5, unit=IntervalUnit.MINUTES)),
    (750000, IntervalSpec(value=10, unit=IntervalUnit.MINUTES)),
    (1050000, IntervalSpec(value=15, unit=IntervalUnit.MINUTES)),
    (1500000, IntervalSpec(value=20, unit=IntervalUnit.MINUTES)),
    (2700000, IntervalSpec(value=30, unit=IntervalUnit.MINUTES)),
    (5400000, IntervalSpec(value=1, unit=IntervalUnit.HOURS)),
    (9000000, IntervalSpec(value=2, unit=IntervalUnit.HOURS)),
    (16200000, IntervalSpec(value=3, unit=IntervalUnit.HOURS)),
    (32400000, IntervalSpec(value=6, unit=IntervalUnit.HOURS)),
    (86400000, IntervalSpec(value=12, unit=IntervalUnit.HOURS)),
    (172800000, IntervalSpec(value=24, unit=IntervalUnit.HOURS)),
    (604800000, IntervalSpec(value=24, unit=IntervalUnit.HOURS)),
    (1814400000, IntervalSpec(value=1, unit=IntervalUnit.WEEKS)),
]

# Exclusive upper bound for the 30d bucket; anything above is 1y.
_MONTH_BUCKET_LIMIT_MS = 3628800000
_MONTH_BUCKET = IntervalSpec(value=30, unit=IntervalUnit.DAYS)
_YEAR_BUCKET = IntervalSpec(value=1, unit=IntervalUnit.YEARS)

# Year is the legacy 60*60*24*7*12, not a calendar year.
_UNIT_TO_SECONDS = {
    IntervalUnit.MILLISECONDS: 1 / 1000,
    IntervalUnit.SECONDS: 1,
    IntervalUnit.MINUTES: 60,
    IntervalUnit.HOURS: 60 * 60,
    IntervalUnit.DAYS: 60 * 60 * 24,
    IntervalUnit.WEEKS: 60 * 60 * 24 * 7,
    IntervalUnit.YEARS: 60 * 60 * 24 * 7 * 12,
}

_UNIT_TO_MS = {
    IntervalUnit.MILLISECONDS: 1,
    IntervalUnit.SECONDS: 1000,
    IntervalUnit.MINUTES: 60_000,
    IntervalUnit.HOURS: 3_600_000,
    IntervalUnit.DAYS: 86_400_000,
    IntervalUnit.WEEKS: 604_800_000,
    IntervalUnit.YEARS: 7_257_600_000,
}


def format_interval(raw_interval_ms: float) -> IntervalSpec:
    """
    Snap a raw per-sample interval onto the bucket table.

    Parameters
    ----------
    raw_interval_ms : float
        Unrounded interval in milliseconds.

    Returns
    -------
    IntervalSpec
        The first bucket whose upper bound is >= the raw interval.

    Examples
    --------
    >>> str(format_interval(1500))
    '1s'
    >>> str(format_interval(1501))
    '2s'
    >>> str(format_interval(5_000_000_000))
    '1y'
    """
    for upper_bound, bucket in _INTERVAL_BREAKPOINTS:
        if raw_interval_ms <= upper_bound:
            return bucket
    if raw_interval_ms < _MONTH_BUCKET_LIMIT_MS:
        return _MONTH_BUCKET
    return _YEAR_BUCKET


def to_seconds(value: float, unit: Union[IntervalUnit, str]) -> float:
    """
    Convert ``value`` expressed in ``unit`` to seconds.

    Unknown units return ``value`` unchanged.

    Examples
    --------
    >>> to_seconds(2, "m")
    120
    >>> to_seconds(1, "y")
    7257600
    """
    try:
        factor = _UNIT_TO_SECONDS[IntervalUnit(unit)]
    except ValueError:
        return value
    return value * factor


def interval_to_ms(interval: IntervalSpec) -> int:
    """Return the bucket length in whole milliseconds."""
    return interval.value * _UNIT_TO_MS[interval.unit]


def format_rate_interval(seconds: float) -> str:
    """
    Render a duration as a compact ``1d2h3m4s`` string.

    Only non-zero components are emitted, in day/hour/minute/second order.

    Examples
    --------
    >>> format_rate_interval(90)
    '1m30s'
    >>> format_rate_interval(0)
    ''
    >>> format_rate_interval(3661)
    '1h1m1s'
    """
    parts = []
    days = math.floor(seconds / 86400)
    if days > 0:
        parts.append(f"{days}d")
    hours = math.floor((seconds % 86400) / 3600)
    if hours > 0:
        parts.append(f"{hours}h")
    minutes = math.floor((seconds % 3600) / 60)
    if minutes > 0:
        parts.append(f"{minutes}m")
    remaining = seconds % 60
    if remaining > 0:
        parts.append(f"{format_number(remaining)}s")
    return "".join(parts)


def format_number(value: float) -> str:
    """Render integral floats without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def compute_interval(
    range_ms: float,
    viewport_pixels: float,
    scrape_interval: float = DEFAULT_SCRAPE_INTERVAL,
) -> IntervalResult:
    """
    Derive the display interval and rate window for a panel.

    Parameters
    ----------
    range_ms : float
        Length of the selected time range in milliseconds.
    viewport_pixels : float
        Width of the rendering surface; values below 1 are treated as 1.
    scrape_interval : float
        Metrics scrape interval in seconds (default 15).

    Returns
    -------
    IntervalResult
        Bucketed interval, rate window in seconds and interval in ms.

    Examples
    --------
    >>> result = compute_interval(3_600_000, 1000)
    >>> str(result.interval), result.rate_window_seconds, result.interval_ms
    ('1ms', 60.0, 1)
    """
    # Per-pixel span is scaled down by 1000 before bucketing: a one hour
    # range on 1000 px lands in the 1ms bucket.
    raw_interval_ms = range_ms / max(viewport_pixels, 1) / 1000
    interval = format_interval(raw_interval_ms)
    bucket_seconds = to_seconds(interval.value, interval.unit)
    rate_window = max(bucket_seconds + scrape_interval, 4 * scrape_interval)
    interval_ms = interval_to_ms(interval)
    logger.debug(
        "interval.computed",
        extra={
            "range_ms": range_ms,
            "viewport_pixels": viewport_pixels,
            "raw_interval_ms": raw_interval_ms,
            "interval": str(interval),
            "rate_window_seconds": rate_window,
        },
    )
    return IntervalResult(
        interval=interval,
        rate_window_seconds=rate_window,
        interval_ms=interval_ms,
    )
