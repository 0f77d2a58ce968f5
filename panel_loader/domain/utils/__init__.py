"""
Shared utilities for panel query preparation.

Modules
-------
interval
    Interval bucketing for ``$__interval``, ``$__interval_ms`` and
    ``$__rate_interval`` from a time range and viewport width
timestamps
    Timestamp parsing and conversion to epoch milliseconds
"""

__all__ = []
