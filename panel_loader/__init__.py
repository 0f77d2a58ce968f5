"""
Panel loader Python package.

This package hosts the dashboard panel data-loading engine: interval
bucketing, template variable substitution, change detection and the
visibility-gated fetch orchestrator, plus the query service client and the
HTTP/CLI surfaces. See README.md for usage.
"""

from .__version__ import __version__

__all__ = ["__version__"]
