"""Viewport visibility tracking for a panel.

Subscribes to a :class:`~panel_loader.adapters.VisibilitySignal` and feeds
its notifications into :meth:`PanelDataLoader.set_visible`. Becoming
visible while dirty is what starts a deferred fetch.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from ..adapters import VisibilitySignal
from ..config.models import EnvSettings
from .orchestrator import PanelDataLoader

logger = logging.getLogger(__name__)


def is_visible(entry: Any, threshold: float = 0.1) -> bool:
    """Interpret one intersection notification.

    Accepts a plain boolean, an object exposing ``is_intersecting`` (and
    optionally ``intersection_ratio``), or a sequence of such objects, in
    which case the first one is used.
    """
    if isinstance(entry, bool):
        return entry
    if isinstance(entry, Sequence) and not isinstance(entry, str):
        if not entry:
            return False
        entry = entry[0]
    intersecting = bool(getattr(entry, "is_intersecting", False))
    ratio = getattr(entry, "intersection_ratio", None)
    if ratio is None:
        return intersecting
    return intersecting and ratio >= threshold


class VisibilityTracker:
    """Keep a loader's visibility flag in sync with an intersection signal.

    Parameters
    ----------
    loader: PanelDataLoader
        Loader whose visibility is driven by the signal.
    signal: VisibilitySignal
        Intersection notification source for the panel's container.
    threshold: Optional[float]
        Fraction of the panel that must be in view; defaults to the
        ``visibility_threshold`` setting (0.1).
    root_margin: Optional[str]
        Margin applied around the viewport; defaults to the
        ``visibility_root_margin`` setting ("0px").
    settings: Optional[EnvSettings]
        Environment settings supplying the defaults.
    """

    def __init__(
        self,
        loader: PanelDataLoader,
        signal: VisibilitySignal,
        threshold: Optional[float] = None,
        root_margin: Optional[str] = None,
        settings: Optional[EnvSettings] = None,
    ) -> None:
        settings = settings or EnvSettings()
        self._loader = loader
        self._signal = signal
        self._threshold = (
            threshold if threshold is not None else settings.visibility_threshold
        )
        self._root_margin = (
            root_margin if root_margin is not None else settings.visibility_root_margin
        )
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._stopped = False

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None and not self._stopped

    def start(self) -> None:
        """Subscribe to the signal; calling it twice is a no-op."""
        if self._unsubscribe is not None or self._stopped:
            return
        self._unsubscribe = self._signal.observe(
            self._on_intersection,
            threshold=self._threshold,
            root_margin=self._root_margin,
        )
        logger.debug(
            "visibility.observe",
            extra={"threshold": self._threshold, "root_margin": self._root_margin},
        )

    def _on_intersection(self, entry: Any) -> None:
        if self._stopped:
            return
        visible = is_visible(entry, self._threshold)
        scheduled = self._loader.set_visible(visible)
        logger.debug(
            "visibility.changed",
            extra={"visible": visible, "fetch_scheduled": scheduled},
        )

    def stop(self) -> None:
        """Unsubscribe and tear the loader down."""
        if self._stopped:
            return
        self._stopped = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._loader.teardown()
        logger.debug("visibility.disconnect")
