"""
Tests for viewport visibility tracking.
"""

from types import SimpleNamespace

import pytest

from panel_loader.config.models import EnvSettings
from panel_loader.domain.models import PanelSchema, QueryDefinition, TimeRange
from panel_loader.loader.orchestrator import PanelDataLoader
from panel_loader.loader.visibility import VisibilityTracker, is_visible


class FakeSignal:
    """Visibility signal that lets the test fire intersection events."""

    def __init__(self):
        self.callback = None
        self.options = None
        self.unsubscribed = False

    def observe(self, callback, *, threshold, root_margin):
        self.callback = callback
        self.options = {"threshold": threshold, "root_margin": root_margin}

        def _unsubscribe():
            self.unsubscribed = True

        return _unsubscribe

    def fire(self, entry):
        self.callback(entry)


@pytest.fixture
def loader(fake_service):
    panel = PanelSchema(queries=[QueryDefinition(query="SELECT 1")])
    return PanelDataLoader(
        fake_service,
        panel,
        TimeRange(start_time="2024-01-01T00:00:00Z", end_time="2024-01-01T01:00:00Z"),
        settings=EnvSettings(),
    )


def test_is_visible_interpretations():
    assert is_visible(True)
    assert not is_visible(False)
    assert is_visible(SimpleNamespace(is_intersecting=True, intersection_ratio=0.5))
    assert not is_visible(SimpleNamespace(is_intersecting=True, intersection_ratio=0.05))
    assert not is_visible(SimpleNamespace(is_intersecting=False, intersection_ratio=1.0))
    assert is_visible(SimpleNamespace(is_intersecting=True))
    assert is_visible([SimpleNamespace(is_intersecting=True)])
    assert not is_visible([])


def test_start_subscribes_with_options(loader):
    signal = FakeSignal()
    tracker = VisibilityTracker(loader, signal, threshold=0.25, root_margin="10px")
    tracker.start()
    assert tracker.active
    assert signal.options == {"threshold": 0.25, "root_margin": "10px"}


@pytest.mark.asyncio
async def test_reveal_triggers_single_fetch(loader, fake_service):
    signal = FakeSignal()
    tracker = VisibilityTracker(loader, signal)
    tracker.start()

    signal.fire(SimpleNamespace(is_intersecting=True, intersection_ratio=1.0))
    await loader.wait_idle()
    assert loader.visible
    assert len(fake_service.calls) == 1

    signal.fire(False)
    signal.fire(True)
    await loader.wait_idle()
    assert len(fake_service.calls) == 1


@pytest.mark.asyncio
async def test_stop_unsubscribes_and_ignores_late_events(loader, fake_service):
    signal = FakeSignal()
    tracker = VisibilityTracker(loader, signal)
    tracker.start()
    tracker.stop()

    assert signal.unsubscribed
    assert not tracker.active
    signal.fire(True)
    await loader.wait_idle()
    assert not loader.visible
    assert fake_service.calls == []


def test_defaults_come_from_settings(loader):
    signal = FakeSignal()
    settings = EnvSettings(visibility_threshold=0.5, visibility_root_margin="20px")
    VisibilityTracker(loader, signal, settings=settings).start()
    assert signal.options == {"threshold": 0.5, "root_margin": "20px"}

    signal.fire(SimpleNamespace(is_intersecting=True, intersection_ratio=0.3))
    assert not loader.visible
