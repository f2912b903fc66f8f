"""Tests for the foreground observer."""
import pytest

from wakekeeper.foreground.observer import ForegroundObserver
from wakekeeper.scheduler.types import (
    ForegroundEvent,
    ForegroundEventType,
    ForegroundSource,
    UsageRecord,
)

from conftest import FakeUsage


def window(package_id):
    return ForegroundEvent(ForegroundEventType.WINDOW_STATE_CHANGED, package_id)


class TestForegroundObserver:
    """Tests for event stream vs polling."""

    @pytest.mark.asyncio
    async def test_event_stream_dominates_polling(self):
        usage = FakeUsage([UsageRecord("pkg.b", 10**13)])
        observer = ForegroundObserver(usage)

        await observer.on_event(window("pkg.a"))

        assert observer.current_foreground_app() == "pkg.a"
        assert usage.queries == 0
        assert observer.state.source == ForegroundSource.EVENT_STREAM

    def test_polling_fallback_picks_most_recent(self):
        usage = FakeUsage([
            UsageRecord("pkg.old", 1000),
            UsageRecord("pkg.new", 5000),
            UsageRecord("pkg.mid", 3000),
        ])
        observer = ForegroundObserver(usage)

        assert observer.current_foreground_app() == "pkg.new"

    def test_polled_value_not_stored(self):
        observer = ForegroundObserver(FakeUsage([UsageRecord("pkg.b", 1000)]))

        observer.current_foreground_app()

        assert observer.state.current_app is None
        assert observer.state.source == ForegroundSource.UNKNOWN

    def test_no_source_and_no_events(self):
        assert ForegroundObserver().current_foreground_app() is None

    def test_usage_errors_yield_none(self):
        observer = ForegroundObserver(FakeUsage(fail=True))

        assert observer.current_foreground_app() is None

    @pytest.mark.asyncio
    async def test_window_event_without_package_ignored(self):
        observer = ForegroundObserver(FakeUsage([UsageRecord("pkg.b", 1000)]))

        await observer.on_event(window(None))

        assert observer.state.source == ForegroundSource.UNKNOWN
        assert observer.current_foreground_app() == "pkg.b"

    @pytest.mark.asyncio
    async def test_stream_closed_falls_back_to_polling(self):
        observer = ForegroundObserver(FakeUsage([UsageRecord("pkg.b", 1000)]))
        await observer.on_event(window("pkg.a"))

        observer.on_stream_closed()

        assert observer.current_foreground_app() == "pkg.b"

    @pytest.mark.asyncio
    async def test_is_in_foreground(self):
        observer = ForegroundObserver()
        await observer.on_event(window("org.example.target"))

        assert observer.is_in_foreground("org.example.target")
        assert not observer.is_in_foreground("org.example.other")

    @pytest.mark.asyncio
    async def test_state_is_a_copy(self):
        observer = ForegroundObserver()
        await observer.on_event(window("pkg.a"))

        state = observer.state
        state.current_app = "tampered"

        assert observer.current_foreground_app() == "pkg.a"


class TestInteractionDispatch:
    """Tests for interaction listeners."""

    @pytest.mark.asyncio
    async def test_interactions_reach_listeners(self):
        observer = ForegroundObserver()
        seen = []

        async def async_listener(event):
            seen.append(("async", event.event_type))

        observer.subscribe_interactions(lambda e: seen.append(("sync", e.event_type)))
        observer.subscribe_interactions(async_listener)

        await observer.on_event(ForegroundEvent(ForegroundEventType.VIEW_CLICKED))

        assert seen == [
            ("sync", ForegroundEventType.VIEW_CLICKED),
            ("async", ForegroundEventType.VIEW_CLICKED),
        ]

    @pytest.mark.asyncio
    async def test_window_changes_not_dispatched(self):
        observer = ForegroundObserver()
        seen = []
        observer.subscribe_interactions(seen.append)

        await observer.on_event(window("pkg.a"))

        assert seen == []

    @pytest.mark.asyncio
    async def test_listener_error_does_not_stop_others(self):
        observer = ForegroundObserver()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        observer.subscribe_interactions(broken)
        observer.subscribe_interactions(seen.append)

        await observer.on_event(ForegroundEvent(ForegroundEventType.VIEW_SCROLLED))

        assert len(seen) == 1
