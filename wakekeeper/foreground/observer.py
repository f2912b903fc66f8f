"""Foreground app tracking.

The observer is the single writer of ``ForegroundState``. Consumers receive
the observer instance at construction and only read through it.

Two sources, in order of trust:
- the inbound window-change event stream (authoritative once it has spoken)
- a recent-usage ranking, polled on demand when the stream never delivered
  anything; the polled answer is returned but never stored
"""
import inspect
from typing import Any, Callable

from loguru import logger

from ..platform.base import UsageStatsSource
from ..scheduler.types import (
    INTERACTION_EVENT_TYPES,
    ForegroundEvent,
    ForegroundEventType,
    ForegroundSource,
    ForegroundState,
)

logger = logger.bind(module="foreground.observer")

DEFAULT_USAGE_WINDOW_MS = 10 * 1000

InteractionListener = Callable[[ForegroundEvent], Any]


class ForegroundObserver:
    """Tracks which app is frontmost."""

    def __init__(
        self,
        usage_source: UsageStatsSource | None = None,
        usage_window_ms: int = DEFAULT_USAGE_WINDOW_MS,
    ):
        """
        Args:
            usage_source: Polling fallback, used only while no event arrived
            usage_window_ms: How far back the polling fallback looks
        """
        self.usage_source = usage_source
        self.usage_window_ms = usage_window_ms
        self._state = ForegroundState()
        self._interaction_listeners: list[InteractionListener] = []

    @property
    def state(self) -> ForegroundState:
        """Copy of the stored state."""
        return ForegroundState(
            current_app=self._state.current_app,
            source=self._state.source,
        )

    # ============== Event Stream ==============

    async def on_event(self, event: ForegroundEvent) -> None:
        """Consume one event from the window-change stream."""
        if event.event_type == ForegroundEventType.WINDOW_STATE_CHANGED:
            if event.package_id:
                self._state.current_app = event.package_id
                self._state.source = ForegroundSource.EVENT_STREAM
                logger.debug(f"Foreground app changed to: {event.package_id}")
            return

        if event.event_type in INTERACTION_EVENT_TYPES:
            for listener in list(self._interaction_listeners):
                try:
                    result = listener(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Interaction listener failed: {e}")

    def on_stream_closed(self) -> None:
        """The event stream went away; its last value is no longer live."""
        self._state = ForegroundState()
        logger.info("Foreground event stream closed")

    def subscribe_interactions(self, listener: InteractionListener) -> None:
        """Receive user-interaction events (clicks, scrolls, touches)."""
        self._interaction_listeners.append(listener)

    # ============== Queries ==============

    def current_foreground_app(self) -> str | None:
        """Frontmost app, from the event stream if it ever spoke, else polled."""
        if self._state.source == ForegroundSource.EVENT_STREAM:
            return self._state.current_app
        return self._poll()

    def is_in_foreground(self, app_id: str) -> bool:
        current = self.current_foreground_app()
        result = current == app_id
        logger.debug(f"Foreground check: current='{current}', target='{app_id}', match={result}")
        return result

    def _poll(self) -> str | None:
        if self.usage_source is None:
            return None
        try:
            records = self.usage_source.query_recent_usage(self.usage_window_ms)
        except Exception as e:
            logger.error(f"Error querying recent usage: {e}")
            return None
        if not records:
            return None
        recent = max(records, key=lambda r: r.last_used_at_ms)
        return recent.package_id
