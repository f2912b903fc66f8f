"""Keeps the display awake while the scheduler runs.

Two independent mechanisms are held at the same time:

1. a long wake-hold with a generous timeout, so the platform reclaims it on
   its own if ``release`` is never reached after an abrupt termination;
2. a minimal always-on-top overlay flagged keep-display-on, because some
   platforms ignore the wake-hold alone once the screen has fully powered off.

A refused grant degrades the guarantee but never stops the scheduler.
"""
import itertools

from loguru import logger

from ..platform.base import WakeCapability
from ..scheduler.schedule import now_ms
from ..scheduler.types import WakeHandle
from .haptics import HapticPulser

logger = logger.bind(module="wake.enforcer")

# Leak protection only, not a functional timeout
DEFAULT_WAKE_TIMEOUT_MS = 10 * 60 * 60 * 1000


class WakeEnforcer:
    """Acquires and releases ``WakeHandle``s.

    Each handle is released exactly once; releasing ``None`` or an already
    released handle is a no-op.
    """

    def __init__(
        self,
        capability: WakeCapability,
        wake_timeout_ms: int = DEFAULT_WAKE_TIMEOUT_MS,
        pulser: HapticPulser | None = None,
    ):
        self.capability = capability
        self.wake_timeout_ms = wake_timeout_ms
        self.pulser = pulser
        self._ids = itertools.count(1)
        self._held: dict[int, WakeHandle] = {}

    @property
    def held_count(self) -> int:
        return len(self._held)

    def acquire(self, keep_display_on: bool = True) -> WakeHandle:
        """Acquire the wake-hold and, if asked, the keep-display-on overlay."""
        wake_token = None
        overlay_token = None

        try:
            wake_token = self.capability.acquire_wake(self.wake_timeout_ms)
            logger.debug(f"Wake-hold acquired ({self.wake_timeout_ms}ms timeout)")
        except Exception as e:
            logger.warning(f"Wake-hold refused, running without it: {e}")

        if keep_display_on:
            try:
                overlay_token = self.capability.show_minimal_overlay()
                logger.debug("Keep-display-on overlay shown")
            except Exception as e:
                logger.warning(f"Overlay refused, running without it: {e}")

        handle = WakeHandle(
            handle_id=next(self._ids),
            keep_display_on=keep_display_on,
            acquired_at_ms=now_ms(),
            wake_token=wake_token,
            overlay_token=overlay_token,
        )
        self._held[handle.handle_id] = handle
        if handle.degraded:
            logger.warning(f"Wake handle {handle.handle_id} is degraded")
        else:
            logger.info(f"Wake handle {handle.handle_id} acquired")
        return handle

    def release(self, handle: WakeHandle | None) -> None:
        """Release both mechanisms of ``handle``."""
        if handle is None or handle.released:
            return
        handle.released = True
        self._held.pop(handle.handle_id, None)

        if handle.overlay_token is not None:
            try:
                self.capability.hide_overlay(handle.overlay_token)
            except Exception as e:
                logger.error(f"Error hiding overlay: {e}")

        if handle.wake_token is not None:
            try:
                self.capability.release(handle.wake_token)
            except Exception as e:
                logger.error(f"Error releasing wake-hold: {e}")

        logger.info(f"Wake handle {handle.handle_id} released")

    # ============== Display State ==============

    def on_display_off(self, vibrate_on_idle: bool) -> None:
        """Display went off while held: start pulsing if configured."""
        if vibrate_on_idle and self.pulser is not None and self._held:
            self.pulser.start()

    def on_user_present(self) -> None:
        """User is back at the device."""
        self.stop_pulses()

    def stop_pulses(self) -> None:
        if self.pulser is not None:
            self.pulser.stop()
