"""Pause the trigger loop while a human is using the device.

- a user interaction pauses the loop and starts an idle checker; once no
  interaction happened for ``idle_timeout_ms`` (and no media or call holds it
  back) the loop resumes with the time that was left in its interval
- screen-off pauses without an idle checker; unlocking resumes right away
- interactions during an automated action (our own launch or gesture) are
  ignored for a short suppression window
"""
import asyncio

from loguru import logger

from ..platform.base import ActivityProbe
from .schedule import now_ms
from .trigger import TriggerLoop
from .types import ForegroundEvent

logger = logger.bind(module="scheduler.interaction")

DEFAULT_IDLE_TIMEOUT_MS = 5000
DEFAULT_IDLE_CHECK_MS = 1000


class InteractionGate:
    """Pauses and resumes a ``TriggerLoop`` around user activity."""

    def __init__(
        self,
        trigger: TriggerLoop,
        probe: ActivityProbe | None = None,
        idle_timeout_ms: int = DEFAULT_IDLE_TIMEOUT_MS,
        idle_check_ms: int = DEFAULT_IDLE_CHECK_MS,
    ):
        self.trigger = trigger
        self.probe = probe
        self.idle_timeout_ms = idle_timeout_ms
        self.idle_check_ms = idle_check_ms
        self._active = False
        # 0 means "paused by screen lock", not by a touch
        self._last_interaction_ms = 0
        self._suppressed_until_ms = 0
        self._idle_task: asyncio.Task | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    def activate(self) -> None:
        """Start gating (scheduler entered Running)."""
        self._active = True
        self._last_interaction_ms = 0

    def deactivate(self) -> None:
        """Stop gating (scheduler is stopping)."""
        self._active = False
        self._cancel_idle_checker()

    def suppress_for(self, duration_ms: int) -> None:
        """Ignore interactions for ``duration_ms`` (automated action running)."""
        self._suppressed_until_ms = max(self._suppressed_until_ms, now_ms() + duration_ms)

    # ============== Inputs ==============

    def on_interaction(self, event: ForegroundEvent) -> None:
        """User touched, clicked or scrolled."""
        if not self._active:
            return
        if now_ms() < self._suppressed_until_ms:
            logger.debug(f"Interaction during automated action ignored: {event.event_type.value}")
            return

        self._last_interaction_ms = now_ms()
        if not self.trigger.is_paused:
            logger.info("User interaction detected - pausing trigger loop")
            self.trigger.pause()
        self._start_idle_checker()

    def on_screen_off(self) -> None:
        """Display went off: pause until the user is back."""
        if not self._active or self.trigger.is_paused:
            return
        self._last_interaction_ms = 0
        self.trigger.pause()
        logger.info("Trigger loop paused by screen off")

    def on_user_present(self) -> None:
        """Device unlocked."""
        if not self._active or not self.trigger.is_paused:
            return

        if self._last_interaction_ms > 0:
            # Paused by touch: the idle checker applies the idle timeout
            self._start_idle_checker()
            return

        if self.probe is None:
            logger.info("Unlocked - resuming trigger loop")
            self._resume()
            return
        self._cancel_idle_checker()
        self._idle_task = asyncio.get_running_loop().create_task(self._resume_after_unlock())

    async def _resume_after_unlock(self) -> None:
        blocker = await self._blocker()
        if not self._active or not self.trigger.is_paused:
            return
        if blocker:
            logger.info(f"Unlocked but {blocker} - waiting for idle")
            self._last_interaction_ms = now_ms()
            self._idle_task = None
            self._start_idle_checker()
        else:
            logger.info("Unlocked - resuming trigger loop")
            self._resume()

    # ============== Idle Checker ==============

    async def _blocker(self) -> str | None:
        if self.probe is None:
            return None
        # Probes shell out to the host
        try:
            if await asyncio.to_thread(self.probe.is_media_playing):
                return "media is playing"
            if await asyncio.to_thread(self.probe.is_in_call):
                return "a call is active"
        except Exception as e:
            logger.error(f"Activity probe failed: {e}")
        return None

    async def _try_resume(self) -> bool:
        idle_ms = now_ms() - self._last_interaction_ms
        if idle_ms < self.idle_timeout_ms:
            return False
        blocker = await self._blocker()
        if blocker:
            logger.debug(f"Idle timeout met but {blocker} - not resuming")
            return False
        logger.info(f"User idle for {idle_ms}ms - resuming trigger loop")
        self._resume()
        return True

    def _resume(self) -> None:
        self._cancel_idle_checker()
        self.trigger.resume()

    def _start_idle_checker(self) -> None:
        if self._idle_task is not None and not self._idle_task.done():
            return
        self._idle_task = asyncio.get_running_loop().create_task(self._idle_loop())

    def _cancel_idle_checker(self) -> None:
        task = self._idle_task
        self._idle_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _idle_loop(self) -> None:
        try:
            while self._active and self.trigger.is_paused:
                await asyncio.sleep(self.idle_check_ms / 1000)
                if self._active and self.trigger.is_paused and await self._try_resume():
                    break
        except asyncio.CancelledError:
            pass
