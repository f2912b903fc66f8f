"""Single cooperative timer loop that fires the trigger action.

The loop runs as one asyncio task. Every start/stop/pause bumps a generation
counter; a sleeping task that wakes up under a stale generation exits without
firing, so a ``stop()`` issued on the event loop before the next firing is
dispatched always wins.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable

from loguru import logger

from .schedule import now_ms, remaining_after_pause

logger = logger.bind(module="scheduler.trigger")

TriggerAction = Callable[[], Awaitable[Any] | Any]


class TriggerLoop:
    """Fires ``action`` immediately, then every ``interval_ms``.

    Action failures are logged and swallowed; a missed trigger never stops
    the loop. ``stop()`` does not interrupt an action that is already running.
    """

    def __init__(self):
        self._interval_ms: int | None = None
        self._action: TriggerAction | None = None
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._running = False
        self._paused = False
        self._firing = False
        self._cycle_started_at: float | None = None  # loop.time() of last firing
        self._elapsed_at_pause_ms = 0
        self._next_fire_at_ms: int | None = None
        self.fire_count = 0

    # ============== Properties ==============

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def interval_ms(self) -> int | None:
        return self._interval_ms

    @property
    def next_fire_at_ms(self) -> int | None:
        if not self._running or self._paused:
            return None
        return self._next_fire_at_ms

    # ============== Control ==============

    def start(self, interval_ms: int, action: TriggerAction) -> None:
        """Start (or restart) the loop. The first firing is immediate."""
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._cancel_pending()
        self._interval_ms = interval_ms
        self._action = action
        self._running = True
        self._paused = False
        self._elapsed_at_pause_ms = 0
        self._spawn(delay_ms=0)
        logger.info(f"Trigger loop started, interval {interval_ms}ms")

    def stop(self) -> None:
        """Stop the loop and drop any firing not yet dispatched."""
        if not self._running:
            return
        self._running = False
        self._paused = False
        self._next_fire_at_ms = None
        self._cancel_pending()
        logger.info("Trigger loop stopped")

    def reschedule(self, interval_ms: int) -> None:
        """Change the interval. The next firing is a full new interval away."""
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._interval_ms = interval_ms
        if not self._running:
            return
        if self._paused:
            # Resume will count from the start of a fresh interval
            self._elapsed_at_pause_ms = 0
            return
        self._cancel_pending()
        self._spawn(delay_ms=interval_ms)
        logger.info(f"Trigger loop rescheduled, next firing in {interval_ms}ms")

    def pause(self) -> None:
        """Hold the loop, remembering how far into the interval it was."""
        if not self._running or self._paused:
            return
        elapsed_ms = 0
        if self._cycle_started_at is not None:
            loop = asyncio.get_running_loop()
            elapsed_ms = int((loop.time() - self._cycle_started_at) * 1000)
        self._elapsed_at_pause_ms = elapsed_ms
        self._paused = True
        self._cancel_pending()
        logger.debug(f"Trigger loop paused {elapsed_ms}ms into the interval")

    def resume(self) -> None:
        """Continue with the time that was left when paused."""
        if not self._running or not self._paused or self._interval_ms is None:
            return
        remaining = remaining_after_pause(self._interval_ms, self._elapsed_at_pause_ms)
        self._paused = False
        self._cancel_pending()
        self._spawn(delay_ms=remaining)
        logger.debug(f"Trigger loop resumed, next firing in {remaining}ms")

    # ============== Internals ==============

    def _cancel_pending(self) -> None:
        self._generation += 1
        task = self._task
        self._task = None
        # An action already dispatched is left to finish; the stale
        # generation stops the task right after it.
        if task is not None and not task.done() and not self._firing:
            task.cancel()

    def _spawn(self, delay_ms: int) -> None:
        loop = asyncio.get_running_loop()
        generation = self._generation
        self._next_fire_at_ms = now_ms() + delay_ms
        if delay_ms > 0 and self._interval_ms is not None:
            # Keep pause bookkeeping relative to the upcoming firing
            elapsed_s = (self._interval_ms - delay_ms) / 1000
            self._cycle_started_at = loop.time() - elapsed_s
        self._task = loop.create_task(self._run(generation, delay_ms))

    async def _run(self, generation: int, delay_ms: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
            while generation == self._generation:
                interval_ms = self._interval_ms
                if interval_ms is None:
                    break
                self._cycle_started_at = loop.time()
                self._next_fire_at_ms = now_ms() + interval_ms
                await self._fire()
                if generation != self._generation:
                    break
                due = self._cycle_started_at + interval_ms / 1000
                await asyncio.sleep(max(0.0, due - loop.time()))
        except asyncio.CancelledError:
            logger.debug("Pending trigger firing cancelled")

    async def _fire(self) -> None:
        if self._action is None:
            return
        self._firing = True
        self.fire_count += 1
        try:
            result = self._action()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Trigger action failed: {e}")
        finally:
            self._firing = False
