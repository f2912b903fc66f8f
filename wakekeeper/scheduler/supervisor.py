"""Single entry point for lifecycle signals.

Boot, app update, watchdog fire and explicit restart requests all mean the
same thing: re-derive the scheduler from the durable store. The signal kind
is kept for logging only.
"""
import asyncio
from concurrent.futures import Future

from loguru import logger

from .controller import SchedulerController
from .types import RestartSignal, SignalKind

logger = logger.bind(module="scheduler.supervisor")


class RestartSupervisor:
    """Maps every ``RestartSignal`` to ``SchedulerController.recover()``."""

    def __init__(self, controller: SchedulerController):
        self.controller = controller
        self._loop: asyncio.AbstractEventLoop | None = None
        self.signals_received = 0

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind to the event loop that owns the controller."""
        self._loop = loop

    async def on_signal(self, signal: RestartSignal) -> None:
        self.signals_received += 1
        logger.info(f"Lifecycle signal received: {signal.kind.value}")

        fallback = None
        if signal.kind == SignalKind.WATCHDOG_FIRED:
            fallback = signal.interval_ms
        await self.controller.recover(fallback_interval_ms=fallback)

    def deliver_threadsafe(self, signal: RestartSignal) -> Future | None:
        """Deliver a signal from another thread (e.g. an alarm worker)."""
        if self._loop is None or self._loop.is_closed():
            logger.warning(f"No event loop attached, dropping signal {signal.kind.value}")
            return None
        return asyncio.run_coroutine_threadsafe(self.on_signal(signal), self._loop)

    def on_watchdog_fired(self, interval_ms: int | None) -> Future | None:
        """Alarm timer callback."""
        return self.deliver_threadsafe(
            RestartSignal(kind=SignalKind.WATCHDOG_FIRED, interval_ms=interval_ms)
        )
