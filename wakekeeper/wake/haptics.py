"""Periodic haptic pulses while the display is off.

Uses manual one-shot pulses instead of a repeating waveform, because some
platforms throttle long repeating patterns.
"""
import asyncio

from loguru import logger

from ..platform.base import HapticCapability

logger = logger.bind(module="wake.haptics")

DEFAULT_PULSE_DURATION_MS = 400
DEFAULT_PULSE_PERIOD_MS = 1000


class HapticPulser:
    """Emits ``pulse_duration_ms`` pulses every ``pulse_period_ms``."""

    def __init__(
        self,
        haptics: HapticCapability,
        pulse_duration_ms: int = DEFAULT_PULSE_DURATION_MS,
        pulse_period_ms: int = DEFAULT_PULSE_PERIOD_MS,
    ):
        self.haptics = haptics
        self.pulse_duration_ms = pulse_duration_ms
        self.pulse_period_ms = pulse_period_ms
        self._task: asyncio.Task | None = None
        self.pulse_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._pulse_loop())
        logger.info("Haptic pulses started")

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            logger.info("Haptic pulses stopped")

    async def _pulse_loop(self) -> None:
        try:
            while True:
                try:
                    self.haptics.pulse(self.pulse_duration_ms)
                    self.pulse_count += 1
                except Exception as e:
                    logger.error(f"Haptic pulse error: {e}")
                await asyncio.sleep(self.pulse_period_ms / 1000)
        except asyncio.CancelledError:
            pass
