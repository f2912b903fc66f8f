"""Trigger action for target T.

Decides at firing time, from the foreground observer:
- target already frontmost: perform a refresh gesture inside it
- otherwise: launch (or bring to front) the target

The foreground poll and the launch shell out to the host, so both run in a
worker thread.
"""
import asyncio
from typing import Callable

from loguru import logger

from ..foreground.observer import ForegroundObserver
from ..platform.base import AppLauncher, GestureDriver
from .errors import LaunchError

logger = logger.bind(module="scheduler.executor")

# Interactions are ignored this long after our own gesture / launch,
# until the target's scroll and loading events settle
GESTURE_SETTLE_MS = 1500
LAUNCH_SETTLE_MS = 2500

# Callback told how long to ignore interactions
SuppressCallback = Callable[[int], None]


class TargetAction:
    """Executes one trigger firing against target T.

    This is the bridge between the trigger loop and the platform.
    """

    def __init__(
        self,
        target_app_id: str,
        launcher: AppLauncher,
        observer: ForegroundObserver,
        gesture_driver: GestureDriver | None = None,
        on_automated_action: SuppressCallback | None = None,
    ):
        """Initialize action.

        Args:
            target_app_id: App to keep in front
            launcher: Implementation for launching the target
            observer: Shared foreground observer (read only)
            gesture_driver: Implementation for the in-app refresh gesture
            on_automated_action: Told how long our own action will produce input events
        """
        self.target_app_id = target_app_id
        self.launcher = launcher
        self.observer = observer
        self.gesture_driver = gesture_driver
        self.on_automated_action = on_automated_action

    async def __call__(self) -> str:
        return await self.execute()

    async def execute(self) -> str:
        """Run the action and return a short outcome label.

        Raises:
            LaunchError: if the target could not be launched
            RuntimeError: if the refresh gesture failed
        """
        if await asyncio.to_thread(self.observer.is_in_foreground, self.target_app_id):
            logger.info(f"{self.target_app_id} is in foreground - performing refresh gesture")
            return await self._refresh()

        logger.info(f"{self.target_app_id} not in foreground - launching")
        return await self._launch()

    async def _refresh(self) -> str:
        if self.gesture_driver is None:
            logger.warning("No gesture driver available - cannot perform refresh gesture")
            return "noop"

        self._suppress(GESTURE_SETTLE_MS)
        success = await self.gesture_driver.perform_refresh()
        if not success:
            raise RuntimeError("Refresh gesture failed")
        return "refreshed"

    async def _launch(self) -> str:
        self._suppress(LAUNCH_SETTLE_MS)
        try:
            await asyncio.to_thread(self.launcher.launch, self.target_app_id)
        except LaunchError:
            raise
        except Exception as e:
            raise LaunchError(f"Error launching {self.target_app_id}: {e}") from e
        return "launched"

    def _suppress(self, duration_ms: int) -> None:
        if self.on_automated_action is not None:
            self.on_automated_action(duration_ms)
