"""Platform capability interfaces.

The scheduler never talks to the host OS directly. Every primitive it needs
(alarms, wake-holds, overlays, haptics, foreground data, app launching) is
reached through one of these protocols, so adapters can be swapped per host
and replaced by fakes in tests.
"""
from typing import Any, Awaitable, Callable, Protocol

from ..scheduler.types import ForegroundEvent, UsageRecord


class AlarmTimer(Protocol):
    """Out-of-process one-shot alarm that survives process death."""

    def start(self, on_fire: Callable[[int | None], Any]) -> None:
        """Begin delivering fired alarms of this process to ``on_fire``.

        ``on_fire`` receives the interval the alarm was armed for.
        """
        ...

    def shutdown(self) -> None:
        """Stop delivering alarms in this process. Armed alarms stay armed."""
        ...

    def schedule_one_shot_wake(self, at_epoch_ms: int, interval_ms: int) -> str:
        """Arm an alarm and return its ticket id.

        Raises:
            WatchdogArmError: if the platform refused the alarm
        """
        ...

    def cancel(self, ticket_id: str) -> None:
        """Cancel an armed alarm. Unknown ids are ignored."""
        ...


class WakeCapability(Protocol):
    """Wake-hold and keep-display-on overlay primitives."""

    def acquire_wake(self, timeout_ms: int) -> Any:
        """Acquire a wake-hold that the platform reclaims after ``timeout_ms``.

        Raises:
            WakeAcquisitionError: if the platform refused the hold
        """
        ...

    def release(self, token: Any) -> None:
        ...

    def show_minimal_overlay(self) -> Any:
        """Show an always-on-top, minimal surface flagged keep-display-on.

        Raises:
            WakeAcquisitionError: if the platform refused the overlay
        """
        ...

    def hide_overlay(self, token: Any) -> None:
        ...


class HapticCapability(Protocol):
    """Vibration motor."""

    def pulse(self, duration_ms: int) -> None:
        ...


class UsageStatsSource(Protocol):
    """Pull-based recent-usage ranking, used when no event stream exists."""

    def query_recent_usage(self, window_ms: int) -> list[UsageRecord]:
        """Return packages used within ``window_ms``, any order."""
        ...


class AppLauncher(Protocol):
    """Launches target T."""

    def launch(self, app_id: str) -> None:
        """Bring ``app_id`` to the front, starting it if needed.

        Raises:
            LaunchError: if the app is missing or the launch was rejected
        """
        ...


class GestureDriver(Protocol):
    """Performs the refresh gesture inside an already frontmost app."""

    async def perform_refresh(self) -> bool:
        """Perform a pull-down refresh and return success status."""
        ...


class ActivityProbe(Protocol):
    """Optional checks that hold back an idle auto-resume."""

    def is_media_playing(self) -> bool:
        ...

    def is_in_call(self) -> bool:
        ...


# Callback type used by event sources to push foreground events
ForegroundEventHandler = Callable[[ForegroundEvent], Awaitable[None] | None]
