"""Linux desktop adapters built on standard command line tools.

- wake-hold: ``systemd-inhibit`` holding an idle/sleep block lock around a
  ``sleep`` of the hold timeout, so the lock dies with its timeout even if
  we never release it
- keep-display-on surface: X11 screensaver and DPMS switched off via ``xset``
- launcher: ``gtk-launch`` on the desktop entry id
- refresh gesture: ``xdotool key F5``
- foreground: ``xprop -spy`` on ``_NET_ACTIVE_WINDOW`` as the event stream,
  ``xdotool getactivewindow`` as the polled fallback
- activity probe: ``playerctl status``
"""
import asyncio
import re
import shutil
import subprocess

from loguru import logger

from ..scheduler.errors import LaunchError, WakeAcquisitionError
from ..scheduler.schedule import now_ms
from ..scheduler.types import ForegroundEvent, ForegroundEventType, UsageRecord
from .base import ForegroundEventHandler

logger = logger.bind(module="platform.linux")

_COMMAND_TIMEOUT_S = 10
_ACTIVE_WINDOW_RE = re.compile(r"window id # (0x[0-9a-fA-F]+)")


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, capture_output=True, text=True, timeout=_COMMAND_TIMEOUT_S)


class InhibitWakeCapability:
    """Wake-hold via ``systemd-inhibit``, display-on via ``xset``."""

    def acquire_wake(self, timeout_ms: int) -> subprocess.Popen:
        if shutil.which("systemd-inhibit") is None:
            raise WakeAcquisitionError("systemd-inhibit not available")
        try:
            return subprocess.Popen(
                [
                    "systemd-inhibit",
                    "--what=idle:sleep",
                    "--who=wakekeeper",
                    "--why=Keeping the display awake",
                    "--mode=block",
                    "sleep", str(max(1, timeout_ms // 1000)),
                ],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise WakeAcquisitionError(f"systemd-inhibit failed: {e}") from e

    def release(self, token: subprocess.Popen) -> None:
        if token.poll() is None:
            token.terminate()
            try:
                token.wait(timeout=5)
            except subprocess.TimeoutExpired:
                token.kill()

    def show_minimal_overlay(self) -> str:
        if shutil.which("xset") is None:
            raise WakeAcquisitionError("xset not available")
        try:
            result = _run(["xset", "s", "off", "-dpms"])
        except (OSError, subprocess.TimeoutExpired) as e:
            raise WakeAcquisitionError(f"xset failed: {e}") from e
        if result.returncode != 0:
            raise WakeAcquisitionError(f"xset refused: {result.stderr.strip()}")
        return "xset"

    def hide_overlay(self, token: str) -> None:
        _run(["xset", "s", "on", "+dpms"])


class DesktopLauncher:
    """Launch a desktop entry with ``gtk-launch``."""

    def launch(self, app_id: str) -> None:
        try:
            result = _run(["gtk-launch", app_id])
        except (OSError, subprocess.TimeoutExpired) as e:
            raise LaunchError(f"gtk-launch failed: {e}") from e
        if result.returncode != 0:
            raise LaunchError(f"{app_id} could not be launched: {result.stderr.strip()}")


class XdotoolGestureDriver:
    """Refresh the focused window with F5."""

    async def perform_refresh(self) -> bool:
        try:
            proc = await asyncio.create_subprocess_exec(
                "xdotool", "key", "F5",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return await proc.wait() == 0
        except OSError as e:
            logger.error(f"xdotool failed: {e}")
            return False


class ActiveWindowUsageSource:
    """Polled fallback: the class name of the active window."""

    def query_recent_usage(self, window_ms: int) -> list[UsageRecord]:
        name = active_window_class()
        if not name:
            return []
        return [UsageRecord(package_id=name, last_used_at_ms=now_ms())]


class PlayerctlActivityProbe:
    """Media playback via MPRIS; calls are not detectable here."""

    def is_media_playing(self) -> bool:
        try:
            result = _run(["playerctl", "status"])
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.stdout.strip() == "Playing"

    def is_in_call(self) -> bool:
        return False


def active_window_class(window_id: str | None = None) -> str | None:
    cmd = ["xdotool", "getactivewindow", "getwindowclassname"]
    if window_id:
        cmd = ["xdotool", "getwindowclassname", window_id]
    try:
        result = _run(cmd)
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


async def watch_active_window(handler: ForegroundEventHandler) -> None:
    """Feed ``_NET_ACTIVE_WINDOW`` changes to ``handler`` until cancelled."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "xprop", "-spy", "-root", "_NET_ACTIVE_WINDOW",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.warning(f"Foreground event stream unavailable: {e}")
        return

    stdout = proc.stdout
    if stdout is None:
        return
    logger.info("Foreground event stream connected")
    try:
        while True:
            line = await stdout.readline()
            if not line:
                break
            match = _ACTIVE_WINDOW_RE.search(line.decode(errors="replace"))
            if not match:
                continue
            package_id = await asyncio.to_thread(active_window_class, match.group(1))
            if not package_id:
                continue
            result = handler(ForegroundEvent(
                event_type=ForegroundEventType.WINDOW_STATE_CHANGED,
                package_id=package_id,
                timestamp_ms=now_ms(),
            ))
            if result is not None:
                await result
    finally:
        if proc.returncode is None:
            proc.terminate()


def display_is_on() -> bool | None:
    """DPMS monitor state from ``xset q``, or None when unknown."""
    try:
        result = _run(["xset", "q"])
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    if "Monitor is Off" in result.stdout or "Monitor is in Standby" in result.stdout:
        return False
    if "Monitor is On" in result.stdout:
        return True
    return None


async def watch_display(on_off, on_present, poll_s: float = 2.0) -> None:
    """Poll the monitor state and report transitions until cancelled."""
    last: bool | None = None
    while True:
        state = await asyncio.to_thread(display_is_on)
        if state is not None and state != last:
            if last is not None:
                if state:
                    logger.info("Display on - user present")
                    on_present()
                else:
                    logger.info("Display off")
                    on_off()
            last = state
        await asyncio.sleep(poll_s)
