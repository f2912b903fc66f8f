"""Daemon wiring and run loop.

Local control only: the CLI finds the daemon through its pid file and talks
to it with POSIX signals.

- SIGHUP: re-apply the stored config (``enable`` / ``disable`` wrote it)
- SIGUSR1: lifecycle signal, recover from the store
- SIGTERM / SIGINT: shut down (a restart alarm is left armed if enabled)
"""
import asyncio
import os
import signal as os_signal
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .config import Settings
from .foreground.observer import ForegroundObserver
from .platform.alarm import JobStoreAlarmTimer, SystemdAlarmTimer
from .platform.base import AlarmTimer
from .scheduler.controller import SchedulerController
from .scheduler.errors import ConfigError
from .scheduler.executor import TargetAction
from .scheduler.interaction import InteractionGate
from .scheduler.schedule import now_ms
from .scheduler.service.store import DurableConfig
from .scheduler.supervisor import RestartSupervisor
from .scheduler.trigger import TriggerLoop
from .scheduler.types import RestartSignal, SignalKind
from .scheduler.watchdog import WatchdogArming
from .wake.enforcer import WakeEnforcer
from .wake.haptics import HapticPulser

logger = logger.bind(module="app")

# Key under which the daemon publishes its status snapshot for the CLI
RUNTIME_STATUS_KEY = "runtime_status"
STATUS_PUBLISH_INTERVAL_S = 5
RUN_HISTORY_RETENTION_MS = 7 * 24 * 60 * 60 * 1000


# ============== Pid File ==============

def write_pid(pid_file: Path) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))


def read_pid(pid_file: Path) -> int:
    """Pid of a live daemon, or 0. A stale pid file is removed."""
    try:
        pid = int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return 0
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        remove_pid(pid_file)
        return 0
    except PermissionError:
        # Alive but owned by someone else
        return pid
    return pid


def remove_pid(pid_file: Path) -> None:
    try:
        pid_file.unlink()
    except FileNotFoundError:
        pass


# ============== Wiring ==============

def build_alarm_timer(settings: Settings) -> AlarmTimer:
    if settings.watchdog_backend == "jobstore":
        return JobStoreAlarmTimer(settings.data_dir)
    if settings.watchdog_backend == "systemd":
        return SystemdAlarmTimer()
    raise ConfigError(f"Unknown watchdog backend: {settings.watchdog_backend}")


@dataclass
class Daemon:
    """Every long-lived component of one process."""
    settings: Settings
    store: DurableConfig
    timer: AlarmTimer
    observer: ForegroundObserver
    controller: SchedulerController
    supervisor: RestartSupervisor
    desktop: bool = False


def build_daemon(settings: Settings) -> Daemon:
    """Assemble the components for ``settings.platform``."""
    if settings.platform == "linux":
        from .platform.linux import (
            ActiveWindowUsageSource,
            DesktopLauncher,
            InhibitWakeCapability,
            PlayerctlActivityProbe,
            XdotoolGestureDriver,
        )
        from .platform.null import NullHaptics
        wake_capability = InhibitWakeCapability()
        haptics = NullHaptics()
        usage = ActiveWindowUsageSource()
        launcher = DesktopLauncher()
        gesture = XdotoolGestureDriver()
        probe = PlayerctlActivityProbe()
        desktop = True
    elif settings.platform == "null":
        from .platform.null import (
            LoggingLauncher,
            NullHaptics,
            NullUsageSource,
            NullWakeCapability,
        )
        wake_capability = NullWakeCapability()
        haptics = NullHaptics()
        usage = NullUsageSource()
        launcher = LoggingLauncher()
        gesture = None
        probe = None
        desktop = False
    else:
        raise ConfigError(f"Unknown platform: {settings.platform}")

    if not settings.target_app_id:
        raise ConfigError("No target app configured (WAKEKEEPER_TARGET_APP)")

    store = DurableConfig(settings.data_dir, settings.default_interval_ms)
    timer = build_alarm_timer(settings)
    observer = ForegroundObserver(usage, usage_window_ms=settings.usage_window_ms)
    trigger = TriggerLoop()
    gate = InteractionGate(
        trigger,
        probe=probe,
        idle_timeout_ms=settings.idle_timeout_ms,
        idle_check_ms=settings.idle_check_ms,
    )
    observer.subscribe_interactions(gate.on_interaction)

    wake = WakeEnforcer(
        wake_capability,
        wake_timeout_ms=settings.wake_timeout_ms,
        pulser=HapticPulser(haptics, settings.pulse_duration_ms, settings.pulse_period_ms),
    )
    action = TargetAction(
        settings.target_app_id,
        launcher,
        observer,
        gesture_driver=gesture,
        on_automated_action=gate.suppress_for,
    )
    controller = SchedulerController(
        store=store,
        trigger=trigger,
        watchdog=WatchdogArming(timer),
        wake=wake,
        observer=observer,
        action=action,
        gate=gate,
    )
    return Daemon(
        settings=settings,
        store=store,
        timer=timer,
        observer=observer,
        controller=controller,
        supervisor=RestartSupervisor(controller),
        desktop=desktop,
    )


# ============== Run Loop ==============

def spawn_tracked(tasks: set[asyncio.Task], coro) -> asyncio.Task:
    """Create a task that stays in ``tasks`` until it finishes."""
    task = asyncio.get_running_loop().create_task(coro)
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    return task


async def serve(daemon: Daemon, initial: RestartSignal) -> None:
    """Run until SIGTERM/SIGINT, starting with ``initial``."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    pid_file = daemon.settings.pid_file

    await daemon.store.initialize()
    daemon.supervisor.attach(loop)
    await asyncio.to_thread(daemon.timer.start, daemon.supervisor.on_watchdog_fired)
    write_pid(pid_file)

    tasks: set[asyncio.Task] = set()

    def _spawn(coro) -> None:
        spawn_tracked(tasks, coro)

    loop.add_signal_handler(os_signal.SIGTERM, stop_event.set)
    loop.add_signal_handler(os_signal.SIGINT, stop_event.set)
    loop.add_signal_handler(
        os_signal.SIGHUP, lambda: _spawn(daemon.controller.reload())
    )
    loop.add_signal_handler(
        os_signal.SIGUSR1,
        lambda: _spawn(daemon.supervisor.on_signal(
            RestartSignal(kind=SignalKind.EXPLICIT_RESTART_REQUEST)
        )),
    )

    logger.info(f"Daemon started (pid {os.getpid()}, platform {daemon.settings.platform})")
    try:
        await _prune_history(daemon.store)
        if daemon.desktop:
            from .platform.linux import watch_display
            _spawn(_watch_foreground(daemon.observer))
            _spawn(watch_display(
                daemon.controller.on_display_off, daemon.controller.on_user_present
            ))
        _spawn(_publish_status(daemon))
        await daemon.supervisor.on_signal(initial)
        await stop_event.wait()
    finally:
        logger.info("Daemon stopping")
        for sig in (os_signal.SIGTERM, os_signal.SIGINT, os_signal.SIGHUP, os_signal.SIGUSR1):
            loop.remove_signal_handler(sig)
        for task in list(tasks):
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await daemon.controller.shutdown()
        await daemon.store.delete(RUNTIME_STATUS_KEY)
        await asyncio.to_thread(daemon.timer.shutdown)
        try:
            path = await daemon.store.export_to_yaml()
            logger.debug(f"Config snapshot written to {path}")
        except Exception as e:
            logger.warning(f"Config snapshot not written: {e}")
        await daemon.store.close()
        remove_pid(pid_file)
        logger.info("Daemon stopped")


async def _watch_foreground(observer: ForegroundObserver) -> None:
    from .platform.linux import watch_active_window
    try:
        await watch_active_window(observer.on_event)
    finally:
        observer.on_stream_closed()
        logger.info("Foreground event stream closed, falling back to polling")


async def _publish_status(daemon: Daemon) -> None:
    while True:
        try:
            await daemon.store.put(RUNTIME_STATUS_KEY, daemon.controller.status().to_dict())
        except Exception as e:
            logger.warning(f"Failed to publish status: {e}")
        await asyncio.sleep(STATUS_PUBLISH_INTERVAL_S)


async def _prune_history(store: DurableConfig) -> None:
    deleted = await store.delete_old_runs(now_ms() - RUN_HISTORY_RETENTION_MS)
    if deleted:
        logger.info(f"Pruned {deleted} old trigger runs")


def run_daemon(settings: Settings, initial: RestartSignal) -> None:
    daemon = build_daemon(settings)
    asyncio.run(serve(daemon, initial))
