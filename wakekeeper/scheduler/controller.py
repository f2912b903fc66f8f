"""Scheduler facade and state machine.

    DISABLED -> STARTING -> RUNNING -> STOPPING -> DISABLED

Starting: acquire wake hold, arm watchdog, start trigger loop.
Stopping: stop trigger loop, disarm watchdog, release wake hold.

All transitions run under one asyncio lock on the process event loop, so
Starting and Stopping never overlap. Wake-hold and alarm calls reach the host
through blocking commands; they run in worker threads while the lock is held. Across processes the only shared state
is the durable store; the last successful write wins.
"""
import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from ..foreground.observer import ForegroundObserver
from ..wake.enforcer import WakeEnforcer
from .errors import ConfigReadError
from .interaction import InteractionGate
from .models import KEY_VIBRATE_ON_IDLE, SchedulerConfig
from .schedule import now_ms
from .service.store import DurableConfig
from .trigger import TriggerLoop
from .types import RunStatus, RuntimeState, SchedulerStatus, TriggerRun, WakeHandle
from .watchdog import WatchdogArming

logger = logger.bind(module="scheduler.controller")

# Delay of the resurrection alarm armed when the process shuts down while enabled
RESTART_DELAY_MS = 2000

ActionCallable = Callable[[], Awaitable[Any]]


class SchedulerController:
    """The only component the presentation layer calls.

    Owns the runtime state, the wake handle and the watchdog ticket; nothing
    outside this class mutates them.
    """

    def __init__(
        self,
        store: DurableConfig,
        trigger: TriggerLoop,
        watchdog: WatchdogArming,
        wake: WakeEnforcer,
        observer: ForegroundObserver,
        action: ActionCallable,
        gate: InteractionGate | None = None,
    ):
        self.store = store
        self.trigger = trigger
        self.watchdog = watchdog
        self.wake = wake
        self.observer = observer
        self.action = action
        self.gate = gate

        self._state = RuntimeState.DISABLED
        self._lock = asyncio.Lock()
        self._handle: WakeHandle | None = None
        self._config: SchedulerConfig | None = None

    # ============== Queries ==============

    def current_state(self) -> RuntimeState:
        return self._state

    def current_foreground_app(self) -> str | None:
        return self.observer.current_foreground_app()

    @property
    def active_config(self) -> SchedulerConfig | None:
        """Config the runtime last acted upon."""
        return self._config

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            state=self._state,
            interval_ms=self.trigger.interval_ms if self.trigger.is_running else None,
            paused=self.trigger.is_paused,
            wake_degraded=bool(self._handle and self._handle.degraded),
            watchdog=self.watchdog.ticket,
            next_fire_at_ms=self.trigger.next_fire_at_ms,
            foreground=self.observer.state,
        )

    # ============== Control Surface ==============

    async def set_enabled(
        self,
        enabled: bool,
        interval_ms: int,
        vibrate_on_idle: bool | None = None,
    ) -> None:
        """Persist the requested config, then start or stop.

        ``vibrate_on_idle=None`` keeps the stored value.

        Raises:
            InvalidInterval: if ``interval_ms`` is not positive; nothing changes
        """
        # Validate before touching anything
        SchedulerConfig.validated(enabled, interval_ms, bool(vibrate_on_idle))

        async with self._lock:
            if vibrate_on_idle is None:
                vibrate_on_idle = await self._stored_vibrate_on_idle()
            config = SchedulerConfig.validated(enabled, interval_ms, vibrate_on_idle)

            try:
                await self.store.save_config(config)
            except Exception as e:
                logger.error(f"Failed to persist config, state left unchanged: {e}")
                return

            if config.enabled:
                await self._enter_running(config)
            else:
                await self._enter_disabled()
            self._config = config

    async def recover(self, fallback_interval_ms: int | None = None) -> None:
        """Re-derive runtime state from the durable store. Never raises.

        Args:
            fallback_interval_ms: Interval to run with when the store is
                unreadable (carried by a fired watchdog)
        """
        try:
            try:
                config = await self.store.load_config()
            except ConfigReadError as e:
                if not fallback_interval_ms or fallback_interval_ms <= 0:
                    logger.warning(f"Recovery aborted, store unreadable: {e}")
                    return
                logger.warning(
                    f"Store unreadable ({e}), recovering with watchdog interval {fallback_interval_ms}ms"
                )
                config = SchedulerConfig(enabled=True, interval_ms=fallback_interval_ms)

            if not config.enabled:
                logger.info("Scheduler was disabled by user, not recovering")
                return

            async with self._lock:
                if self._state != RuntimeState.DISABLED:
                    logger.debug(f"Recovery skipped, already {self._state.value}")
                    if self._state == RuntimeState.RUNNING:
                        # A fired ticket is gone; keep the safety net armed
                        await self._arm_watchdog(self.trigger.interval_ms or config.interval_ms)
                    return
                logger.info(f"Recovering scheduler with interval {config.interval_ms}ms")
                await self._enter_running(config)
                self._config = config
        except Exception as e:
            logger.error(f"Recovery failed, will retry on next signal: {e}")

    async def reload(self) -> None:
        """Re-apply the stored config (another process wrote it)."""
        try:
            config = await self.store.load_config()
        except ConfigReadError as e:
            logger.warning(f"Reload skipped, store unreadable: {e}")
            return
        logger.info(f"Reloading config: {config.to_store()}")
        await self.set_enabled(config.enabled, config.interval_ms, config.vibrate_on_idle)

    async def shutdown(self) -> None:
        """Process is going away: release everything held in-process.

        If the scheduler is enabled, a short resurrection alarm is armed so a
        fresh process picks up where this one stopped.
        """
        async with self._lock:
            was_running = self._state == RuntimeState.RUNNING
            interval_ms = self.trigger.interval_ms
            await self._teardown()
            await asyncio.to_thread(self.watchdog.disarm)
            if was_running and interval_ms:
                logger.info("Shutting down while enabled - scheduling restart")
                await self._arm_watchdog(interval_ms, delay_ms=RESTART_DELAY_MS)
            self._state = RuntimeState.DISABLED

    # ============== Display Events ==============

    def on_display_off(self) -> None:
        if self._state != RuntimeState.RUNNING:
            return
        if self.gate is not None:
            self.gate.on_screen_off()
        vibrate = bool(self._config and self._config.vibrate_on_idle)
        self.wake.on_display_off(vibrate)

    def on_user_present(self) -> None:
        self.wake.on_user_present()
        if self._state == RuntimeState.RUNNING and self.gate is not None:
            self.gate.on_user_present()

    # ============== Transitions ==============

    async def _enter_running(self, config: SchedulerConfig) -> None:
        if self._state == RuntimeState.RUNNING:
            if self.trigger.interval_ms != config.interval_ms:
                logger.info(f"Interval changed to {config.interval_ms}ms")
                self.trigger.reschedule(config.interval_ms)
                await self._arm_watchdog(config.interval_ms)
            return

        self._state = RuntimeState.STARTING
        logger.info(f"Scheduler starting, interval {config.interval_ms}ms")

        # Never leak a handle from an earlier cycle
        await asyncio.to_thread(self.wake.release, self._handle)
        self._handle = await asyncio.to_thread(self.wake.acquire, True)
        await self._arm_watchdog(config.interval_ms)
        self.trigger.start(config.interval_ms, self._fire)
        if self.gate is not None:
            self.gate.activate()

        self._state = RuntimeState.RUNNING
        logger.info("Scheduler running")

    async def _enter_disabled(self) -> None:
        if self._state == RuntimeState.DISABLED:
            return

        self._state = RuntimeState.STOPPING
        logger.info("Scheduler stopping")
        await self._teardown()
        await asyncio.to_thread(self.watchdog.disarm)
        self._state = RuntimeState.DISABLED
        logger.info("Scheduler disabled")

    async def _teardown(self) -> None:
        self.trigger.stop()
        if self.gate is not None:
            self.gate.deactivate()
        self.wake.stop_pulses()
        handle, self._handle = self._handle, None
        await asyncio.to_thread(self.wake.release, handle)

    async def _arm_watchdog(self, interval_ms: int, delay_ms: int | None = None) -> None:
        try:
            await asyncio.to_thread(self.watchdog.arm, interval_ms, delay_ms)
        except Exception as e:
            logger.warning(f"Watchdog not armed, trigger loop alone covers this run: {e}")

    async def _stored_vibrate_on_idle(self) -> bool:
        try:
            return bool(await self.store.get(KEY_VIBRATE_ON_IDLE))
        except ConfigReadError as e:
            logger.warning(f"Could not read {KEY_VIBRATE_ON_IDLE}, defaulting to off: {e}")
            return False

    # ============== Trigger Firing ==============

    async def _fire(self) -> None:
        started_at_ms = now_ms()
        try:
            outcome = await self.action()
        except Exception as e:
            await self._record_run(TriggerRun(
                started_at_ms=started_at_ms,
                finished_at_ms=now_ms(),
                status=RunStatus.FAILED,
                error=str(e),
            ))
            raise

        await self._record_run(TriggerRun(
            started_at_ms=started_at_ms,
            finished_at_ms=now_ms(),
            status=RunStatus.OK,
            action=str(outcome or ""),
        ))
        async with self._lock:
            if self._state == RuntimeState.RUNNING and self.trigger.interval_ms:
                await self._arm_watchdog(self.trigger.interval_ms)

    async def _record_run(self, run: TriggerRun) -> None:
        try:
            await self.store.save_run(run)
        except Exception as e:
            logger.warning(f"Failed to record trigger run: {e}")
