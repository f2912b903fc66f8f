"""Fakes for every platform capability, plus store and controller fixtures."""
import asyncio
import itertools
import os
import sys
import time
from dataclasses import dataclass

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest_asyncio

from wakekeeper.foreground.observer import ForegroundObserver
from wakekeeper.scheduler.controller import SchedulerController
from wakekeeper.scheduler.errors import LaunchError
from wakekeeper.scheduler.schedule import now_ms
from wakekeeper.scheduler.service.store import DurableConfig
from wakekeeper.scheduler.trigger import TriggerLoop
from wakekeeper.scheduler.types import UsageRecord
from wakekeeper.scheduler.watchdog import WatchdogArming
from wakekeeper.wake.enforcer import WakeEnforcer


class FakeAlarmTimer:
    def __init__(self, delay_s: float = 0):
        self.scheduled: dict[str, tuple[int, int]] = {}
        self.cancelled: list[str] = []
        # How late each still-armed alarm was when a new one was scheduled
        self.overdue_ms: list[int] = []
        self.fail = False
        self.delay_s = delay_s
        self.on_fire = None
        self._ids = itertools.count(1)

    def start(self, on_fire) -> None:
        self.on_fire = on_fire

    def shutdown(self) -> None:
        self.on_fire = None

    def schedule_one_shot_wake(self, at_epoch_ms: int, interval_ms: int) -> str:
        time.sleep(self.delay_s)
        if self.fail:
            raise RuntimeError("alarm refused")
        current = now_ms()
        self.overdue_ms += [current - due for due, _ in self.scheduled.values() if due <= current]
        ticket_id = f"alarm-{next(self._ids)}"
        self.scheduled[ticket_id] = (at_epoch_ms, interval_ms)
        return ticket_id

    def cancel(self, ticket_id: str) -> None:
        self.cancelled.append(ticket_id)
        self.scheduled.pop(ticket_id, None)


class FakeWake:
    def __init__(self, refuse_wake: bool = False, refuse_overlay: bool = False, delay_s: float = 0):
        self.refuse_wake = refuse_wake
        self.delay_s = delay_s
        self.refuse_overlay = refuse_overlay
        self.holds: set[str] = set()
        self.overlays: set[str] = set()
        self.releases = 0
        self.hides = 0
        self._ids = itertools.count(1)

    def acquire_wake(self, timeout_ms: int) -> str:
        time.sleep(self.delay_s)
        if self.refuse_wake:
            raise RuntimeError("wake-hold refused")
        token = f"wake-{next(self._ids)}"
        self.holds.add(token)
        return token

    def release(self, token: str) -> None:
        time.sleep(self.delay_s)
        self.releases += 1
        self.holds.discard(token)

    def show_minimal_overlay(self) -> str:
        if self.refuse_overlay:
            raise RuntimeError("overlay permission missing")
        token = f"overlay-{next(self._ids)}"
        self.overlays.add(token)
        return token

    def hide_overlay(self, token: str) -> None:
        self.hides += 1
        self.overlays.discard(token)


class FakeHaptics:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.pulses: list[int] = []

    def pulse(self, duration_ms: int) -> None:
        self.pulses.append(duration_ms)
        if self.fail:
            raise RuntimeError("vibrator busy")


class FakeUsage:
    def __init__(self, records: list[UsageRecord] | None = None, fail: bool = False):
        self.records = records or []
        self.fail = fail
        self.queries = 0

    def query_recent_usage(self, window_ms: int) -> list[UsageRecord]:
        self.queries += 1
        if self.fail:
            raise PermissionError("usage access not granted")
        return list(self.records)


class FakeLauncher:
    def __init__(self, error: Exception | None = None, delay_s: float = 0):
        self.error = error
        self.delay_s = delay_s
        self.launched: list[str] = []

    def launch(self, app_id: str) -> None:
        time.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        self.launched.append(app_id)


class FakeGesture:
    def __init__(self, success: bool = True):
        self.success = success
        self.count = 0

    async def perform_refresh(self) -> bool:
        self.count += 1
        return self.success


class FakeProbe:
    def __init__(self, media: bool = False, call: bool = False):
        self.media = media
        self.call = call

    def is_media_playing(self) -> bool:
        return self.media

    def is_in_call(self) -> bool:
        return self.call


class CountingAction:
    """Trigger action recording the monotonic time of every call."""

    def __init__(self, fail: bool = False, durations_s: list[float] | None = None):
        self.fail = fail
        self.calls: list[float] = []
        self._durations = itertools.cycle(durations_s or [0])

    async def __call__(self) -> str:
        self.calls.append(time.monotonic())
        await asyncio.sleep(next(self._durations))
        if self.fail:
            raise LaunchError("target missing")
        return "launched"


@dataclass
class Harness:
    controller: SchedulerController
    store: DurableConfig
    timer: FakeAlarmTimer
    wake: FakeWake
    enforcer: WakeEnforcer
    trigger: TriggerLoop
    action: CountingAction


def build_harness(
    store: DurableConfig,
    action: CountingAction | None = None,
    timer: FakeAlarmTimer | None = None,
    wake: FakeWake | None = None,
) -> Harness:
    """A fresh controller over ``store`` with no in-memory state."""
    timer = timer or FakeAlarmTimer()
    wake = wake or FakeWake()
    enforcer = WakeEnforcer(wake)
    trigger = TriggerLoop()
    action = action or CountingAction()
    controller = SchedulerController(
        store=store,
        trigger=trigger,
        watchdog=WatchdogArming(timer),
        wake=enforcer,
        observer=ForegroundObserver(),
        action=action,
    )
    return Harness(controller, store, timer, wake, enforcer, trigger, action)


@pytest_asyncio.fixture
async def store(tmp_path):
    store = DurableConfig(tmp_path)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def harness(store):
    h = build_harness(store)
    yield h
    h.trigger.stop()


async def max_loop_lag(work, tick_s: float = 0.02) -> float:
    """Run ``work`` next to a ticker and return the worst tick delay in seconds."""
    loop = asyncio.get_running_loop()
    worst = 0.0
    done = False

    async def ticker():
        nonlocal worst
        while not done:
            expected = loop.time() + tick_s
            await asyncio.sleep(tick_s)
            worst = max(worst, loop.time() - expected)

    task = asyncio.create_task(ticker())
    await asyncio.sleep(0)
    try:
        await work
    finally:
        done = True
        await task
    return worst
