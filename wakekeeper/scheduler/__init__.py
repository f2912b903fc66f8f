"""Resilient action scheduler.

Import the components from their modules (``controller``, ``trigger``,
``watchdog``, ``supervisor``); this package only re-exports the leaf types.
"""
from .errors import (
    ConfigError,
    ConfigReadError,
    InvalidInterval,
    LaunchError,
    WakeAcquisitionError,
    WakekeeperError,
    WatchdogArmError,
)
from .models import SchedulerConfig
from .types import RestartSignal, RuntimeState, SignalKind

__all__ = [
    "ConfigError",
    "ConfigReadError",
    "InvalidInterval",
    "LaunchError",
    "WakeAcquisitionError",
    "WakekeeperError",
    "WatchdogArmError",
    "SchedulerConfig",
    "RestartSignal",
    "RuntimeState",
    "SignalKind",
]
