"""Platform capability interfaces and host adapters."""
from .base import (
    ActivityProbe,
    AlarmTimer,
    AppLauncher,
    GestureDriver,
    HapticCapability,
    UsageStatsSource,
    WakeCapability,
)

__all__ = [
    "ActivityProbe",
    "AlarmTimer",
    "AppLauncher",
    "GestureDriver",
    "HapticCapability",
    "UsageStatsSource",
    "WakeCapability",
]
