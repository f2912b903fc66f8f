"""Error taxonomy for the scheduler.

Only ``InvalidInterval`` ever reaches a caller of ``set_enabled``; every other
error is caught and logged at the component that owns it.
"""


class WakekeeperError(Exception):
    """Base class for all wakekeeper errors."""


class ConfigError(WakekeeperError):
    """User supplied configuration was rejected."""


class InvalidInterval(ConfigError):
    """Interval must be a positive number of milliseconds."""

    def __init__(self, interval_ms: object):
        self.interval_ms = interval_ms
        super().__init__(f"Invalid interval: {interval_ms!r} (must be > 0 ms)")


class LaunchError(WakekeeperError):
    """Target app is missing or the platform refused to launch it."""


class WakeAcquisitionError(WakekeeperError):
    """Platform denied the wake-hold or the overlay grant."""


class WatchdogArmError(WakekeeperError):
    """Platform rejected scheduling the out-of-process alarm."""


class ConfigReadError(WakekeeperError):
    """Durable store could not be read."""
