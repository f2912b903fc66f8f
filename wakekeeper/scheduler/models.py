"""Persisted scheduler configuration model."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError, InvalidInterval

DEFAULT_INTERVAL_MS = 20000

# Durable keys, one per field
KEY_ENABLED = "enabled"
KEY_INTERVAL_MS = "interval_ms"
KEY_VIBRATE_ON_IDLE = "vibrate_on_idle"


class SchedulerConfig(BaseModel):
    """The three durable keys.

    Written only on an explicit toggle or interval change, read on every
    recovery path.
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    interval_ms: int = Field(default=DEFAULT_INTERVAL_MS, gt=0, strict=True)
    vibrate_on_idle: bool = False

    @classmethod
    def validated(
        cls,
        enabled: bool,
        interval_ms: Any,
        vibrate_on_idle: bool = False,
    ) -> "SchedulerConfig":
        """Build a config, mapping a bad interval to ``InvalidInterval``."""
        try:
            return cls(
                enabled=enabled,
                interval_ms=interval_ms,
                vibrate_on_idle=vibrate_on_idle,
            )
        except ValidationError as e:
            if any(err["loc"] and err["loc"][0] == KEY_INTERVAL_MS for err in e.errors()):
                raise InvalidInterval(interval_ms) from e
            raise ConfigError(str(e)) from e

    def to_store(self) -> dict[str, Any]:
        return {
            KEY_ENABLED: self.enabled,
            KEY_INTERVAL_MS: self.interval_ms,
            KEY_VIBRATE_ON_IDLE: self.vibrate_on_idle,
        }

    @classmethod
    def from_store(
        cls,
        data: dict[str, Any],
        default_interval_ms: int = DEFAULT_INTERVAL_MS,
    ) -> "SchedulerConfig":
        """Rebuild from stored keys; missing keys take their defaults."""
        return cls(
            enabled=data.get(KEY_ENABLED, False),
            interval_ms=data.get(KEY_INTERVAL_MS, default_interval_ms),
            vibrate_on_idle=data.get(KEY_VIBRATE_ON_IDLE, False),
        )
