"""Daemon settings: YAML overlay, then .env / environment."""
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
load_dotenv(override=True)

from .scheduler.errors import ConfigError


def _default_data_dir() -> Path:
    return Path.home() / ".wakekeeper"


@dataclass
class Settings:
    """Daemon settings"""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)

    # Target application (desktop entry id)
    target_app_id: str = ""

    # Scheduler
    default_interval_ms: int = 20000
    wake_timeout_ms: int = 10 * 60 * 60 * 1000
    idle_timeout_ms: int = 5000
    idle_check_ms: int = 1000
    pulse_duration_ms: int = 400
    pulse_period_ms: int = 1000
    usage_window_ms: int = 10000

    # Backends: systemd | jobstore (in-process fallback), linux | null
    watchdog_backend: str = "systemd"
    platform: str = "linux"

    # Logging
    log_level: str = "INFO"
    log_file: str = "wakekeeper.log"
    debug: bool = False

    @property
    def pid_file(self) -> Path:
        return self.data_dir / "wakekeeper.pid"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load from the YAML file named by WAKEKEEPER_CONFIG, then the environment."""
        base = cls.from_yaml(os.getenv("WAKEKEEPER_CONFIG"))

        def _int(name: str, current: int) -> int:
            raw = os.getenv(name)
            if raw is None or raw == "":
                return current
            try:
                return int(raw)
            except ValueError as e:
                raise ConfigError(f"{name} must be an integer, got {raw!r}") from e

        debug_raw = os.getenv("WAKEKEEPER_DEBUG")
        return cls(
            # Paths
            data_dir=Path(os.getenv("WAKEKEEPER_DATA_DIR", str(base.data_dir))).expanduser(),

            target_app_id=os.getenv("WAKEKEEPER_TARGET_APP", base.target_app_id),

            # Scheduler
            default_interval_ms=_int("WAKEKEEPER_DEFAULT_INTERVAL_MS", base.default_interval_ms),
            wake_timeout_ms=_int("WAKEKEEPER_WAKE_TIMEOUT_MS", base.wake_timeout_ms),
            idle_timeout_ms=_int("WAKEKEEPER_IDLE_TIMEOUT_MS", base.idle_timeout_ms),
            idle_check_ms=_int("WAKEKEEPER_IDLE_CHECK_MS", base.idle_check_ms),
            pulse_duration_ms=_int("WAKEKEEPER_PULSE_DURATION_MS", base.pulse_duration_ms),
            pulse_period_ms=_int("WAKEKEEPER_PULSE_PERIOD_MS", base.pulse_period_ms),
            usage_window_ms=_int("WAKEKEEPER_USAGE_WINDOW_MS", base.usage_window_ms),

            # Backends
            watchdog_backend=os.getenv("WAKEKEEPER_WATCHDOG", base.watchdog_backend).lower(),
            platform=os.getenv("WAKEKEEPER_PLATFORM", base.platform).lower(),

            # Logging
            log_level=os.getenv("WAKEKEEPER_LOG_LEVEL", base.log_level).upper(),
            log_file=os.getenv("WAKEKEEPER_LOG_FILE", base.log_file),
            debug=debug_raw.lower() in ("1", "true") if debug_raw else base.debug,
        )

    @classmethod
    def from_yaml(cls, path: str | Path | None) -> "Settings":
        """Defaults overridden by a YAML mapping; unknown keys are rejected."""
        if not path:
            return cls()
        path = Path(path).expanduser()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data: Any = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")
        if "data_dir" in data:
            data["data_dir"] = Path(str(data["data_dir"])).expanduser()
        return cls(**data)


# Global settings instance
settings = Settings.from_env()
