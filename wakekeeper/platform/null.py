"""Log-only capabilities for headless hosts and dry runs."""
import uuid

from loguru import logger

from ..scheduler.types import UsageRecord

logger = logger.bind(module="platform.null")


class NullWakeCapability:
    def acquire_wake(self, timeout_ms: int) -> str:
        token = uuid.uuid4().hex[:8]
        logger.debug(f"wake-hold {token} for {timeout_ms}ms (no-op)")
        return token

    def release(self, token: str) -> None:
        logger.debug(f"wake-hold {token} released (no-op)")

    def show_minimal_overlay(self) -> str:
        return "overlay"

    def hide_overlay(self, token: str) -> None:
        pass


class NullHaptics:
    def pulse(self, duration_ms: int) -> None:
        logger.debug(f"pulse {duration_ms}ms (no-op)")


class NullUsageSource:
    def query_recent_usage(self, window_ms: int) -> list[UsageRecord]:
        return []


class LoggingLauncher:
    def launch(self, app_id: str) -> None:
        logger.info(f"Would launch {app_id}")
