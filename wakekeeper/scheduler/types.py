"""Core type definitions for the scheduler system.

This module defines:
- Runtime state of the scheduler state machine
- Lifecycle signals delivered to the restart supervisor
- Foreground tracking types (events, usage records, state)
- Capability tokens (wake handle, watchdog ticket)
- Result types for trigger runs and status snapshots
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ============== Runtime State ==============

class RuntimeState(str, Enum):
    """In-memory state of the scheduler. Never persisted."""
    DISABLED = "disabled"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


# ============== Lifecycle Signals ==============

class SignalKind(str, Enum):
    """Kind of lifecycle signal that asks the scheduler to recover."""
    BOOT_COMPLETED = "boot_completed"
    APP_UPDATED = "app_updated"
    WATCHDOG_FIRED = "watchdog_fired"
    EXPLICIT_RESTART_REQUEST = "explicit_restart_request"


@dataclass
class RestartSignal:
    """A lifecycle signal.

    ``interval_ms`` is only meaningful for ``WATCHDOG_FIRED``: it carries the
    interval the watchdog was armed for and is used when the durable store
    cannot be read.
    """
    kind: SignalKind
    interval_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "interval_ms": self.interval_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RestartSignal":
        return cls(
            kind=SignalKind(data.get("kind", SignalKind.EXPLICIT_RESTART_REQUEST.value)),
            interval_ms=data.get("interval_ms"),
        )


# ============== Foreground Types ==============

class ForegroundSource(str, Enum):
    """Where the current foreground value came from."""
    EVENT_STREAM = "event_stream"
    POLLED = "polled"
    UNKNOWN = "unknown"


class ForegroundEventType(str, Enum):
    """Inbound window/interaction event types."""
    WINDOW_STATE_CHANGED = "window_state_changed"
    VIEW_CLICKED = "view_clicked"
    VIEW_SCROLLED = "view_scrolled"
    TOUCH_EXPLORATION_START = "touch_exploration_start"


# Event types that mean "a human touched the device"
INTERACTION_EVENT_TYPES = frozenset({
    ForegroundEventType.VIEW_CLICKED,
    ForegroundEventType.VIEW_SCROLLED,
    ForegroundEventType.TOUCH_EXPLORATION_START,
})


@dataclass
class ForegroundEvent:
    """One event from the platform window-change stream."""
    event_type: ForegroundEventType
    package_id: str | None = None
    timestamp_ms: int = 0


@dataclass
class UsageRecord:
    """One entry of the recent-usage ranking."""
    package_id: str
    last_used_at_ms: int


@dataclass
class ForegroundState:
    """Current foreground app and the source that reported it."""
    current_app: str | None = None
    source: ForegroundSource = ForegroundSource.UNKNOWN

    def to_dict(self) -> dict[str, Any]:
        return {"current_app": self.current_app, "source": self.source.value}


# ============== Capability Tokens ==============

@dataclass
class WakeHandle:
    """An acquired wake-hold plus overlay registration.

    Either token may be ``None`` when the platform refused that grant.
    """
    handle_id: int
    keep_display_on: bool
    acquired_at_ms: int
    wake_token: Any = None
    overlay_token: Any = None
    released: bool = False

    @property
    def degraded(self) -> bool:
        """True when at least one of the two mechanisms is missing."""
        if self.wake_token is None:
            return True
        return self.keep_display_on and self.overlay_token is None


@dataclass
class WatchdogTicket:
    """One armed out-of-process wake request."""
    ticket_id: str
    interval_ms: int
    due_at_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "interval_ms": self.interval_ms,
            "due_at_ms": self.due_at_ms,
        }


# ============== Result Types ==============

class RunStatus(str, Enum):
    """Status of a single trigger firing."""
    OK = "ok"
    FAILED = "failed"


@dataclass
class TriggerRun:
    """Record of one trigger firing."""
    started_at_ms: int
    finished_at_ms: int
    status: RunStatus
    action: str = ""
    error: str | None = None
    id: str = ""

    @property
    def duration_ms(self) -> int:
        return max(0, self.finished_at_ms - self.started_at_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "started_at_ms": self.started_at_ms,
            "finished_at_ms": self.finished_at_ms,
            "status": self.status.value,
            "action": self.action,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class SchedulerStatus:
    """Snapshot of the scheduler for display."""
    state: RuntimeState
    interval_ms: int | None = None
    paused: bool = False
    wake_degraded: bool = False
    watchdog: WatchdogTicket | None = None
    next_fire_at_ms: int | None = None
    foreground: ForegroundState = field(default_factory=ForegroundState)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "interval_ms": self.interval_ms,
            "paused": self.paused,
            "wake_degraded": self.wake_degraded,
            "watchdog": self.watchdog.to_dict() if self.watchdog else None,
            "next_fire_at_ms": self.next_fire_at_ms,
            "foreground": self.foreground.to_dict(),
        }
