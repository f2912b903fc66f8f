"""Out-of-process watchdog that resurrects the scheduler.

The in-process trigger loop covers the common case. The watchdog covers the
case where the process itself has been killed: it keeps one platform alarm
armed past the next firing, pushed forward on every successful firing, so
the alarm only goes off when the loop has stopped firing.

The due time is ``interval_ms`` plus a grace of at least one more interval.
Action durations vary between firings, so a re-arm can land later than
``interval_ms`` after the previous one; the grace absorbs that.
"""
from loguru import logger

from ..platform.base import AlarmTimer
from .errors import WatchdogArmError
from .schedule import now_ms
from .types import WatchdogTicket

logger = logger.bind(module="scheduler.watchdog")

# Lower bound of the grace added on top of the interval
WATCHDOG_MIN_GRACE_MS = 30 * 1000


def watchdog_delay_ms(interval_ms: int, min_grace_ms: int = WATCHDOG_MIN_GRACE_MS) -> int:
    """Delay from a successful firing to the alarm that covers it."""
    return interval_ms + max(interval_ms, min_grace_ms)


class WatchdogArming:
    """Holds at most one armed ``WatchdogTicket``.

    Calls into the platform timer may block; callers on the event loop run
    them in a worker thread.
    """

    def __init__(self, timer: AlarmTimer, min_grace_ms: int = WATCHDOG_MIN_GRACE_MS):
        self.timer = timer
        self.min_grace_ms = min_grace_ms
        self._ticket: WatchdogTicket | None = None

    @property
    def ticket(self) -> WatchdogTicket | None:
        return self._ticket

    @property
    def is_armed(self) -> bool:
        return self._ticket is not None

    def arm(self, interval_ms: int, delay_ms: int | None = None) -> WatchdogTicket:
        """Arm (or re-arm) the alarm.

        The new alarm is scheduled before the previous one is cancelled. If
        scheduling fails the previous ticket stays in place.

        Args:
            interval_ms: Interval the scheduler runs with, carried by the alarm
            delay_ms: Explicit delay until the alarm; defaults to
                ``watchdog_delay_ms(interval_ms)``

        Raises:
            WatchdogArmError: if the platform refused the alarm
        """
        if delay_ms is None:
            delay_ms = watchdog_delay_ms(interval_ms, self.min_grace_ms)
        due_at_ms = now_ms() + delay_ms
        try:
            ticket_id = self.timer.schedule_one_shot_wake(due_at_ms, interval_ms)
        except WatchdogArmError:
            raise
        except Exception as e:
            raise WatchdogArmError(f"Alarm scheduling failed: {e}") from e

        previous = self._ticket
        self._ticket = WatchdogTicket(
            ticket_id=ticket_id,
            interval_ms=interval_ms,
            due_at_ms=due_at_ms,
        )
        # Backends that reuse one alarm id replace in place
        if previous is not None and previous.ticket_id != ticket_id:
            self._cancel(previous)

        logger.debug(f"Watchdog armed: {ticket_id} due at {due_at_ms}")
        return self._ticket

    def disarm(self) -> None:
        """Cancel the outstanding ticket, if any."""
        ticket = self._ticket
        if ticket is None:
            return
        self._ticket = None
        self._cancel(ticket)
        logger.debug(f"Watchdog disarmed: {ticket.ticket_id}")

    def _cancel(self, ticket: WatchdogTicket) -> None:
        try:
            self.timer.cancel(ticket.ticket_id)
        except Exception as e:
            logger.warning(f"Failed to cancel watchdog {ticket.ticket_id}: {e}")
