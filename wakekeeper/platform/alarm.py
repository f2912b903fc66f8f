"""Alarm timers that outlive the process.

- ``JobStoreAlarmTimer``: APScheduler with a SQLAlchemy job store. The armed
  alarm is persisted; an alarm that came due while no process was alive is
  delivered as soon as the next process starts its scheduler.
- ``SystemdAlarmTimer``: a transient systemd user timer that runs
  ``wakekeeper signal watchdog_fired`` at the due time, whether or not any
  wakekeeper process is alive. Each arm gets its own unit name, so a new
  alarm never collides with the unit of one that already fired.

Only the systemd backend can bring back a process that was killed. The job
store backend delivers inside a running process and catches up on the next
start, so it is an in-process fallback for hosts without a user systemd.
"""
import shutil
import subprocess
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from ..scheduler.errors import WatchdogArmError

logger = logger.bind(module="platform.alarm")

WATCHDOG_JOB_ID = "wakekeeper-watchdog"
WATCHDOG_UNIT_PREFIX = "wakekeeper-watchdog"
DAEMON_UNIT = "wakekeeper-daemon"

AlarmCallback = Callable[[int | None], Any]

# Fired jobs are looked up by reference, so the receiver of this process
# lives at module level
_receiver: AlarmCallback | None = None


def deliver_watchdog(interval_ms: int | None = None) -> None:
    """Job target of the persisted watchdog alarm."""
    receiver = _receiver
    if receiver is None:
        logger.warning("Watchdog fired with no receiver in this process")
        return
    logger.info(f"Watchdog alarm fired (armed for {interval_ms}ms)")
    receiver(interval_ms)


class JobStoreAlarmTimer:
    """Persisted one-shot alarm via APScheduler."""

    def __init__(self, data_dir: str | Path):
        db_path = Path(data_dir).expanduser() / "wakekeeper_alarms.db"
        self.db_url = f"sqlite:///{db_path}"
        self._scheduler = BackgroundScheduler(
            jobstores={"default": SQLAlchemyJobStore(url=self.db_url)},
            job_defaults={
                # Deliver an overdue alarm on the next start, once
                "misfire_grace_time": None,
                "coalesce": True,
                "max_instances": 1,
            },
            timezone=timezone.utc,
        )

    def start(self, on_fire: AlarmCallback) -> None:
        global _receiver
        _receiver = on_fire
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info(f"Alarm scheduler started ({self.db_url})")

    def shutdown(self) -> None:
        global _receiver
        _receiver = None
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Alarm scheduler stopped")

    def schedule_one_shot_wake(self, at_epoch_ms: int, interval_ms: int) -> str:
        run_date = datetime.fromtimestamp(at_epoch_ms / 1000, tz=timezone.utc)
        try:
            self._scheduler.add_job(
                deliver_watchdog,
                trigger=DateTrigger(run_date=run_date),
                id=WATCHDOG_JOB_ID,
                name="wakekeeper watchdog",
                kwargs={"interval_ms": interval_ms},
                replace_existing=True,
            )
        except Exception as e:
            raise WatchdogArmError(f"Failed to persist alarm: {e}") from e
        return WATCHDOG_JOB_ID

    def cancel(self, ticket_id: str) -> None:
        try:
            self._scheduler.remove_job(ticket_id)
        except JobLookupError:
            pass


class SystemdAlarmTimer:
    """One-shot alarm as a transient ``systemd-run --user`` timer."""

    def __init__(self, executable: str = "wakekeeper", timeout_s: float = 10):
        self.executable = executable
        self.timeout_s = timeout_s

    def start(self, on_fire: AlarmCallback) -> None:
        # Delivered by systemd spawning the CLI, which signals the daemon.
        # Timers left by an earlier process are unknown to this one.
        self._systemctl("stop", f"{WATCHDOG_UNIT_PREFIX}-*.timer")
        logger.debug("Systemd alarm timer ready")

    def shutdown(self) -> None:
        pass

    def schedule_one_shot_wake(self, at_epoch_ms: int, interval_ms: int) -> str:
        if shutil.which("systemd-run") is None:
            raise WatchdogArmError("systemd-run not available")

        unit = f"{WATCHDOG_UNIT_PREFIX}-{uuid.uuid4().hex[:12]}"
        cmd = [
            "systemd-run", "--user",
            f"--unit={unit}",
            f"--on-calendar=@{at_epoch_ms // 1000}",
            "--timer-property=AccuracySec=1s",
            "--collect",
            self.executable, "signal", "watchdog_fired",
            "--interval-ms", str(interval_ms),
        ]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise WatchdogArmError(f"systemd-run failed: {e}") from e
        if result.returncode != 0:
            raise WatchdogArmError(f"systemd-run rejected timer: {result.stderr.strip()}")
        return unit

    def cancel(self, ticket_id: str) -> None:
        self._systemctl("stop", f"{ticket_id}.timer")

    def start_daemon_unit(self, kind: str, interval_ms: int | None = None) -> bool:
        """Start the daemon as its own transient service.

        A process started by a fired timer lives in that timer's service and
        dies with it, so it hands the daemon off instead of becoming it.
        """
        if shutil.which("systemd-run") is None:
            return False
        cmd = [
            "systemd-run", "--user",
            f"--unit={DAEMON_UNIT}",
            "--collect",
            self.executable, "run", "--signal", kind,
        ]
        if interval_ms is not None:
            cmd += ["--interval-ms", str(interval_ms)]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Could not start {DAEMON_UNIT}: {e}")
            return False
        if result.returncode != 0:
            logger.warning(f"systemd-run rejected {DAEMON_UNIT}: {result.stderr.strip()}")
            return False
        logger.info(f"Daemon handed off to {DAEMON_UNIT}.service")
        return True

    def _systemctl(self, *args: str) -> None:
        try:
            subprocess.run(
                ["systemctl", "--user", *args],
                capture_output=True, text=True, timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"systemctl {' '.join(args)} failed: {e}")
