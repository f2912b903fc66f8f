"""Durable key/value store for the scheduler configuration.

Architecture:
- SQLite database (wakekeeper_state.db): program-owned durable state
  Contains: the config keys (enabled, interval_ms, vibrate_on_idle) and
  the trigger run history
- YAML file (wakekeeper.yaml): optional user-readable snapshot of the config,
  written on demand by ``export_to_yaml``

SQLite is the only resource shared between a dying process and its
resurrected successor, so every multi-key write happens in one transaction:
a reader never sees ``enabled`` from one write and ``interval_ms`` from another.
"""
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import yaml
from loguru import logger

from ..errors import ConfigReadError
from ..models import DEFAULT_INTERVAL_MS, SchedulerConfig
from ..types import RunStatus, TriggerRun

logger = logger.bind(module="scheduler.store")

# ============== SQL Schema ==============

_INIT_SQL = """
CREATE TABLE IF NOT EXISTS config_kv (
    key           TEXT PRIMARY KEY,
    value         TEXT NOT NULL,
    updated_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS trigger_runs (
    id             TEXT PRIMARY KEY,
    started_at_ms  INTEGER NOT NULL,
    finished_at_ms INTEGER NOT NULL,
    status         TEXT NOT NULL DEFAULT 'ok',
    action         TEXT,
    error          TEXT,
    duration_ms    INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_runs_started ON trigger_runs(started_at_ms);
CREATE INDEX IF NOT EXISTS idx_runs_status ON trigger_runs(status);
"""


def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


class DurableConfig:
    """SQLite-backed durable key/value store.

    Thread-safety: SQLite handles its own locking. All writes from this
    process come from the single event loop.
    """

    def __init__(
        self,
        data_dir: str | Path,
        default_interval_ms: int = DEFAULT_INTERVAL_MS,
    ):
        """Initialize store.

        Args:
            data_dir: Directory to store wakekeeper_state.db and wakekeeper.yaml
            default_interval_ms: Interval reported when none was ever stored
        """
        self.data_dir = Path(data_dir).expanduser()
        self.db_path = self.data_dir / "wakekeeper_state.db"
        self.yaml_path = self.data_dir / "wakekeeper.yaml"
        self.default_interval_ms = default_interval_ms
        self._db: sqlite3.Connection | None = None

    # ============== Lifecycle ==============

    async def initialize(self) -> None:
        """Open SQLite and create the schema."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._db = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA synchronous=NORMAL")
        self._db.executescript(_INIT_SQL)

        logger.info(f"Store initialized at {self.db_path}")

    async def close(self) -> None:
        """Close store."""
        if self._db:
            self._db.close()
            self._db = None

    def _conn(self) -> sqlite3.Connection:
        if self._db is None:
            raise ConfigReadError("Store is not initialized")
        return self._db

    # ============== Key/Value ==============

    async def get(self, key: str) -> Any | None:
        """Get one value, or None if the key was never written."""
        try:
            row = self._conn().execute(
                "SELECT value FROM config_kv WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise ConfigReadError(f"Failed to read {key}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise ConfigReadError(f"Corrupt value for {key}: {e}") from e

    async def put(self, key: str, value: Any) -> None:
        """Write one value."""
        await self.put_many({key: value})

    async def put_many(self, values: dict[str, Any]) -> None:
        """Write several values in a single transaction."""
        db = self._conn()
        now_ms = _now_ms()
        with db:
            db.executemany(
                """INSERT INTO config_kv (key, value, updated_at_ms)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at_ms=excluded.updated_at_ms
                """,
                [(k, json.dumps(v), now_ms) for k, v in values.items()],
            )

    async def delete(self, key: str) -> bool:
        """Delete one key."""
        db = self._conn()
        with db:
            cursor = db.execute("DELETE FROM config_kv WHERE key = ?", (key,))
        return cursor.rowcount > 0

    async def get_all(self) -> dict[str, Any]:
        """Read every key in one statement."""
        try:
            rows = self._conn().execute("SELECT key, value FROM config_kv").fetchall()
            return {row["key"]: json.loads(row["value"]) for row in rows}
        except (sqlite3.Error, json.JSONDecodeError) as e:
            raise ConfigReadError(f"Failed to read config: {e}") from e

    # ============== Scheduler Config ==============

    async def load_config(self) -> SchedulerConfig:
        """Read the scheduler config.

        Raises:
            ConfigReadError: if the store is unavailable or holds invalid data
        """
        data = await self.get_all()
        try:
            return SchedulerConfig.from_store(data, self.default_interval_ms)
        except ValueError as e:
            raise ConfigReadError(f"Stored config is invalid: {e}") from e

    async def save_config(self, config: SchedulerConfig) -> None:
        """Persist all three keys atomically."""
        await self.put_many(config.to_store())
        logger.debug(f"Saved config: {config.to_store()}")

    # ============== Trigger Runs ==============

    async def save_run(self, run: TriggerRun) -> None:
        """Save a trigger run record."""
        db = self._conn()
        if not run.id:
            run.id = f"run_{uuid4().hex[:12]}"

        with db:
            db.execute(
                """INSERT OR REPLACE INTO trigger_runs
                   (id, started_at_ms, finished_at_ms, status, action, error, duration_ms)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    run.id, run.started_at_ms, run.finished_at_ms,
                    run.status.value, run.action, run.error, run.duration_ms,
                ),
            )

    async def get_runs(
        self,
        status: RunStatus | None = None,
        since_ms: int | None = None,
        limit: int = 50,
    ) -> list[TriggerRun]:
        """Get trigger runs, newest first."""
        conditions = []
        params: list[Any] = []

        if status:
            conditions.append("status = ?")
            params.append(status.value)
        if since_ms:
            conditions.append("started_at_ms >= ?")
            params.append(since_ms)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self._conn().execute(
            f"SELECT * FROM trigger_runs {where} ORDER BY started_at_ms DESC LIMIT ?",
            params + [limit],
        ).fetchall()

        return [
            TriggerRun(
                id=row["id"],
                started_at_ms=row["started_at_ms"],
                finished_at_ms=row["finished_at_ms"],
                status=RunStatus(row["status"]),
                action=row["action"] or "",
                error=row["error"],
            )
            for row in rows
        ]

    async def get_runs_stats_today(self) -> dict[str, Any]:
        """Get run statistics for today."""
        now = datetime.now()
        start_of_day_ms = int(
            datetime(now.year, now.month, now.day).timestamp() * 1000
        )

        row = self._conn().execute(
            """SELECT
                COUNT(*) as total,
                SUM(CASE WHEN status='ok' THEN 1 ELSE 0 END) as success,
                SUM(CASE WHEN status='failed' THEN 1 ELSE 0 END) as failed,
                AVG(duration_ms) as avg_dur
               FROM trigger_runs WHERE started_at_ms >= ?""",
            (start_of_day_ms,),
        ).fetchone()

        total = row["total"] if row else 0
        success = (row["success"] or 0) if row else 0
        failed = (row["failed"] or 0) if row else 0
        avg_dur = row["avg_dur"] if row else 0.0

        return {
            "total": total,
            "success": success,
            "failed": failed,
            "success_rate": success / total if total > 0 else 0.0,
            "avg_duration_ms": avg_dur or 0.0,
        }

    async def delete_old_runs(self, before_ms: int) -> int:
        """Delete runs older than the given timestamp."""
        db = self._conn()
        with db:
            cursor = db.execute(
                "DELETE FROM trigger_runs WHERE started_at_ms < ?", (before_ms,)
            )
        return cursor.rowcount

    # ============== Export ==============

    async def export_to_yaml(self) -> Path:
        """Write a readable snapshot of the config (atomic)."""
        config = await self.load_config()

        temp_path = self.yaml_path.with_suffix(".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write("# wakekeeper configuration snapshot\n")
            f.write("# Generated from the durable store; edits here are not read back.\n\n")
            yaml.dump(
                config.to_store(),
                f,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
        temp_path.rename(self.yaml_path)
        return self.yaml_path
