"""Tests for the durable config store."""
import pytest
import yaml

from wakekeeper.scheduler.errors import ConfigReadError
from wakekeeper.scheduler.models import DEFAULT_INTERVAL_MS, SchedulerConfig
from wakekeeper.scheduler.schedule import now_ms
from wakekeeper.scheduler.service.store import DurableConfig
from wakekeeper.scheduler.types import RunStatus, TriggerRun


class TestKeyValue:
    """Tests for the key/value layer."""

    @pytest.mark.asyncio
    async def test_put_get(self, store):
        await store.put("interval_ms", 1500)

        assert await store.get("interval_ms") == 1500
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_put_many_writes_all_keys(self, store):
        await store.put_many({"enabled": True, "interval_ms": 9000})

        assert await store.get_all() == {"enabled": True, "interval_ms": 9000}

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store):
        await store.put("enabled", True)
        await store.put("enabled", False)

        assert await store.get("enabled") is False

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.put("runtime_status", {"state": "running"})

        assert await store.delete("runtime_status")
        assert not await store.delete("runtime_status")
        assert await store.get("runtime_status") is None

    @pytest.mark.asyncio
    async def test_uninitialized_store_raises(self, tmp_path):
        store = DurableConfig(tmp_path)

        with pytest.raises(ConfigReadError):
            await store.get("enabled")

    @pytest.mark.asyncio
    async def test_values_survive_reopen(self, tmp_path):
        first = DurableConfig(tmp_path)
        await first.initialize()
        await first.save_config(SchedulerConfig(enabled=True, interval_ms=7000))
        await first.close()

        second = DurableConfig(tmp_path)
        await second.initialize()
        try:
            assert await second.load_config() == SchedulerConfig(enabled=True, interval_ms=7000)
        finally:
            await second.close()


class TestSchedulerConfig:
    """Tests for loading and saving the scheduler config."""

    @pytest.mark.asyncio
    async def test_empty_store_defaults(self, store):
        config = await store.load_config()

        assert config.enabled is False
        assert config.interval_ms == DEFAULT_INTERVAL_MS
        assert config.vibrate_on_idle is False

    @pytest.mark.asyncio
    async def test_custom_default_interval(self, tmp_path):
        store = DurableConfig(tmp_path, default_interval_ms=4000)
        await store.initialize()
        try:
            assert (await store.load_config()).interval_ms == 4000
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_invalid_stored_interval(self, store):
        await store.put_many({"enabled": True, "interval_ms": -1})

        with pytest.raises(ConfigReadError):
            await store.load_config()

    @pytest.mark.asyncio
    async def test_extra_keys_ignored(self, store):
        await store.save_config(SchedulerConfig(enabled=True, interval_ms=3000))
        await store.put("runtime_status", {"state": "running"})

        assert (await store.load_config()).interval_ms == 3000

    @pytest.mark.asyncio
    async def test_export_to_yaml(self, store):
        await store.save_config(SchedulerConfig(enabled=True, interval_ms=3000))

        path = await store.export_to_yaml()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        assert data == {"enabled": True, "interval_ms": 3000, "vibrate_on_idle": False}
        assert not path.with_suffix(".tmp").exists()


class TestTriggerRuns:
    """Tests for the trigger run history."""

    @pytest.mark.asyncio
    async def test_save_and_get_runs(self, store):
        base = now_ms()
        await store.save_run(TriggerRun(base, base + 40, RunStatus.OK, action="launched"))
        await store.save_run(TriggerRun(base + 100, base + 110, RunStatus.FAILED, error="boom"))

        runs = await store.get_runs()
        assert [r.status for r in runs] == [RunStatus.FAILED, RunStatus.OK]
        assert runs[0].error == "boom"
        assert runs[1].duration_ms == 40
        assert all(r.id.startswith("run_") for r in runs)

    @pytest.mark.asyncio
    async def test_filter_runs(self, store):
        base = now_ms()
        for i in range(3):
            await store.save_run(TriggerRun(base + i, base + i, RunStatus.OK))
        await store.save_run(TriggerRun(base + 5, base + 5, RunStatus.FAILED))

        assert len(await store.get_runs(status=RunStatus.OK)) == 3
        assert len(await store.get_runs(since_ms=base + 2)) == 2
        assert len(await store.get_runs(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_stats_today(self, store):
        base = now_ms()
        await store.save_run(TriggerRun(base, base + 10, RunStatus.OK))
        await store.save_run(TriggerRun(base, base + 30, RunStatus.OK))
        await store.save_run(TriggerRun(base, base + 20, RunStatus.FAILED))

        stats = await store.get_runs_stats_today()
        assert stats["total"] == 3
        assert stats["success"] == 2
        assert stats["failed"] == 1
        assert stats["success_rate"] == pytest.approx(2 / 3)
        assert stats["avg_duration_ms"] == pytest.approx(20)

    @pytest.mark.asyncio
    async def test_stats_empty(self, store):
        stats = await store.get_runs_stats_today()

        assert stats["total"] == 0
        assert stats["success_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_delete_old_runs(self, store):
        base = now_ms()
        await store.save_run(TriggerRun(base - 10_000, base - 10_000, RunStatus.OK))
        await store.save_run(TriggerRun(base, base, RunStatus.OK))

        assert await store.delete_old_runs(base - 1000) == 1
        assert len(await store.get_runs()) == 1
