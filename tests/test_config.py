"""Tests for daemon settings."""
from pathlib import Path

import pytest

from wakekeeper.config import Settings
from wakekeeper.scheduler.errors import ConfigError


class TestSettings:
    """Tests for YAML and environment loading."""

    def test_defaults(self):
        settings = Settings()

        assert settings.default_interval_ms == 20000
        assert settings.wake_timeout_ms == 10 * 60 * 60 * 1000
        assert settings.watchdog_backend == "systemd"
        assert settings.pid_file == settings.data_dir / "wakekeeper.pid"

    def test_yaml_overlay(self, tmp_path):
        path = tmp_path / "wakekeeper.yml"
        path.write_text(
            "target_app_id: org.example.target\n"
            "default_interval_ms: 5000\n"
            f"data_dir: {tmp_path / 'data'}\n"
        )

        settings = Settings.from_yaml(path)

        assert settings.target_app_id == "org.example.target"
        assert settings.default_interval_ms == 5000
        assert settings.data_dir == tmp_path / "data"
        assert settings.idle_timeout_ms == 5000

    def test_yaml_unknown_key(self, tmp_path):
        path = tmp_path / "wakekeeper.yml"
        path.write_text("interval: 5\n")

        with pytest.raises(ConfigError, match="interval"):
            Settings.from_yaml(path)

    def test_yaml_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            Settings.from_yaml(tmp_path / "missing.yml")

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "wakekeeper.yml"
        path.write_text("default_interval_ms: 5000\nplatform: linux\n")
        monkeypatch.setenv("WAKEKEEPER_CONFIG", str(path))
        monkeypatch.setenv("WAKEKEEPER_DEFAULT_INTERVAL_MS", "7000")
        monkeypatch.setenv("WAKEKEEPER_PLATFORM", "NULL")
        monkeypatch.setenv("WAKEKEEPER_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("WAKEKEEPER_DEBUG", "true")

        settings = Settings.from_env()

        assert settings.default_interval_ms == 7000
        assert settings.platform == "null"
        assert settings.data_dir == Path(tmp_path)
        assert settings.debug is True

    def test_env_bad_integer(self, monkeypatch):
        monkeypatch.delenv("WAKEKEEPER_CONFIG", raising=False)
        monkeypatch.setenv("WAKEKEEPER_IDLE_TIMEOUT_MS", "soon")

        with pytest.raises(ConfigError, match="WAKEKEEPER_IDLE_TIMEOUT_MS"):
            Settings.from_env()
