"""Tests for atlas.config — environment variable loading and validation."""

import pytest

from atlas.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure Atlas env vars are cleared between tests."""
    for var in [
        "DB_PATH",
        "LOG_LEVEL",
        "API_PORT",
        "SYNC_INTERVAL_SECONDS",
        "FETCH_TIMEOUT_SECONDS",
        "WEEKLY_SUMMARY_WEEKDAY",
        "WEEKLY_SUMMARY_HOUR",
        "DEFAULT_LANGUAGE",
    ]:
        monkeypatch.delenv(var, raising=False)


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        cfg = load_config(env_path=str(tmp_path / "nonexistent.env"))
        assert cfg.db_path == "data/atlas.db"
        assert cfg.log_level == "INFO"
        assert cfg.api_port == 8080
        assert cfg.sync_interval_seconds == 3600
        assert cfg.fetch_timeout_seconds == 30.0
        assert cfg.weekly_summary_weekday == 6
        assert cfg.weekly_summary_hour == 18
        assert cfg.default_language == "en"

    def test_reads_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DB_PATH", "/var/lib/atlas/journal.db")
        monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "900")
        monkeypatch.setenv("WEEKLY_SUMMARY_WEEKDAY", "4")
        monkeypatch.setenv("DEFAULT_LANGUAGE", "fr")
        cfg = load_config(env_path=str(tmp_path / "nonexistent.env"))
        assert cfg.db_path == "/var/lib/atlas/journal.db"
        assert cfg.sync_interval_seconds == 900
        assert cfg.weekly_summary_weekday == 4
        assert cfg.default_language == "fr"

    def test_reads_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("API_PORT=9090\nWEEKLY_SUMMARY_HOUR=7\n", encoding="utf-8")
        cfg = load_config(env_path=str(env_file))
        assert cfg.api_port == 9090
        assert cfg.weekly_summary_hour == 7

    def test_rejects_non_integer(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "hourly")
        with pytest.raises(ValueError, match="SYNC_INTERVAL_SECONDS"):
            load_config(env_path=str(tmp_path / "nonexistent.env"))

    def test_rejects_weekday_out_of_range(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WEEKLY_SUMMARY_WEEKDAY", "7")
        with pytest.raises(ValueError, match="WEEKLY_SUMMARY_WEEKDAY"):
            load_config(env_path=str(tmp_path / "nonexistent.env"))

    def test_rejects_zero_interval(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "0")
        with pytest.raises(ValueError, match="at least 1"):
            load_config(env_path=str(tmp_path / "nonexistent.env"))

    def test_rejects_bad_timeout(self, monkeypatch, tmp_path):
        monkeypatch.setenv("FETCH_TIMEOUT_SECONDS", "soon")
        with pytest.raises(ValueError, match="FETCH_TIMEOUT_SECONDS"):
            load_config(env_path=str(tmp_path / "nonexistent.env"))
