# tests/test_config.py
from __future__ import annotations

from api.app.config import Settings


def test_queue_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///x.db")
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    settings = Settings(_env_file=None)

    assert settings.queue_poll_interval == 1.0
    assert settings.queue_rate_limit_delay == 5.0
    assert settings.queue_max_attempts == 3
    assert settings.queue_cleanup_interval == 3600.0
    assert settings.queue_retention_hours == 24.0
    assert settings.bridge_poll_interval == 5.0
    assert settings.bridge_timeout == 300.0


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///x.db")
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    monkeypatch.setenv("QUEUE_RATE_LIMIT_DELAY", "0.5")
    monkeypatch.setenv("QUEUE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("MEDIA_STORAGE_PATH", str(tmp_path / "media"))
    settings = Settings(_env_file=None)

    assert settings.queue_rate_limit_delay == 0.5
    assert settings.queue_max_attempts == 5
    assert settings.media_dir.is_dir()
