"""Unit tests for the cache maintenance Celery tasks."""

import asyncio

from packages.common.config import get_settings
from services.worker.celery_app import app
from services.worker.tasks import cache_maintenance


def test_sweep_scheduled_daily():
    entry = app.conf.beat_schedule["sweep-expired-suggestions"]
    assert entry["task"] == "services.worker.tasks.cache_maintenance.sweep_expired_suggestions"
    assert entry["schedule"] == 24 * 3600.0


def test_tasks_registered():
    assert "services.worker.tasks.cache_maintenance.sweep_expired_suggestions" in app.tasks
    assert "services.worker.tasks.cache_maintenance.invalidate_country_suggestions" in app.tasks


def test_sweep_task_runs_janitor(monkeypatch):
    calls = []

    async def fake_run_janitor(operation, *args):
        calls.append((operation, args))
        return 4

    monkeypatch.setattr(cache_maintenance, "_run_janitor", fake_run_janitor)

    assert cache_maintenance.sweep_expired_suggestions() == {"status": "completed", "removed": 4}
    assert calls == [("sweep_expired", ())]


def test_invalidate_country_task(monkeypatch):
    async def fake_run_janitor(operation, *args):
        assert operation == "invalidate_country"
        assert args == ("fr",)
        return 2

    monkeypatch.setattr(cache_maintenance, "_run_janitor", fake_run_janitor)

    result = cache_maintenance.invalidate_country_suggestions("fr")
    assert result == {"status": "completed", "country": "FR", "removed": 2}


class RecordingSessionManager:

    def __init__(self):
        self.events = []

    async def init(self, database_url, **kwargs):
        self.events.append(("init", database_url))

    async def close(self):
        self.events.append(("close",))


class StubJanitor:

    def __init__(self, settings=None):
        pass

    async def sweep_expired(self):
        return 3


def test_janitor_prefers_database_url_env(monkeypatch):
    manager = RecordingSessionManager()
    monkeypatch.setattr(cache_maintenance, "sessionmanager", manager)
    monkeypatch.setattr(cache_maintenance, "CacheJanitor", StubJanitor)
    monkeypatch.setenv("DATABASE_URL", "postgresql://worker@db.internal/offers")

    assert asyncio.run(cache_maintenance._run_janitor("sweep_expired")) == 3
    assert manager.events == [("init", "postgresql://worker@db.internal/offers"), ("close",)]


def test_janitor_falls_back_to_settings_url(monkeypatch):
    manager = RecordingSessionManager()
    monkeypatch.setattr(cache_maintenance, "sessionmanager", manager)
    monkeypatch.setattr(cache_maintenance, "CacheJanitor", StubJanitor)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    asyncio.run(cache_maintenance._run_janitor("sweep_expired"))

    assert manager.events[0] == ("init", get_settings().database_url)
