from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fakes import SleepRecorder
from hookrelay import ratelimit
from hookrelay.config import settings
from hookrelay.main import app


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def client(tmp_path, monkeypatch):
    snapshot = settings.model_dump()
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "hooks.db"))
    monkeypatch.setenv("API_KEYS", "k1")
    monkeypatch.setenv("API_TOKEN", "t0ken")
    ratelimit._buckets.clear()
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
        for key, value in snapshot.items():
            setattr(settings, key, value)
