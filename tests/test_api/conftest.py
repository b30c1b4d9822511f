"""Shared fixtures for API tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.schemas import AlertRecord, Owner, validate_payload
from deferred_alerts.alerts.store import RemovalOutcome
from deferred_alerts.api.app import create_app
from deferred_alerts.api.auth import verify_api_key
from deferred_alerts.api.dependencies import get_engine


def _make_record(
    alert_id: int = 1,
    realm: str = "https://en1.example.com",
    owner_id: int = 42,
    **kwargs,
) -> AlertRecord:
    """Helper to create an AlertRecord with sensible defaults."""
    payload = validate_payload({
        "title": kwargs.pop("title", "Construction finished"),
        "body": "The barracks are ready",
        "due_at": 1772357400000,
        "repeat_interval_ms": 0,
        "persistent": False,
    })
    return AlertRecord(
        id=alert_id,
        owner=Owner(realm=realm, owner_id=owner_id),
        payload=payload,
        **kwargs,
    )


@pytest.fixture
def mock_engine():
    """Mock AlertEngine."""
    engine = MagicMock(spec=AlertEngine)
    engine.get_all = AsyncMock(return_value=[])
    engine.get = AsyncMock(return_value=None)
    engine.create = AsyncMock(return_value=1)
    engine.set_data = AsyncMock(return_value=1)
    engine.delete = AsyncMock(return_value=RemovalOutcome.HARD_DELETED)
    engine.acknowledge = AsyncMock(return_value=None)
    engine.preview = AsyncMock(return_value=True)
    engine.preview_existing = AsyncMock(return_value=True)

    engine.store = MagicMock()
    engine.store.health_check = AsyncMock(return_value=True)
    engine.dispatcher = MagicMock(running=True, pending=0)
    engine.notifications = MagicMock()
    return engine


@pytest.fixture
def client(mock_engine, monkeypatch):
    """FastAPI TestClient with dependency overrides for the engine.

    The lifespan still runs, against the in-memory backend.
    """
    monkeypatch.setenv("ALERTS_STORE_BACKEND", "memory")
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_engine] = lambda: mock_engine

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return {"X-Owner-Realm": "https://en1.example.com", "X-Owner-Id": "42"}
