"""Functional tests: root, health and error envelopes shared by every route."""

from unittest.mock import AsyncMock

import pytest
from db import get_db_service

from .mock_db import make_mock_session
from .personas import mari

pytestmark = pytest.mark.functional


def test_root_endpoint(make_client):
    client = make_client(mari(), make_mock_session())
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Citizen OS" in resp.json()["message"]


@pytest.mark.parametrize("db_ok,expected", [(True, "healthy"), (False, "unhealthy")])
def test_health_reports_database(app, make_client, db_ok, expected):
    db_service = AsyncMock()
    db_service.health_check.return_value = db_ok
    client = make_client(mari(), make_mock_session())
    app.dependency_overrides[get_db_service] = lambda: db_service

    resp = client.get("/health/")

    assert resp.status_code == 200
    items = {item["name"]: item for item in resp.json()}
    assert items["API"]["status"] == "healthy"
    assert items["Database"]["status"] == expected


def test_unknown_route_uses_error_envelope(make_client):
    client = make_client(mari(), make_mock_session())
    resp = client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"status": {"code": 40400, "message": "Not Found"}}


def test_unauthenticated_request_is_401_envelope(monkeypatch, app):
    from fastapi.testclient import TestClient

    from src.core.config import settings

    monkeypatch.setattr(settings, "AUTH_DISABLED", False)
    resp = TestClient(app).get("/api/users/self")

    assert resp.status_code == 401
    assert resp.json()["status"]["code"] == 40100
    assert resp.headers["WWW-Authenticate"] == "Bearer"
