"""Tests for /api/v1/utils routes (liveness, health-check)."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from dbpool.core.config import settings
from dbpool.main import app


def test_liveness_returns_200(client: TestClient) -> None:
    r = client.get(f"{settings.API_V1_STR}/utils/liveness/")
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_returns_200_when_ready(client: TestClient, make_pool) -> None:
    """GET /health-check/ returns 200 with true when a pooled connection can be borrowed and probed."""
    app.state.pool = make_pool()
    try:
        r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    finally:
        app.state.pool = None
    assert r.status_code == 200
    assert r.json() is True


def test_health_check_returns_503_without_pool(client: TestClient) -> None:
    app.state.pool = None
    r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 503
    data = r.json()
    assert data["success"] is False
    assert data["data"] == ["pool_not_configured"]


def test_health_check_returns_503_when_readiness_fails(client: TestClient) -> None:
    """GET /health-check/ returns 503 with envelope when readiness_check fails."""
    with patch(
        "dbpool.api.routes.utils.readiness_check", return_value=(False, ["pool_acquire"])
    ):
        r = client.get(f"{settings.API_V1_STR}/utils/health-check/")
    assert r.status_code == 503
    data = r.json()
    assert data.get("success") is False
    assert "pool_acquire" in data["data"]
