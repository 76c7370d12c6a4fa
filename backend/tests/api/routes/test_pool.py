"""Tests for /api/v1/pool routes."""

from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from dbpool.core.config import settings
from dbpool.core.pool import ConnectionPool
from dbpool.main import app


@pytest.fixture
def app_pool(make_pool) -> Generator[ConnectionPool, None, None]:
    pool = make_pool()
    app.state.pool = pool
    yield pool
    app.state.pool = None


def test_stats_returns_counters(client: TestClient, app_pool: ConnectionPool) -> None:
    lease = app_pool.acquire()
    r = client.get(f"{settings.API_V1_STR}/pool/stats")
    app_pool.release(lease)
    assert r.status_code == 200
    data = r.json()
    assert data["active_connections"] == 1
    assert data["idle_connections"] == 0
    assert data["total_created"] == 1
    assert data["max_size"] == 2
    assert data["closed"] is False


def test_stats_503_without_pool(client: TestClient) -> None:
    app.state.pool = None
    r = client.get(f"{settings.API_V1_STR}/pool/stats")
    assert r.status_code == 503
    assert "No database pool" in r.json()["detail"]


def test_test_connection_ok(client: TestClient, app_pool: ConnectionPool) -> None:
    with patch("dbpool.core.pool.client.cursor_to_dicts", return_value=[{"ok": 1}]):
        r = client.post(f"{settings.API_V1_STR}/pool/test")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "message": "Connection successful"}
    assert app_pool.active_count == 0
    assert app_pool.idle_count == 1


def test_test_connection_no_rows(client: TestClient, app_pool: ConnectionPool) -> None:
    with patch("dbpool.core.pool.client.cursor_to_dicts", return_value=[]):
        r = client.post(f"{settings.API_V1_STR}/pool/test")
    assert r.json()["ok"] is False


def test_test_connection_reports_pool_error(
    client: TestClient, app_pool: ConnectionPool
) -> None:
    app_pool.close()
    r = client.post(f"{settings.API_V1_STR}/pool/test")
    assert r.status_code == 200
    assert r.json() == {"ok": False, "message": "Pool is closed"}
