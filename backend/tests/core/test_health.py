"""Unit tests for core.health: liveness and readiness checks."""

from unittest.mock import patch

from dbpool.core.health import check_pool, liveness_check, readiness_check
from dbpool.core.pool import PoolClient
from tests.utils.pool import FakeFactory


def test_liveness_always_ok() -> None:
    assert liveness_check() == (True, [])


def test_readiness_without_pool() -> None:
    assert readiness_check(None) == (False, ["pool_not_configured"])


def test_readiness_ok_with_healthy_pool(make_pool, factory: FakeFactory) -> None:
    pool = make_pool()
    assert readiness_check(pool) == (True, [])
    assert factory.pings == 1
    assert pool.active_count == 0


def test_readiness_reports_closed_pool(make_pool) -> None:
    pool = make_pool()
    pool.close()
    assert check_pool(pool) == "pool_closed"


def test_readiness_reports_acquire_failure(make_pool, factory: FakeFactory) -> None:
    pool = make_pool(probe_timeout=0.05)
    factory.fail(1000)
    assert check_pool(pool) == "pool_acquire"


def test_readiness_reports_failed_probe(make_pool, factory: FakeFactory) -> None:
    pool = make_pool()
    pool.release(pool.acquire())
    factory.created[0].broken = True
    assert check_pool(pool) == "pool_probe"
    assert pool.idle_count == 0


def test_readiness_borrows_through_pool_client(make_pool) -> None:
    pool = make_pool()
    with patch("dbpool.core.health.PoolClient", wraps=PoolClient) as client_cls:
        assert check_pool(pool) is None
    client_cls.assert_called_once_with(pool)
    assert pool.idle_count == 1


def test_readiness_discards_connection_failing_probe_after_reset(
    make_pool, factory: FakeFactory
) -> None:
    """The connection rolls back fine but never answers SELECT 1: it is not returned to idle."""
    pool = make_pool()
    pool.release(pool.acquire())
    conn = factory.created[0]
    with patch.object(factory, "ping", side_effect=RuntimeError("no response")):
        assert check_pool(pool) == "pool_probe"
    assert conn.closed is True
    assert pool.idle_count == 0
    assert pool.active_count == 0
