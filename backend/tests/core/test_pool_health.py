"""Unit tests for core.pool.health: HealthChecker."""

from unittest.mock import MagicMock

import pytest

from dbpool.core.pool import HealthChecker, HealthStatus, ValidationFailure
from tests.utils.pool import FakeConnection, FakeFactory


def test_probe_healthy() -> None:
    factory = FakeFactory()
    checker = HealthChecker(factory, timeout=1.0)
    assert checker.probe(FakeConnection(1)) is HealthStatus.HEALTHY
    assert factory.pings == 1


def test_probe_never_raises() -> None:
    """Any ping failure resolves to UNHEALTHY."""
    factory = MagicMock()
    factory.ping.side_effect = TimeoutError("statement timeout")
    checker = HealthChecker(factory, timeout=1.0)
    assert checker.probe(object()) is HealthStatus.UNHEALTHY


def test_probe_uses_smaller_of_timeouts() -> None:
    factory = MagicMock()
    checker = HealthChecker(factory, timeout=2.0)
    conn = object()
    checker.probe(conn, timeout=0.25)
    factory.ping.assert_called_once_with(conn, 0.25)
    factory.ping.reset_mock()
    checker.probe(conn, timeout=10.0)
    factory.ping.assert_called_once_with(conn, 2.0)


def test_probe_without_time_left_is_unhealthy() -> None:
    factory = MagicMock()
    checker = HealthChecker(factory, timeout=1.0)
    assert checker.probe(object(), timeout=0) is HealthStatus.UNHEALTHY
    factory.ping.assert_not_called()


def test_require_healthy_raises_validation_failure() -> None:
    conn = FakeConnection(1)
    conn.broken = True
    with pytest.raises(ValidationFailure):
        HealthChecker(FakeFactory()).require_healthy(conn)
