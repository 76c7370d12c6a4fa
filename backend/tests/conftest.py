from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from dbpool.core.pool import ConnectionPool
from dbpool.main import app
from tests.utils.pool import FakeFactory, make_config


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def make_pool(factory: FakeFactory) -> Generator[Any, None, None]:
    """Build pools on the fake factory; all are closed at teardown."""
    pools: list[ConnectionPool] = []

    def _make(**overrides: Any) -> ConnectionPool:
        pool = ConnectionPool(make_config(**overrides), factory)
        pools.append(pool)
        return pool

    yield _make
    for pool in pools:
        pool.close()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
