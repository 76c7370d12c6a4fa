"""Unit tests for PoolConfig / ConnectionTarget validation."""

import pytest
from pydantic import SecretStr, ValidationError

from dbpool.core.config import Settings
from dbpool.models import ConnectionTarget, PoolConfig, ProductTypeEnum


def test_pool_config_defaults_are_valid() -> None:
    cfg = PoolConfig()
    assert cfg.min_idle <= cfg.max_size
    assert cfg.target is None


def test_pool_config_rejects_min_idle_above_max_size() -> None:
    with pytest.raises(ValidationError, match="min_idle"):
        PoolConfig(min_idle=5, max_size=2)


@pytest.mark.parametrize(
    "field",
    ["acquire_timeout", "idle_timeout", "validation_interval", "probe_timeout", "max_lifetime"],
)
def test_pool_config_rejects_negative_durations(field: str) -> None:
    with pytest.raises(ValidationError):
        PoolConfig(**{field: -1})


def test_pool_config_rejects_zero_max_size() -> None:
    with pytest.raises(ValidationError):
        PoolConfig(max_size=0, min_idle=0)


def test_pool_config_probe_timeout_within_acquire_timeout() -> None:
    with pytest.raises(ValidationError, match="probe_timeout"):
        PoolConfig(acquire_timeout=1.0, probe_timeout=2.0)
    # acquire_timeout=0 means "never wait"; probe_timeout is then unconstrained
    assert PoolConfig(acquire_timeout=0, probe_timeout=2.0).probe_timeout == 2.0


def test_pool_config_is_immutable() -> None:
    cfg = PoolConfig()
    with pytest.raises(ValidationError):
        cfg.max_size = 99  # type: ignore[misc]


def test_trino_ssl_requires_password() -> None:
    with pytest.raises(ValidationError, match="Password is required"):
        ConnectionTarget(
            product_type=ProductTypeEnum.TRINO,
            host="trino",
            port=8080,
            database="hive",
            username="u",
            use_ssl=True,
        )


def test_target_describe_hides_password() -> None:
    target = ConnectionTarget(
        product_type=ProductTypeEnum.POSTGRES,
        host="db",
        database="app",
        username="svc",
        password=SecretStr("hunter2"),
    )
    assert target.describe() == "postgres://svc@db:5432/app"
    assert "hunter2" not in repr(target)


def test_pool_config_from_settings() -> None:
    s = Settings(
        POOL_DB_PRODUCT_TYPE="mysql",
        POOL_DB_HOST="mysql",
        POOL_DB_PORT=3306,
        POOL_DB_NAME="app",
        POOL_DB_USER="app",
        POOL_DB_PASSWORD="secret",
        POOL_MIN_IDLE=1,
        POOL_MAX_SIZE=4,
        POOL_ACQUIRE_TIMEOUT_SEC=10,
    )
    cfg = PoolConfig.from_settings(s)
    assert s.pool_configured is True
    assert cfg.max_size == 4
    assert cfg.min_idle == 1
    assert cfg.acquire_timeout == 10
    assert cfg.target is not None
    assert cfg.target.product_type == ProductTypeEnum.MYSQL
    assert cfg.target.password.get_secret_value() == "secret"


def test_pool_config_from_settings_without_host() -> None:
    s = Settings(POOL_DB_HOST="")
    assert s.pool_configured is False
    assert PoolConfig.from_settings(s).target is None
