"""
Models for the pooled database target and pool tunables.

ConnectionTarget says where to connect; PoolConfig says how many connections
to keep and for how long. Both validate on construction so that a bad
combination fails when the pool is built, not on first use.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class ProductTypeEnum(str, Enum):
    """Supported database product types (postgres, mysql, trino)."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    TRINO = "trino"


class ConnectionTarget(BaseModel):
    """Connection params for one external database."""

    model_config = ConfigDict(frozen=True)

    product_type: ProductTypeEnum
    host: str = Field(..., min_length=1, max_length=255)
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)
    password: SecretStr = Field(default=SecretStr(""))
    use_ssl: bool = Field(
        default=False, description="For Trino: use HTTPS. When True, password required."
    )

    @model_validator(mode="after")
    def trino_ssl_requires_password(self) -> "ConnectionTarget":
        if (
            self.product_type == ProductTypeEnum.TRINO
            and self.use_ssl
            and not self.password.get_secret_value().strip()
        ):
            raise ValueError("Password is required for Trino when using SSL/HTTPS.")
        return self

    def describe(self) -> str:
        """Loggable ``type://user@host:port/db`` string (no password)."""
        return (
            f"{self.product_type.value}://{self.username}@{self.host}:{self.port}"
            f"/{self.database}"
        )


class PoolConfig(BaseModel):
    """
    Immutable pool tunables. Durations are seconds.

    - min_idle: idle connections kept warm by maintenance.
    - max_size: hard cap on idle + checked-out connections.
    - acquire_timeout: default patience of ``acquire`` (0 = never wait).
    - idle_timeout: idle connections older than this are evicted (0 = never).
    - validation_interval: idle connections unused for longer are probed before reuse.
    - probe_timeout: bound for one health probe round-trip.
    - max_lifetime: connections older than this are retired (0 = unlimited).
    - leak_detection_threshold: warn about leases held longer (0 = off).
    - maintenance_interval: period of the background shrink (0 = no thread).
    - retry_backoff: initial back-off between failed connection attempts.
    """

    model_config = ConfigDict(frozen=True)

    target: ConnectionTarget | None = None
    min_idle: int = Field(default=0, ge=0)
    max_size: int = Field(default=10, ge=1)
    acquire_timeout: float = Field(default=30.0, ge=0)
    idle_timeout: float = Field(default=600.0, ge=0)
    validation_interval: float = Field(default=30.0, ge=0)
    probe_timeout: float = Field(default=5.0, ge=0)
    max_lifetime: float = Field(default=1800.0, ge=0)
    leak_detection_threshold: float = Field(default=0.0, ge=0)
    maintenance_interval: float = Field(default=30.0, ge=0)
    retry_backoff: float = Field(default=0.1, ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "PoolConfig":
        if self.min_idle > self.max_size:
            raise ValueError(
                f"min_idle ({self.min_idle}) must not exceed max_size ({self.max_size})"
            )
        if 0 < self.acquire_timeout < self.probe_timeout:
            raise ValueError(
                "probe_timeout must not exceed acquire_timeout "
                f"({self.probe_timeout} > {self.acquire_timeout})"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Any) -> "PoolConfig":
        """Build config (and target, when a host is set) from ``Settings``."""
        target = None
        if settings.POOL_DB_HOST:
            target = ConnectionTarget(
                product_type=settings.POOL_DB_PRODUCT_TYPE,
                host=settings.POOL_DB_HOST,
                port=settings.POOL_DB_PORT,
                database=settings.POOL_DB_NAME,
                username=settings.POOL_DB_USER,
                password=settings.POOL_DB_PASSWORD,
                use_ssl=settings.POOL_DB_USE_SSL,
            )
        return cls(
            target=target,
            min_idle=settings.POOL_MIN_IDLE,
            max_size=settings.POOL_MAX_SIZE,
            acquire_timeout=settings.POOL_ACQUIRE_TIMEOUT_SEC,
            idle_timeout=settings.POOL_IDLE_TIMEOUT_SEC,
            validation_interval=settings.POOL_VALIDATION_INTERVAL_SEC,
            probe_timeout=settings.POOL_PROBE_TIMEOUT_SEC,
            max_lifetime=settings.POOL_MAX_LIFETIME_SEC,
            leak_detection_threshold=settings.POOL_LEAK_DETECTION_SEC,
            maintenance_interval=settings.POOL_MAINTENANCE_INTERVAL_SEC,
            retry_backoff=settings.POOL_RETRY_BACKOFF_SEC,
        )
