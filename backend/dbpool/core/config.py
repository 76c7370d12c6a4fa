from typing import Literal

from pydantic import HttpUrl, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbpool.models import ProductTypeEnum


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "dbpool"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: HttpUrl | None = None

    # Pooled database target. Credentials come from the environment only.
    POOL_DB_PRODUCT_TYPE: ProductTypeEnum = ProductTypeEnum.POSTGRES
    POOL_DB_HOST: str = ""
    POOL_DB_PORT: int = 5432
    POOL_DB_NAME: str = ""
    POOL_DB_USER: str = ""
    POOL_DB_PASSWORD: SecretStr = SecretStr("")
    POOL_DB_USE_SSL: bool = False

    # Pool tunables (seconds for every duration)
    POOL_MIN_IDLE: int = 0
    POOL_MAX_SIZE: int = 10
    POOL_ACQUIRE_TIMEOUT_SEC: float = 30.0
    POOL_IDLE_TIMEOUT_SEC: float = 600.0
    POOL_VALIDATION_INTERVAL_SEC: float = 30.0
    POOL_PROBE_TIMEOUT_SEC: float = 5.0
    POOL_MAX_LIFETIME_SEC: float = 1800.0
    POOL_LEAK_DETECTION_SEC: float = 0.0
    POOL_MAINTENANCE_INTERVAL_SEC: float = 30.0
    POOL_RETRY_BACKOFF_SEC: float = 0.1

    # Driver level timeouts
    EXTERNAL_DB_CONNECT_TIMEOUT: int = 10
    EXTERNAL_DB_STATEMENT_TIMEOUT: int | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pool_configured(self) -> bool:
        return bool(self.POOL_DB_HOST)


settings = Settings()  # type: ignore
