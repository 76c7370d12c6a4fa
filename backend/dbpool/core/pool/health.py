"""
Connection health check for pooled connections.
"""

import logging
from enum import Enum
from typing import Any

from .connect import ConnectionFactory
from .errors import ValidationFailure

_log = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthChecker:
    """Bounded liveness probe run through the factory's ``ping``."""

    def __init__(self, factory: ConnectionFactory, timeout: float = 5.0) -> None:
        self._factory = factory
        self.timeout = timeout

    def probe(self, conn: Any, timeout: float | None = None) -> HealthStatus:
        """
        Ping *conn* within *timeout* (defaults to the checker's own timeout).

        Never raises: a driver error, a statement timeout or a protocol error
        all resolve to UNHEALTHY.
        """
        limit = self.timeout if timeout is None else min(timeout, self.timeout)
        if limit <= 0:
            return HealthStatus.UNHEALTHY
        try:
            self._factory.ping(conn, limit)
        except Exception as e:
            _log.debug("Health probe failed: %s", e)
            return HealthStatus.UNHEALTHY
        return HealthStatus.HEALTHY

    def require_healthy(self, conn: Any, timeout: float | None = None) -> None:
        """Like probe() but raises ValidationFailure instead of returning UNHEALTHY."""
        if self.probe(conn, timeout) is not HealthStatus.HEALTHY:
            raise ValidationFailure("Connection failed its health probe")
