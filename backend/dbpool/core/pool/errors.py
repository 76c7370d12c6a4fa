"""
Errors raised across the pool boundary.

Callers only ever see these; driver exceptions are wrapped as ConnectFailure.
"""

from enum import Enum


class ConnectFailureKind(str, Enum):
    AUTH = "auth"
    NETWORK = "network"
    TIMEOUT = "timeout"


class PoolError(Exception):
    """Base class for pool errors."""


class ConnectFailure(PoolError):
    """The factory could not open a connection to the store."""

    def __init__(
        self, reason: str, kind: ConnectFailureKind = ConnectFailureKind.NETWORK
    ) -> None:
        super().__init__(f"{kind.value}: {reason}")
        self.reason = reason
        self.kind = kind


class AcquireTimeout(PoolError):
    """No connection could be handed out before the caller's deadline."""

    def __init__(self, timeout: float, message: str | None = None) -> None:
        super().__init__(message or f"Timed out after {timeout:.3f}s waiting for a connection")
        self.timeout = timeout


class PoolClosed(PoolError):
    """Operation attempted on a pool that has been closed."""

    def __init__(self, message: str = "Pool is closed") -> None:
        super().__init__(message)


class ValidationFailure(PoolError):
    """A connection failed its health probe."""


class MisuseError(PoolError):
    """Lease used after release, released twice, or released to the wrong pool."""
