"""
Connection pooling and statement execution for an external database.

No driver layer: psycopg, pymysql and trino are installed via pip; a ConnectionTarget is enough.
"""

from .client import PoolClient
from .connect import (
    ConnectionFactory,
    DriverConnectionFactory,
    connect,
    cursor_to_dicts,
    execute,
)
from .errors import (
    AcquireTimeout,
    ConnectFailure,
    ConnectFailureKind,
    MisuseError,
    PoolClosed,
    PoolError,
    ValidationFailure,
)
from .health import HealthChecker, HealthStatus
from .manager import ConnectionPool, ConnectionState, Lease, PooledConnection

__all__ = [
    "AcquireTimeout",
    "ConnectFailure",
    "ConnectFailureKind",
    "ConnectionFactory",
    "ConnectionPool",
    "ConnectionState",
    "DriverConnectionFactory",
    "HealthChecker",
    "HealthStatus",
    "Lease",
    "MisuseError",
    "PoolClient",
    "PoolClosed",
    "PoolError",
    "PooledConnection",
    "ValidationFailure",
    "connect",
    "cursor_to_dicts",
    "execute",
]
