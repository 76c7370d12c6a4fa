"""
Health-check helpers for liveness and readiness probes.

Liveness:  is the process alive and not deadlocked?  (cheap, no I/O)
Readiness: can it serve traffic?  (pool open + one connection borrowed and probed)
"""

import logging

from dbpool.core.pool import ConnectionPool, PoolClient, PoolError, ValidationFailure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Individual dependency checks
# ---------------------------------------------------------------------------

def check_pool(pool: ConnectionPool | None) -> str | None:
    """Borrow one connection and probe it. Returns a failure label, or None if ok."""
    if pool is None:
        return "pool_not_configured"
    if pool.closed:
        return "pool_closed"
    timeout = pool.config.probe_timeout
    try:
        PoolClient(pool).with_connection(
            lambda conn: pool.health_checker.require_healthy(conn, timeout),
            timeout=timeout,
        )
    except ValidationFailure:
        logger.warning("Readiness: pooled connection failed its health probe")
        return "pool_probe"
    except PoolError as e:
        logger.warning("Readiness: could not acquire a connection: %s", e)
        return "pool_acquire"
    return None


# ---------------------------------------------------------------------------
# Composite probes
# ---------------------------------------------------------------------------

def liveness_check() -> tuple[bool, list[str]]:
    """
    Lightweight liveness probe; just confirms the Python process is responsive.
    No I/O, no DB calls.  Return format matches readiness_check for consistency.
    """
    return (True, [])


def readiness_check(pool: ConnectionPool | None) -> tuple[bool, list[str]]:
    """
    Run the pool check.
    Returns (ok, list of failure messages). ok is False if any required check fails.
    """
    failures: list[str] = []

    failure = check_pool(pool)
    if failure is not None:
        failures.append(failure)

    return (len(failures) == 0, failures)
