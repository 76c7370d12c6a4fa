"""
Scoped access to pooled connections: with_connection, connection(), and
query / query_one / execute helpers.

Application code should only touch a pooled connection inside one of these
scopes; the lease is always released on the way out, with the outcome of
the work as the health hint.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from dbpool.models import ProductTypeEnum

from .connect import cursor_to_dicts, execute as pool_execute
from .manager import ConnectionPool

T = TypeVar("T")


class PoolClient:
    """Borrow-use-return wrapper around a ConnectionPool."""

    def __init__(
        self, pool: ConnectionPool, *, product_type: ProductTypeEnum | None = None
    ) -> None:
        self.pool = pool
        if product_type is None and pool.config.target is not None:
            product_type = pool.config.target.product_type
        self.product_type = product_type

    @contextmanager
    def connection(self, timeout: float | None = None) -> Iterator[Any]:
        """Yield a leased connection; release it on every exit path."""
        lease = self.pool.acquire(timeout)
        healthy = False
        try:
            yield lease.connection
            healthy = True
        finally:
            self.pool.release(lease, healthy=healthy)

    def with_connection(
        self, fn: Callable[[Any], T], *, timeout: float | None = None
    ) -> T:
        """Run ``fn(conn)`` on a leased connection and return its result."""
        with self.connection(timeout) as conn:
            return fn(conn)

    def query(
        self, sql: str, params: dict | list | tuple | None = None
    ) -> list[dict[str, Any]]:
        def run(conn: Any) -> list[dict[str, Any]]:
            cur = self._run(conn, sql, params)
            try:
                return cursor_to_dicts(cur)
            finally:
                cur.close()

        return self.with_connection(run)

    def query_one(
        self, sql: str, params: dict | list | tuple | None = None
    ) -> dict[str, Any] | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def execute(self, sql: str, params: dict | list | tuple | None = None) -> int:
        """Run a DML statement, commit, and return the rowcount."""

        def run(conn: Any) -> int:
            cur = self._run(conn, sql, params)
            try:
                rc = cur.rowcount if cur.rowcount is not None else 0
            finally:
                cur.close()
            if self.product_type != ProductTypeEnum.TRINO:
                conn.commit()
            return rc

        return self.with_connection(run)

    def _run(self, conn: Any, sql: str, params: dict | list | tuple | None) -> Any:
        try:
            return pool_execute(conn, sql, params, product_type=self.product_type)
        except Exception:
            # If execution fails, rollback transaction before releasing connection
            if self.product_type != ProductTypeEnum.TRINO:
                try:
                    conn.rollback()
                except Exception:
                    pass
            raise
