"""
Connection factory for pooled external databases.

Uses psycopg (PostgreSQL), pymysql (MySQL), or trino (Trino) based on product_type.
No driver layer: libs are installed via pip; a ConnectionTarget is enough.
The factory opens exactly one connection per call and never retries; retry
policy belongs to the pool.
"""

import logging
import math
import socket
from typing import Any, Protocol

import psycopg
import pymysql
from trino.auth import BasicAuthentication
from trino.dbapi import connect as trino_connect

from dbpool.core.config import settings
from dbpool.models import ConnectionTarget, ProductTypeEnum

from .errors import ConnectFailure, ConnectFailureKind

_log = logging.getLogger(__name__)

# pymysql error codes for rejected credentials / database access
_MYSQL_AUTH_CODES = frozenset({1044, 1045, 1698})
_AUTH_MARKERS = ("authentication", "access denied", "password", "permission denied")
_TIMEOUT_MARKERS = ("timeout", "timed out")
# psycopg raises any connect_timeout below 2s to 2s
_PG_MIN_CONNECT_TIMEOUT = 2


class ConnectionFactory(Protocol):
    """Capabilities the pool needs from a backing store: open, reset, ping, close."""

    def create(self, timeout: float | None = None) -> Any: ...

    def reset(self, conn: Any) -> None: ...

    def ping(self, conn: Any, timeout: float) -> None: ...

    def close(self, conn: Any) -> None: ...


def classify_connect_error(exc: BaseException) -> ConnectFailureKind:
    """Map a driver exception to AUTH, NETWORK or TIMEOUT."""
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return ConnectFailureKind.TIMEOUT
    if isinstance(exc, pymysql.err.OperationalError) and exc.args:
        if exc.args[0] in _MYSQL_AUTH_CODES:
            return ConnectFailureKind.AUTH
    msg = str(exc).lower()
    if any(m in msg for m in _AUTH_MARKERS):
        return ConnectFailureKind.AUTH
    if any(m in msg for m in _TIMEOUT_MARKERS):
        return ConnectFailureKind.TIMEOUT
    return ConnectFailureKind.NETWORK


def connect(target: ConnectionTarget, *, timeout: float | None = None) -> Any:
    """
    Open a connection to an external DB described by *target*.

    - timeout: connect timeout in seconds; defaults to EXTERNAL_DB_CONNECT_TIMEOUT.
    """
    pt = target.product_type
    password = target.password.get_secret_value()
    timeout = timeout if timeout is not None else settings.EXTERNAL_DB_CONNECT_TIMEOUT

    if pt == ProductTypeEnum.POSTGRES:
        return psycopg.connect(
            host=target.host,
            port=target.port,
            dbname=target.database,
            user=target.username,
            password=password,
            connect_timeout=math.ceil(timeout),
        )
    if pt == ProductTypeEnum.MYSQL:
        return pymysql.connect(
            host=target.host,
            port=target.port,
            database=target.database,
            user=target.username,
            password=password,
            connect_timeout=timeout,
        )
    if pt == ProductTypeEnum.TRINO:
        return trino_connect(
            host=target.host,
            port=target.port,
            user=target.username,
            auth=BasicAuthentication(target.username, password) if password else None,
            catalog=target.database,
            schema="default",
            source="dbpool",
            http_scheme="https" if target.use_ssl else "http",
            request_timeout=timeout,
        )
    raise ValueError(f"Unsupported product_type: {pt}")


def execute(
    conn: Any,
    sql: str,
    params: dict | list | tuple | None = None,
    *,
    product_type: ProductTypeEnum | None = None,
    timeout: float | None = None,
) -> Any:
    """
    Execute SQL and return the cursor. Caller uses cursor_to_dicts(cursor) or cursor.rowcount.

    - product_type: selects the session statement-timeout syntax (Postgres: statement_timeout,
      MySQL: max_execution_time, Trino: query_max_execution_time).
    - timeout: seconds; defaults to EXTERNAL_DB_STATEMENT_TIMEOUT. When set, applied before
      the query and reset after.
    """
    timeout_sec = timeout if timeout is not None else settings.EXTERNAL_DB_STATEMENT_TIMEOUT
    use_timeout = timeout_sec is not None and timeout_sec > 0 and product_type is not None

    if use_timeout:
        timeout_ms = max(1, int(timeout_sec * 1000))
        cur_set = conn.cursor()
        try:
            if product_type == ProductTypeEnum.POSTGRES:
                cur_set.execute(
                    "SELECT set_config('statement_timeout', %s, false)", (str(timeout_ms),)
                )
            elif product_type == ProductTypeEnum.MYSQL:
                cur_set.execute("SET SESSION max_execution_time = %s", (timeout_ms,))
            elif product_type == ProductTypeEnum.TRINO:
                cur_set.execute(
                    "SET SESSION query_max_execution_time = '%sms'" % timeout_ms
                )
        finally:
            try:
                cur_set.close()
            except Exception:
                pass

    cur = conn.cursor()
    try:
        if params is not None:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    finally:
        if use_timeout:
            try:
                cur_reset = conn.cursor()
                if product_type == ProductTypeEnum.POSTGRES:
                    cur_reset.execute("SET statement_timeout = 0")
                elif product_type == ProductTypeEnum.MYSQL:
                    cur_reset.execute("SET SESSION max_execution_time = 0")
                elif product_type == ProductTypeEnum.TRINO:
                    cur_reset.execute("SET SESSION query_max_execution_time = '0s'")
                cur_reset.close()
            except Exception:
                _log.debug("Could not reset statement timeout", exc_info=True)

    return cur


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts. Works for psycopg, pymysql and trino."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]


class DriverConnectionFactory:
    """ConnectionFactory backed by the psycopg / pymysql / trino drivers."""

    def __init__(
        self, target: ConnectionTarget, *, connect_timeout: int | None = None
    ) -> None:
        self.target = target
        self._connect_timeout: int = (
            connect_timeout
            if connect_timeout is not None
            else settings.EXTERNAL_DB_CONNECT_TIMEOUT
        )

    @property
    def product_type(self) -> ProductTypeEnum:
        return self.target.product_type

    def create(self, timeout: float | None = None) -> Any:
        """
        Open one connection; the connect timeout never exceeds *timeout*.

        Postgres only takes whole seconds with a 2s floor, so with less time
        left than that no dial is attempted and a TIMEOUT failure is raised.
        """
        limit: float = self._connect_timeout
        if timeout is not None:
            limit = min(limit, timeout)
            if self.product_type == ProductTypeEnum.POSTGRES:
                if limit < _PG_MIN_CONNECT_TIMEOUT:
                    raise ConnectFailure(
                        f"{limit:.3f}s left to connect to {self.target.describe()}",
                        ConnectFailureKind.TIMEOUT,
                    )
                limit = math.floor(limit)
        try:
            conn = connect(self.target, timeout=limit)
        except Exception as e:
            kind = classify_connect_error(e)
            _log.debug("Connect to %s failed (%s): %s", self.target.describe(), kind.value, e)
            raise ConnectFailure(str(e), kind) from e
        _log.debug("Opened connection to %s", self.target.describe())
        return conn

    def reset(self, conn: Any) -> None:
        """Roll back any open transaction. Trino runs in autocommit; nothing to do."""
        if self.product_type == ProductTypeEnum.TRINO:
            return
        conn.rollback()

    def ping(self, conn: Any, timeout: float) -> None:
        """Run SELECT 1 bounded by *timeout*; raises on any failure."""
        cur = execute(conn, "SELECT 1", product_type=self.product_type, timeout=timeout)
        try:
            cur.fetchone()
        finally:
            cur.close()
        self.reset(conn)

    def close(self, conn: Any) -> None:
        try:
            conn.close()
        except Exception:
            _log.debug("Error closing connection", exc_info=True)
