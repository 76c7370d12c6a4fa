"""
Bounded connection pool for one external database.

Hands connections out as Leases, reclaims them on release, validates stale
idle connections on checkout, evicts idle ones past idle_timeout and keeps
min_idle connections warm from a background maintenance thread.

All pool state is guarded by one lock. Factory, probe and close calls run
outside it; the slot they operate on is counted as reserved meanwhile, so
idle + active never exceeds max_size.
"""

import itertools
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dbpool.models import PoolConfig

from .connect import ConnectionFactory, DriverConnectionFactory
from .errors import (
    AcquireTimeout,
    ConnectFailure,
    ConnectFailureKind,
    MisuseError,
    PoolClosed,
)
from .health import HealthChecker, HealthStatus

_log = logging.getLogger(__name__)

_MAX_BACKOFF_SEC = 2.0
_JOIN_TIMEOUT_SEC = 5.0

# Grant handed to a waiter: permission to open a new connection in a freed slot.
_SLOT = object()


class ConnectionState(str, Enum):
    IDLE = "idle"
    IN_USE = "in_use"
    VALIDATING = "validating"
    CLOSED = "closed"


@dataclass(eq=False)
class PooledConnection:
    conn: Any
    id: int
    created_at: float  # time.monotonic() when the connection was opened
    last_used_at: float  # time.monotonic() of the last checkout or return
    state: ConnectionState = ConnectionState.IDLE
    use_count: int = 0


class Lease:
    """Exclusive, temporary ownership of one pooled connection."""

    def __init__(self, pool: "ConnectionPool", pooled: PooledConnection) -> None:
        self._pool = pool
        self._pooled = pooled
        self._released = False
        self.acquired_at = time.monotonic()

    @property
    def pool(self) -> "ConnectionPool":
        return self._pool

    @property
    def connection(self) -> Any:
        if self._released:
            raise MisuseError("Connection used after its lease was released")
        return self._pooled.conn

    @property
    def connection_id(self) -> int:
        return self._pooled.id

    @property
    def released(self) -> bool:
        return self._released

    def held_for(self) -> float:
        return time.monotonic() - self.acquired_at

    def release(self, healthy: bool = True) -> None:
        self._pool.release(self, healthy=healthy)

    def __repr__(self) -> str:
        state = "released" if self._released else "active"
        return f"<Lease conn={self._pooled.id} {state}>"


class _Waiter:
    __slots__ = ("event", "grant")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.grant: Any = None


class ConnectionPool:
    """Bounded pool with FIFO waiters, MRU idle reuse and idle eviction."""

    def __init__(
        self,
        config: PoolConfig,
        factory: ConnectionFactory | None = None,
        health_checker: HealthChecker | None = None,
    ) -> None:
        if factory is None:
            if config.target is None:
                raise ValueError("config.target is required when no factory is given")
            factory = DriverConnectionFactory(config.target)
        self.config = config
        self._factory = factory
        self._health = health_checker or HealthChecker(factory, config.probe_timeout)

        self._lock = threading.Lock()
        self._idle: list[PooledConnection] = []  # most recently used last
        self._leases: set[Lease] = set()
        self._reserved = 0  # slots being validated, created or released
        self._waiters: deque[_Waiter] = deque()
        self._total_created = 0
        self._closed = False
        self._ids = itertools.count(1)

        self._stop = threading.Event()
        self._maintenance: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def factory(self) -> ConnectionFactory:
        return self._factory

    @property
    def health_checker(self) -> HealthChecker:
        return self._health

    @property
    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)

    @property
    def active_count(self) -> int:
        """Connections checked out, plus those being prepared for a borrower."""
        with self._lock:
            return len(self._leases) + self._reserved

    @property
    def total_created(self) -> int:
        with self._lock:
            return self._total_created

    @property
    def waiting_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def stats(self) -> dict[str, Any]:
        """Return pool statistics for monitoring."""
        with self._lock:
            return {
                "max_size": self.config.max_size,
                "min_idle": self.config.min_idle,
                "idle_connections": len(self._idle),
                "active_connections": len(self._leases) + self._reserved,
                "waiting": len(self._waiters),
                "total_created": self._total_created,
                "closed": self._closed,
            }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "ConnectionPool":
        """Fill to min_idle and start the maintenance thread (when configured)."""
        with self._lock:
            if self._closed:
                raise PoolClosed()
            if self._maintenance is not None:
                return self
            if self.config.maintenance_interval > 0:
                self._maintenance = threading.Thread(
                    target=self._maintain, name="dbpool-maintenance", daemon=True
                )
        self.shrink()
        if self._maintenance is not None:
            self._maintenance.start()
        _log.info(
            "Pool started (min_idle=%d, max_size=%d)",
            self.config.min_idle,
            self.config.max_size,
        )
        return self

    def close(self) -> None:
        """Refuse new acquires, wake waiters and close idle connections. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            idle, self._idle = self._idle, []
            waiters = list(self._waiters)
            self._waiters.clear()
            outstanding = len(self._leases)
            for pooled in idle:
                pooled.state = ConnectionState.CLOSED
        for waiter in waiters:
            waiter.event.set()
        self._stop.set()
        thread = self._maintenance
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(_JOIN_TIMEOUT_SEC)
        for pooled in idle:
            self._factory.close(pooled.conn)
        _log.info(
            "Pool closed (%d idle connections closed, %d leases outstanding)",
            len(idle),
            outstanding,
        )

    def __enter__(self) -> "ConnectionPool":
        return self.start()

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    def acquire(self, timeout: float | None = None) -> Lease:
        """
        Lease a connection, waiting at most *timeout* seconds (None = config.acquire_timeout).

        Raises PoolClosed after close(), AcquireTimeout when no connection could be
        handed out in time (chained from the last ConnectFailure, if any).
        """
        wait = self.config.acquire_timeout if timeout is None else max(0.0, timeout)
        deadline = time.monotonic() + wait
        grant = self._checkout(wait, deadline)

        if grant is not _SLOT:
            pooled: PooledConnection = grant
            now = time.monotonic()
            remaining = deadline - now
            if self._is_expired(pooled, now):
                _log.debug("Retiring connection %d: past max_lifetime", pooled.id)
            elif not self._needs_validation(pooled, now):
                return self._lease_existing(pooled)
            elif remaining <= 0:
                with self._lock:
                    self._reoffer_locked(pooled)
                raise AcquireTimeout(wait)
            elif (
                self._health.probe(pooled.conn, min(self.config.probe_timeout, remaining))
                is HealthStatus.HEALTHY
            ):
                return self._lease_existing(pooled)
            else:
                _log.warning("Discarding idle connection %d: failed validation", pooled.id)
            pooled.state = ConnectionState.CLOSED
            self._factory.close(pooled.conn)
            # the slot stays reserved and is reused for a fresh connection

        return self._create_lease(wait, deadline)

    def release(self, lease: Lease, healthy: bool = True) -> None:
        """
        Return *lease*'s connection to the pool.

        With healthy=False the connection is probed first and discarded if the
        probe fails. A second release of the same lease raises MisuseError and
        leaves the counters untouched.
        """
        if lease.pool is not self:
            raise MisuseError("Lease belongs to a different pool")
        with self._lock:
            if lease._released:
                raise MisuseError(f"{lease!r} was already released")
            lease._released = True
            self._leases.discard(lease)
            self._reserved += 1
            closed = self._closed

        pooled = lease._pooled
        keep = not closed and self._should_keep(pooled, healthy)
        if keep:
            with self._lock:
                if not self._closed:
                    self._reserved -= 1
                    pooled.last_used_at = time.monotonic()
                    self._put_idle_locked(pooled)
                    _log.debug("Connection %d returned to pool", pooled.id)
                    return

        pooled.state = ConnectionState.CLOSED
        self._factory.close(pooled.conn)
        with self._lock:
            self._reserved -= 1
            self._free_slot_locked()
        _log.debug("Connection %d discarded on release", pooled.id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def shrink(self) -> int:
        """
        Evict idle connections past idle_timeout or max_lifetime (oldest first,
        never below min_idle), then top up to min_idle idle connections.

        Leased connections are never touched. Returns the number evicted.
        """
        now = time.monotonic()
        with self._lock:
            if self._closed:
                return 0
            evicted: list[PooledConnection] = []
            kept: list[PooledConnection] = []
            surplus = len(self._idle) - self.config.min_idle
            for pooled in self._idle:
                if surplus > 0 and (
                    self._is_idle_expired(pooled, now) or self._is_expired(pooled, now)
                ):
                    pooled.state = ConnectionState.CLOSED
                    evicted.append(pooled)
                    surplus -= 1
                else:
                    kept.append(pooled)
            self._idle = kept
            self._reserved += len(evicted)

            threshold = self.config.leak_detection_threshold
            leaked = (
                [lease for lease in self._leases if lease.held_for() > threshold]
                if threshold > 0
                else []
            )

            to_create = 0
            while (
                len(self._idle) + to_create < self.config.min_idle
                and self._total_locked() < self.config.max_size
            ):
                self._reserved += 1
                to_create += 1

        for pooled in evicted:
            self._factory.close(pooled.conn)
        if evicted:
            with self._lock:
                for _ in evicted:
                    self._reserved -= 1
                    self._free_slot_locked()
            _log.debug("Evicted %d idle connections", len(evicted))

        for lease in leaked:
            _log.warning(
                "Connection %d held for %.1fs (threshold %.1fs); possible leak",
                lease.connection_id,
                lease.held_for(),
                threshold,
            )

        for _ in range(to_create):
            self._top_up_one()
        return len(evicted)

    def _top_up_one(self) -> None:
        try:
            conn = self._factory.create(timeout=None)
        except Exception as e:
            _log.warning("Could not replenish idle connection: %s", e)
            with self._lock:
                self._reserved -= 1
                self._free_slot_locked()
            return
        with self._lock:
            self._reserved -= 1
            if not self._closed:
                pooled = self._new_pooled_locked(conn)
                self._put_idle_locked(pooled)
                return
        self._factory.close(conn)

    def _maintain(self) -> None:
        while not self._stop.wait(self.config.maintenance_interval):
            try:
                self.shrink()
            except Exception:
                _log.exception("Pool maintenance failed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _checkout(self, wait: float, deadline: float) -> Any:
        """Return an idle PooledConnection or _SLOT; the grant is counted as reserved."""
        with self._lock:
            if self._closed:
                raise PoolClosed()
            if not self._waiters:
                grant = self._take_locked()
                if grant is not None:
                    return grant
            if wait <= 0:
                raise AcquireTimeout(wait)
            waiter = _Waiter()
            self._waiters.append(waiter)

        signalled = False
        try:
            signalled = waiter.event.wait(max(0.0, deadline - time.monotonic()))
        finally:
            with self._lock:
                grant = waiter.grant
                if grant is None:
                    try:
                        self._waiters.remove(waiter)
                    except ValueError:
                        pass
                elif not signalled:
                    # granted while timing out (or cancelled): pass it on
                    self._reoffer_locked(grant)
                    grant = None
                closed = self._closed
        if grant is None:
            if closed:
                raise PoolClosed()
            raise AcquireTimeout(wait)
        return grant

    def _take_locked(self) -> Any:
        if self._idle:
            pooled = self._idle.pop()
            pooled.state = ConnectionState.VALIDATING
            self._reserved += 1
            return pooled
        if self._total_locked() < self.config.max_size:
            self._reserved += 1
            return _SLOT
        return None

    def _total_locked(self) -> int:
        return len(self._idle) + len(self._leases) + self._reserved

    def _put_idle_locked(self, pooled: PooledConnection) -> None:
        """Hand *pooled* to the oldest waiter, or push it on the idle stack."""
        if self._waiters:
            waiter = self._waiters.popleft()
            pooled.state = ConnectionState.VALIDATING
            self._reserved += 1
            waiter.grant = pooled
            waiter.event.set()
            return
        pooled.state = ConnectionState.IDLE
        self._idle.append(pooled)

    def _free_slot_locked(self) -> None:
        """A slot was freed: let the oldest waiter open a connection in it."""
        if self._waiters and self._total_locked() < self.config.max_size:
            waiter = self._waiters.popleft()
            self._reserved += 1
            waiter.grant = _SLOT
            waiter.event.set()

    def _reoffer_locked(self, grant: Any) -> None:
        self._reserved -= 1
        if grant is _SLOT:
            self._free_slot_locked()
        else:
            self._put_idle_locked(grant)

    def _new_pooled_locked(self, conn: Any) -> PooledConnection:
        now = time.monotonic()
        self._total_created += 1
        return PooledConnection(
            conn=conn, id=next(self._ids), created_at=now, last_used_at=now
        )

    def _lease_locked(self, pooled: PooledConnection) -> Lease:
        self._reserved -= 1
        pooled.state = ConnectionState.IN_USE
        pooled.use_count += 1
        pooled.last_used_at = time.monotonic()
        lease = Lease(self, pooled)
        self._leases.add(lease)
        return lease

    def _lease_existing(self, pooled: PooledConnection) -> Lease:
        with self._lock:
            if not self._closed:
                return self._lease_locked(pooled)
            self._reserved -= 1
        pooled.state = ConnectionState.CLOSED
        self._factory.close(pooled.conn)
        raise PoolClosed()

    def _create_lease(self, wait: float, deadline: float) -> Lease:
        """Open a connection in the reserved slot, retrying until *deadline*."""
        backoff = self.config.retry_backoff
        done = False
        try:
            while True:
                started = time.monotonic()
                remaining = deadline - started
                try:
                    conn = self._factory.create(timeout=max(remaining, 0.001))
                except ConnectFailure as e:
                    failure = e
                except Exception as e:
                    failure = ConnectFailure(str(e))
                    failure.__cause__ = e
                else:
                    with self._lock:
                        if not self._closed:
                            pooled = self._new_pooled_locked(conn)
                            done = True
                            _log.debug("Opened connection %d", pooled.id)
                            return self._lease_locked(pooled)
                    self._factory.close(conn)
                    raise PoolClosed()

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AcquireTimeout(
                        wait, f"Timed out after {wait:.3f}s opening a connection: {failure}"
                    ) from failure
                if self.closed:
                    raise PoolClosed() from failure
                _log.debug("Connect failed (%s), retrying: %s", failure.kind.value, failure.reason)
                # a TIMEOUT that used up the back-off interval is retried at once
                spent = time.monotonic() - started
                if backoff > 0 and (
                    failure.kind is not ConnectFailureKind.TIMEOUT or spent < backoff
                ):
                    time.sleep(min(backoff, remaining))
                    backoff = min(backoff * 2, _MAX_BACKOFF_SEC)
        finally:
            if not done:
                with self._lock:
                    self._reserved -= 1
                    self._free_slot_locked()

    def _needs_validation(self, pooled: PooledConnection, now: float) -> bool:
        return now - pooled.last_used_at > self.config.validation_interval

    def _is_idle_expired(self, pooled: PooledConnection, now: float) -> bool:
        timeout = self.config.idle_timeout
        return timeout > 0 and now - pooled.last_used_at > timeout

    def _is_expired(self, pooled: PooledConnection, now: float) -> bool:
        lifetime = self.config.max_lifetime
        return lifetime > 0 and now - pooled.created_at > lifetime

    def _should_keep(self, pooled: PooledConnection, healthy: bool) -> bool:
        now = time.monotonic()
        if self._is_idle_expired(pooled, now) or self._is_expired(pooled, now):
            return False
        # roll back first: an aborted transaction would fail the probe
        try:
            self._factory.reset(pooled.conn)
        except Exception as e:
            _log.warning("Discarding connection %d: reset failed: %s", pooled.id, e)
            return False
        if not healthy and self._health.probe(pooled.conn) is not HealthStatus.HEALTHY:
            _log.warning("Discarding connection %d: failed health probe on release", pooled.id)
            return False
        return True
