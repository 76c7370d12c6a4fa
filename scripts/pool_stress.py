#!/usr/bin/env python3
"""
Drive N concurrent borrowers against a pool and report how they fared.

Reads the target and pool tunables from the environment (POOL_DB_*, POOL_*),
same as the service. Each worker borrows a connection, runs a slow query,
and returns it. With --max-size smaller than --concurrent, workers queue
and the ones that cannot get a connection within --timeout fail.

Example (Postgres, 2 connections, 10 workers, 1s query, 3s patience):
  python scripts/pool_stress.py --max-size 2 --concurrent 10 --sleep 1 --timeout 3

Expected: ~6 OK (2 per second for 3 seconds), the rest AcquireTimeout.

Usage:
  python scripts/pool_stress.py [--concurrent N] [--max-size N] [--timeout SEC] [--sleep SEC]
  Or set env: CONCURRENT
"""

import argparse
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from dbpool.core.config import settings
from dbpool.core.pool import ConnectionPool, PoolClient, PoolError
from dbpool.models import PoolConfig, ProductTypeEnum

_SLEEP_SQL = {
    ProductTypeEnum.POSTGRES: "SELECT pg_sleep(%s) IS NULL AS x",
    ProductTypeEnum.MYSQL: "SELECT SLEEP(%s) AS x",
}


def do_borrow(client: PoolClient, sql: str, sleep: float, index: int) -> tuple[int, str, float]:
    """Borrow once; return (index, outcome, seconds)."""
    start = time.monotonic()
    try:
        client.query(sql, (sleep,))
        outcome = "OK"
    except PoolError as e:
        outcome = type(e).__name__
    except Exception as e:
        outcome = f"ERR {e}"
    return (index, outcome, time.monotonic() - start)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Stress the connection pool with N parallel borrowers."
    )
    parser.add_argument(
        "--concurrent",
        type=int,
        default=int(os.environ.get("CONCURRENT", "20")),
        help="Number of concurrent borrowers (default 20)",
    )
    parser.add_argument(
        "--max-size",
        type=int,
        default=settings.POOL_MAX_SIZE,
        help="Pool max_size (default POOL_MAX_SIZE)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.POOL_ACQUIRE_TIMEOUT_SEC,
        help="Acquire timeout in seconds (default POOL_ACQUIRE_TIMEOUT_SEC)",
    )
    parser.add_argument(
        "--sleep",
        type=float,
        default=1.0,
        help="Seconds each borrower holds its connection (default 1)",
    )
    args = parser.parse_args()

    if not settings.pool_configured:
        print("Error: POOL_DB_HOST (and POOL_DB_*) env required", file=sys.stderr)
        sys.exit(1)
    sql = _SLEEP_SQL.get(settings.POOL_DB_PRODUCT_TYPE)
    if sql is None:
        print(f"Error: no sleep query for {settings.POOL_DB_PRODUCT_TYPE.value}", file=sys.stderr)
        sys.exit(1)

    base = PoolConfig.from_settings(settings)
    config = base.model_copy(
        update={
            "max_size": args.max_size,
            "min_idle": min(base.min_idle, args.max_size),
            "acquire_timeout": args.timeout,
            "probe_timeout": min(base.probe_timeout, args.timeout),
        }
    )
    print(
        f"Testing {args.concurrent} borrowers, max_size={config.max_size}, "
        f"timeout={config.acquire_timeout}s, hold={args.sleep}s"
    )
    print("---")

    results: list[tuple[int, str, float]] = []
    with ConnectionPool(config) as pool:
        client = PoolClient(pool)
        with ThreadPoolExecutor(max_workers=args.concurrent) as executor:
            futures = {
                executor.submit(do_borrow, client, sql, args.sleep, i): i
                for i in range(1, args.concurrent + 1)
            }
            for fut in as_completed(futures):
                idx, outcome, took = fut.result()
                results.append((idx, outcome, took))
                print(f"{idx} {outcome} ({took:.2f}s)")
        stats = pool.stats()

    results.sort(key=lambda x: x[0])
    print("---")
    ok = sum(1 for _, o, _ in results if o == "OK")
    timeouts = sum(1 for _, o, _ in results if o == "AcquireTimeout")
    other = len(results) - ok - timeouts
    print(f"Done. OK={ok} AcquireTimeout={timeouts} other={other}")
    print(f"Pool: total_created={stats['total_created']} idle={stats['idle_connections']}")


if __name__ == "__main__":
    main()
