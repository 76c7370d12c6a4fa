from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from dbpool.api.deps import PoolClientDep, PoolDep
from dbpool.core.pool import PoolError

router = APIRouter(prefix="/pool", tags=["pool"])


class ConnectionTestResult(BaseModel):
    """Response for /pool/test."""

    ok: bool
    message: str


@router.get("/stats")
def pool_stats(pool: PoolDep) -> dict[str, Any]:
    """
    Read-only pool counters for dashboards and metrics scrapers.
    """
    return pool.stats()


@router.post("/test", response_model=ConnectionTestResult)
def test_connection(client: PoolClientDep) -> ConnectionTestResult:
    """Borrow a connection, run SELECT 1, return it. Pool errors are reported, not raised."""
    try:
        row = client.query_one("SELECT 1 AS ok")
    except PoolError as e:
        return ConnectionTestResult(ok=False, message=str(e))
    if not row:
        return ConnectionTestResult(ok=False, message="SELECT 1 returned no rows")
    return ConnectionTestResult(ok=True, message="Connection successful")
