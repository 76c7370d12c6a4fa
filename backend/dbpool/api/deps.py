from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from dbpool.core.pool import ConnectionPool, PoolClient


def get_pool(request: Request) -> ConnectionPool:
    """Pool owned by the running app (created in the lifespan)."""
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No database pool is configured",
        )
    return pool


PoolDep = Annotated[ConnectionPool, Depends(get_pool)]


def get_pool_client(pool: PoolDep) -> PoolClient:
    return PoolClient(pool)


PoolClientDep = Annotated[PoolClient, Depends(get_pool_client)]
