import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.concurrency import run_in_threadpool

from dbpool.api.main import api_router
from dbpool.core.config import settings
from dbpool.core.pool import ConnectionPool, MisuseError, PoolError
from dbpool.models import PoolConfig

logging.basicConfig(level=settings.LOG_LEVEL)
_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the pool for the app's lifetime. A pool set on app.state beforehand is left alone."""
    owned: ConnectionPool | None = None
    if getattr(app.state, "pool", None) is None and settings.pool_configured:
        owned = ConnectionPool(PoolConfig.from_settings(settings))
        await run_in_threadpool(owned.start)
        app.state.pool = owned
    try:
        yield
    finally:
        if owned is not None:
            await run_in_threadpool(owned.close)
            app.state.pool = None


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)
app.state.pool = None


# ---------------------------------------------------------------------------
# Global exception handlers: standardized error response format
# ---------------------------------------------------------------------------


@app.exception_handler(PoolError)
async def pool_exception_handler(request: Request, exc: PoolError) -> JSONResponse:
    """Pool exhaustion, shutdown and connect failures are 503; misuse is a bug (500)."""
    if isinstance(exc, MisuseError):
        _logger.error("Pool misuse on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    _logger.warning("Pool unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions: log and return 500 with safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


app.include_router(api_router, prefix=settings.API_V1_STR)
