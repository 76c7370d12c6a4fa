from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from dbpool.core.health import liveness_check, readiness_check

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/liveness/", response_model=None)
async def liveness() -> bool | JSONResponse:
    """
    Liveness probe: is the process alive and responsive?

    Lightweight: no DB I/O.  If this fails the container should be
    restarted by the orchestrator.
    """
    ok, failures = liveness_check()
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Process unhealthy", "data": failures},
        )
    return True


@router.get("/health-check/", response_model=None)
def health_check(request: Request) -> bool | JSONResponse:
    """
    Readiness probe: can the service handle traffic?

    Borrows one pooled connection and probes it.
    Returns 200 with true when it succeeds; 503 otherwise.
    """
    ok, failures = readiness_check(getattr(request.app.state, "pool", None))
    if not ok:
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "message": "Service Unavailable",
                "data": failures,
            },
        )
    return True
