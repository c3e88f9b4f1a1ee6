# app/routers/health.py
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response

from app.core.rate_limit import exempt
from app.services import health

router = APIRouter(prefix="/api/health", tags=["health"])

NO_CACHE = {"Cache-Control": "no-cache, no-store, must-revalidate"}


@router.get("")
@exempt
def health_check():
    start = time.perf_counter()
    result = health.run_health_checks()
    elapsed = round((time.perf_counter() - start) * 1000)

    return JSONResponse(
        content=result,
        status_code=503 if result["status"] == "unhealthy" else 200,
        headers={**NO_CACHE, "X-Response-Time": f"{elapsed}ms"},
    )


@router.head("")
@exempt
def health_ping():
    """Load balancer check: database only, empty body."""
    db = health.check_database()
    return Response(status_code=503 if db["status"] == "down" else 200, headers=NO_CACHE)
