# app/services/health.py
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from app.config import settings
from app.db import ping_db
from app.services import payments, s3

STARTED_AT = time.monotonic()


def _timed(fn: Callable[[], Any], slow_ms: float, ok: str, slow: str, failed: str) -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        fn()
    except Exception as e:
        return {
            "status": "down",
            "responseTime": round((time.perf_counter() - start) * 1000),
            "error": str(e) or failed,
        }
    elapsed = round((time.perf_counter() - start) * 1000)
    if slow_ms and elapsed >= slow_ms:
        return {"status": "degraded", "responseTime": elapsed, "message": slow}
    return {"status": "up", "responseTime": elapsed, "message": ok}


def check_database() -> Dict[str, Any]:
    return _timed(
        ping_db, 100, "Database is healthy", "Database response is slow", "Database connection failed"
    )


def check_stripe() -> Dict[str, Any]:
    return _timed(
        payments.check_stripe,
        500,
        "Stripe API is healthy",
        "Stripe API response is slow",
        "Stripe API connection failed",
    )


def check_s3() -> Dict[str, Any]:
    return _timed(
        s3.check_configuration, 0, "S3 configuration is valid", "", "S3 configuration failed"
    )


def overall_status(checks: Dict[str, Dict[str, Any]]) -> str:
    statuses = [c["status"] for c in checks.values()]
    if "down" in statuses:
        return "unhealthy"
    if "degraded" in statuses:
        return "degraded"
    return "healthy"


def run_health_checks() -> Dict[str, Any]:
    with ThreadPoolExecutor(max_workers=3) as pool:
        db_f = pool.submit(check_database)
        stripe_f = pool.submit(check_stripe)
        s3_f = pool.submit(check_s3)
        checks = {"database": db_f.result(), "stripe": stripe_f.result(), "s3": s3_f.result()}

    return {
        "status": overall_status(checks),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "version": settings.app_version,
        "environment": settings.app_env,
        "checks": checks,
    }
