# app/main.py
import time

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi.middleware import SlowAPIMiddleware

from app import models  # noqa: F401  (registers SQLAlchemy models)
from app.config import settings
from app.core.error_handlers import register_error_handlers
from app.core.logging_config import logger, setup_logging
from app.core.rate_limit import limiter
from app.core.request_id import RequestIdMiddleware
from app.db import Base, engine
from app.observability.metrics import latency_hist
from app.observability.metrics import router as metrics_router
from app.routers import (
    analyze,
    checkout,
    documents,
    estimates,
    health,
    leads,
    public_estimate,
    takeoffs,
    uploads,
    usage,
)

setup_logging(settings.log_level)

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        release=settings.app_version,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
    )


# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title="ScopeGuard", version=settings.app_version)

logger.info("startup", service="scopeguard-api", environment=settings.app_env)


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()

    request_id = getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", "unknown"
    )
    client_ip = request.client.host if request.client else "unknown"

    bound_logger = logger.bind(
        request_id=request_id,
        ip=client_ip,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    elapsed = time.time() - start

    route = request.scope.get("route")
    latency_hist.labels(route=getattr(route, "path", "unmatched")).observe(elapsed)

    bound_logger.bind(
        status_code=response.status_code, latency_ms=round(elapsed * 1000, 2)
    ).info("request_finished")
    return response


# ----------------------------------------------------
# Middleware
# ----------------------------------------------------
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# outermost, so every log line and error envelope sees the id
app.add_middleware(RequestIdMiddleware)

register_error_handlers(app)


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(leads.router)
app.include_router(analyze.router)
app.include_router(estimates.router)
app.include_router(public_estimate.router)
app.include_router(checkout.router)
app.include_router(documents.router)
app.include_router(uploads.router)
app.include_router(takeoffs.router)
app.include_router(usage.router)
app.include_router(health.router)
if settings.metrics_enabled:
    app.include_router(metrics_router)  # /metrics


# ----------------------------------------------------
# Startup
# ----------------------------------------------------
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
