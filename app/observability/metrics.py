# app/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

leads_created_counter = Counter(
    "scopeguard_leads_created_total",
    "Leads submitted through the public intake",
    ["trade_type"],
)

ai_calls_counter = Counter(
    "scopeguard_ai_calls_total",
    "Calls to the language model API",
    ["operation", "result"],  # photo_analysis|scope|estimate, success|error
)

rate_limited_counter = Counter(
    "scopeguard_rate_limited_total",
    "Requests rejected by the sliding-window limiter",
    ["tier"],
)

checkout_counter = Counter(
    "scopeguard_checkout_sessions_total",
    "Checkout sessions requested",
    ["result"],  # created|reused|error
)

webhook_counter = Counter(
    "scopeguard_stripe_webhooks_total",
    "Stripe webhook events received",
    ["event_type"],
)

upload_size_hist = Histogram(
    "scopeguard_upload_size_bytes",
    "Client-reported upload sizes at presign time",
    buckets=(1e5, 3e5, 1e6, 3e6, 1e7, 3e7, 5e7),
)

latency_hist = Histogram(
    "scopeguard_api_latency_seconds",
    "API latency per route",
    ["route"],
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
