# app/core/error_handlers.py
"""
Global exception handlers.

Four layers, most specific first: AppError (domain), RequestValidationError
(request body/query), pydantic ValidationError (model validation inside a
handler), and a catch-all. All render the same error envelope.
"""
import math
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.core.errors import (
    AppError,
    RateLimitError,
    ValidationError,
    format_error_response,
    log_error,
    validation_details,
)


def _respond(request: Request, exc: BaseException) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    log_error(exc, path=request.url.path, method=request.method)
    status, body, headers = format_error_response(
        exc, request_id=request_id, development=settings.is_development
    )
    return JSONResponse(status_code=status, content=body, headers=headers)


def _global_limit_error(request: Request, exc: RateLimitExceeded) -> RateLimitError:
    """Translate a slowapi rejection, reading the window of the limit that tripped."""
    item = exc.limit.limit
    reset = time.time() + item.get_expiry()

    current = getattr(request.state, "view_rate_limit", None)
    limiter = getattr(request.app.state, "limiter", None)
    if current is not None and limiter is not None:
        reset = limiter.limiter.get_window_stats(current[0], *current[1])[0]

    return RateLimitError(
        f"Rate limit exceeded: {exc.detail}",
        retry_after=max(1, math.ceil(reset - time.time())),
        headers={
            "X-RateLimit-Limit": str(item.amount),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(reset * 1000)),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _respond(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _respond(
            request,
            ValidationError("Validation failed", details=validation_details(exc.errors())),
        )

    @app.exception_handler(PydanticValidationError)
    async def pydantic_validation_handler(request: Request, exc: PydanticValidationError):
        return _respond(request, exc)

    @app.exception_handler(RateLimitExceeded)
    async def global_ratelimit_handler(request: Request, exc: RateLimitExceeded):
        return _respond(request, _global_limit_error(request, exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return _respond(request, exc)
