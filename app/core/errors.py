# app/core/errors.py
"""
Application error hierarchy and the uniform JSON error envelope.

Every failure leaving a route is rendered as::

    {"error": {"message", "code", "statusCode", "details"?, "requestId"?}}

Operational errors (expected, client caused) are logged at warning level,
everything else at error level with the traceback kept out of the response
outside development mode.
"""
from __future__ import annotations

import traceback
from typing import Any, Dict, Literal, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

logger = structlog.get_logger("scopeguard.errors")


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    is_operational: bool = True

    def __init__(
        self,
        message: str = "Internal server error",
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        is_operational: Optional[bool] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        if is_operational is not None:
            self.is_operational = is_operational
        self.details = details


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request", details: Any = None):
        super().__init__(message, details=details)


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str = "Resource conflict", details: Any = None):
        super().__init__(message, details=details)


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", details: Any = None):
        super().__init__(message, details=details)


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Too many requests",
        retry_after: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.headers = dict(headers or {})


class InternalServerError(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"
    is_operational = False

    def __init__(self, message: str = "Internal server error", details: Any = None):
        super().__init__(message, details=details)


class ExternalServiceError(AppError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Any = None,
    ):
        super().__init__(f"{service}: {message}", details=details)
        self.service = service


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message)


AuthorizationCode = Literal["UNAUTHORIZED", "FORBIDDEN", "NOT_FOUND"]


class AuthorizationError(AppError):
    """Failure of the session/ownership guard."""

    def __init__(self, message: str, code: AuthorizationCode, status_code: int = 403):
        super().__init__(message, status_code=status_code, code=code)


def validation_details(errors: list) -> list:
    """Flatten pydantic error dicts into field-level details."""
    out = []
    for e in errors:
        loc = [str(part) for part in e.get("loc", ()) if part != "body"]
        out.append(
            {
                "field": ".".join(loc),
                "message": e.get("msg", ""),
                "type": e.get("type", ""),
            }
        )
    return out


def format_error_response(
    exc: BaseException,
    *,
    request_id: Optional[str] = None,
    development: bool = False,
) -> Tuple[int, Dict[str, Any], Dict[str, str]]:
    """Map an exception onto (status, envelope, extra headers)."""
    headers: Dict[str, str] = {}

    if isinstance(exc, PydanticValidationError):
        status = 422
        body: Dict[str, Any] = {
            "message": "Validation failed",
            "code": "VALIDATION_ERROR",
            "statusCode": status,
            "details": validation_details(exc.errors()),
        }
    elif isinstance(exc, AppError):
        status = exc.status_code
        body = {
            "message": exc.message,
            "code": exc.code,
            "statusCode": status,
        }
        # request body violations carry only field names, safe everywhere
        if isinstance(exc, ValidationError) and exc.details is not None:
            body["details"] = exc.details
        elif development and exc.details is not None:
            body["details"] = exc.details
        if isinstance(exc, RateLimitError):
            headers.update(exc.headers)
            if exc.retry_after:
                headers["Retry-After"] = str(exc.retry_after)
    else:
        status = 500
        body = {
            "message": str(exc) if development else "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
            "statusCode": status,
        }
        if development:
            body["details"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )

    if request_id:
        body["requestId"] = request_id
    return status, {"error": body}, headers


def log_error(exc: BaseException, **context: Any) -> None:
    if isinstance(exc, AppError):
        if exc.is_operational:
            logger.warning(
                "operational_error",
                message=exc.message,
                code=exc.code,
                status_code=exc.status_code,
                **context,
            )
        else:
            logger.error(
                "application_error",
                message=exc.message,
                code=exc.code,
                status_code=exc.status_code,
                details=exc.details,
                exc_info=exc,
                **context,
            )
    elif isinstance(exc, PydanticValidationError):
        logger.warning("validation_error", errors=exc.error_count(), **context)
    else:
        logger.error("unexpected_error", error=str(exc), exc_info=exc, **context)
