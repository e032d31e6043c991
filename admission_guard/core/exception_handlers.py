"""Exception handlers producing the ``{"error": {...}}`` response body.

Status mapping:
- AppError -> 400
- AuthenticationAppError -> 403
- ConfigurationAppError -> 500, details withheld from the client
- anything else -> generic 500

Rate-limit rejections (``RateLimitExceededError``) are the exception: they
use the flat ``{"error": message, "retryAfter": seconds}`` body with status 429.
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from admission_guard.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    RateLimitExceededError,
)
from admission_guard.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, ConfigurationAppError):
        return 500
    return 400


def _error_response(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    body = {"code": code, "message": message, "request_id": get_request_id(), **extra}
    return JSONResponse(status_code=status_code, content={"error": body})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate an AppError into its JSON response.

    Args:
        request: Incoming request.
        exc: Raised AppError or subclass.

    Returns:
        JSONResponse with the mapped status code.
    """
    status_code = _status_for(exc)
    server_fault = status_code >= 500

    (logger.error if server_fault else logger.warning)(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "error_details": exc.details,
            "status_code": status_code,
            "request_path": request.url.path,
        },
    )

    extra: dict[str, Any] = {}
    if exc.details and not server_fault:
        extra["details"] = exc.details
    return _error_response(status_code, exc.code, exc.message, **extra)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceededError
) -> JSONResponse:
    """Render a 429 with ``Retry-After`` and ``X-RateLimit-*`` headers."""
    return JSONResponse(
        status_code=429,
        content={"error": exc.message, "retryAfter": exc.retry_after},
        headers=exc.headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; logs the failure and hides it from the client."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return _error_response(
        500,
        "internal_server_error",
        "An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app) -> None:
    """Register handlers; the most specific exception class wins."""
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
