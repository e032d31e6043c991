"""Rate limiting dependencies for FastAPI routes.

This module wires the counter-store adapter into the HTTP layer.

Design goals:
- Minimal coupling: protected routes depend on a dependency function only.
- Swap-friendly: the storage backend is chosen once at startup and hidden
  behind ``AbstractRateLimiter``.
- Per-endpoint quotas: each route names a key prefix, so exhausting one
  endpoint never affects another.

Response contract (kept stable for existing client integrations):
- Admitted: ``X-RateLimit-Remaining`` and ``X-RateLimit-Reset`` (epoch ms).
- Denied: HTTP 429, body ``{"error": ..., "retryAfter": seconds}``, with
  ``Retry-After`` (seconds, rounded up), ``X-RateLimit-Remaining: 0`` and
  ``X-RateLimit-Reset``. Rendered by the ``RateLimitExceededError`` handler
  from ``setup_exception_handlers``.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import Request, Response

from admission_guard.adapters.rate_limit import (
    AbstractRateLimiter,
    RateLimitConfig,
    RateLimitResult,
    create_key_value_store,
    create_rate_limiter,
)
from admission_guard.adapters.rate_limit.base import hash_key
from admission_guard.core.client_identity import build_rate_limit_key
from admission_guard.core.config import settings
from admission_guard.core.errors import ConfigurationAppError, RateLimitExceededError

logger = logging.getLogger(__name__)

CONTACT_PREFIX = "contact"
INQUIRE_PREFIX = "inquire"

RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."


def get_policies() -> dict[str, RateLimitConfig]:
    """Return the named per-endpoint limits from configuration."""

    cfg = settings.rate_limit
    return {
        CONTACT_PREFIX: RateLimitConfig.per_seconds(
            cfg.contact_max_requests, cfg.contact_window_seconds
        ),
        INQUIRE_PREFIX: RateLimitConfig.per_seconds(
            cfg.inquire_max_requests, cfg.inquire_window_seconds
        ),
    }


def build_rate_limiter() -> AbstractRateLimiter:
    """Create the limiter for this process from settings.

    Uses the shared Redis store when ``RATE_LIMIT_REDIS_URL`` is set,
    otherwise the in-process fallback.
    """

    kv_store = create_key_value_store(settings.rate_limit)
    limiter = create_rate_limiter(
        kv_store,
        sweep_interval_seconds=settings.rate_limit.sweep_interval_seconds,
    )
    logger.info(
        "rate_limit.backend_selected",
        extra={"backend": type(limiter).__name__},
    )
    return limiter


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter owned by the running application.

    The instance lives on ``app.state`` and is created, swept and closed by
    the lifespan handler in ``create_app``. Apps assembled by hand must set
    ``app.state.rate_limiter`` themselves and close it on shutdown.

    Raises:
        ConfigurationAppError: If no limiter has been attached to the app.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise ConfigurationAppError(
            code="rate_limiter_not_initialized",
            message="No rate limiter is attached to the application",
            details={
                "hint": "Build the app with create_app() or set app.state.rate_limiter "
                "in a lifespan handler"
            },
        )
    return limiter


async def check_rate_limit(
    limiter: AbstractRateLimiter,
    key: str,
    config: RateLimitConfig,
) -> RateLimitResult:
    """Run one admission check and log the outcome.

    Args:
        limiter: Counter store selected at startup.
        key: Namespaced key (``prefix:identity``).
        config: Limits for the calling endpoint.

    Returns:
        RateLimitResult from the backend.
    """

    result = await limiter.check_limit(key, config)
    log_extra = {
        "key_hash": hash_key(key),
        "limit": config.max_requests,
        "remaining": result.remaining,
        "window_ms": config.window_ms,
    }
    if result.success:
        logger.info("rate_limit.allowed", extra=log_extra)
    else:
        logger.warning("rate_limit.exceeded", extra=log_extra)
    return result


def build_rate_limit_headers(result: RateLimitResult, *, now_ms: int) -> dict[str, str]:
    """Build the metadata headers echoed to clients.

    Args:
        result: Outcome of the admission check.
        now_ms: Current UNIX time in milliseconds.

    Returns:
        Header mapping; ``Retry-After`` is only present on denial.
    """

    headers = {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time),
    }
    if not result.success:
        headers["Retry-After"] = str(result.retry_after_seconds(now_ms))
    return headers


def rate_limit_dependency(
    prefix: str,
    config: RateLimitConfig | None = None,
) -> Callable[[Request, Response], Awaitable[RateLimitResult | None]]:
    """Build a FastAPI dependency enforcing a per-endpoint limit.

    Usage:
        @router.post("/contact", dependencies=[Depends(rate_limit_dependency("contact"))])

    Args:
        prefix: Key prefix naming the protected endpoint.
        config: Explicit limits; defaults to the named policy for ``prefix``.

    Returns:
        Async dependency raising ``RateLimitExceededError`` (HTTP 429) when
        the caller is over quota.

    Raises:
        KeyError: If no config is given and ``prefix`` has no named policy.
    """

    resolved = config if config is not None else get_policies()[prefix]

    async def enforce_rate_limit(request: Request, response: Response) -> RateLimitResult | None:
        if not settings.rate_limit.enabled:
            return None

        limiter = get_rate_limiter(request)
        key = build_rate_limit_key(request, prefix)
        result = await check_rate_limit(limiter, key, resolved)
        current_ms = int(time.time() * 1000)
        headers = build_rate_limit_headers(result, now_ms=current_ms)

        if not result.success:
            raise RateLimitExceededError(
                code="rate_limit_exceeded",
                message=RATE_LIMITED_MESSAGE,
                retry_after=result.retry_after_seconds(current_ms),
                headers=headers,
            )

        if settings.rate_limit.include_headers:
            response.headers.update(headers)
        return result

    return enforce_rate_limit
