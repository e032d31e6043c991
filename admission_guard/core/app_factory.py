"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated instances with their own limiter.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from admission_guard.adapters.rate_limit import AbstractRateLimiter, InMemoryRateLimiter
from admission_guard.api.routes import health_router, rate_limit_router
from admission_guard.core.config import settings
from admission_guard.core.exception_handlers import setup_exception_handlers
from admission_guard.core.logging import configure_logging
from admission_guard.core.middleware import request_id_middleware
from admission_guard.core.openapi import apply_openapi_customizations
from admission_guard.core.rate_limit import build_rate_limiter

logger = logging.getLogger(__name__)


def create_app(rate_limiter: AbstractRateLimiter | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiter: Counter store to use instead of the one selected from
            settings (tests inject one with a fake clock).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        limiter = rate_limiter if rate_limiter is not None else build_rate_limiter()
        app.state.rate_limiter = limiter
        if isinstance(limiter, InMemoryRateLimiter):
            limiter.start_sweeper()
        try:
            yield
        finally:
            await limiter.aclose()
            app.state.rate_limiter = None
            logger.info("rate_limit.limiter_closed")

    app = FastAPI(
        title="Admission Guard",
        description=(
            "Per-caller, per-endpoint fixed-window admission control for public "
            "forms. Counters are shared through Redis when configured and kept "
            "in-process otherwise."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    if rate_limiter is not None:
        app.state.rate_limiter = rate_limiter

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
