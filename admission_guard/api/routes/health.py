from __future__ import annotations

from fastapi import APIRouter, Request

from admission_guard.adapters.rate_limit import DistributedRateLimiter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems. Also reports whether
    counters are shared across instances ("distributed") or kept per
    process ("in_memory"), since the latter multiplies effective limits.

    Returns:
        dict: ``{"status": "ok", "rate_limit_backend": ...}``.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        backend = "uninitialized"
    elif isinstance(limiter, DistributedRateLimiter):
        backend = "distributed"
    else:
        backend = "in_memory"

    return {"status": "ok", "rate_limit_backend": backend}
