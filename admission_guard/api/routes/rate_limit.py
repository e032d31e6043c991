from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from admission_guard.adapters.rate_limit import RateLimitConfig
from admission_guard.adapters.rate_limit.base import hash_key
from admission_guard.core.auth import verify_api_key
from admission_guard.core.rate_limit import get_policies, get_rate_limiter
from admission_guard.schemas.rate_limit import RateLimitStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rate-limit",
    tags=["Rate Limit"],
    dependencies=[Depends(verify_api_key)],
)


def _resolve_policy(prefix: str) -> RateLimitConfig:
    policy = get_policies().get(prefix)
    if policy is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown rate limit policy: '{prefix}'",
        )
    return policy


@router.get("/{prefix}/{identity}", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(
    prefix: str,
    identity: str,
    request: Request,
) -> RateLimitStatusResponse:
    """Report a caller's usage on one endpoint without consuming quota.

    Args:
        prefix: Policy name of the protected endpoint (e.g., "contact").
        identity: Caller identity, usually an IP address.

    Returns:
        RateLimitStatusResponse: Current window usage.

    Raises:
        HTTPException: 404 if the policy prefix is unknown.
    """
    config = _resolve_policy(prefix)
    key = f"{prefix}:{identity}"
    result = await get_rate_limiter(request).get_status(key, config)

    return RateLimitStatusResponse(
        key=key,
        success=result.success,
        remaining=result.remaining,
        reset_time=result.reset_time,
        limit=config.max_requests,
        window_ms=config.window_ms,
    )


@router.delete("/{prefix}/{identity}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_rate_limit(prefix: str, identity: str, request: Request) -> Response:
    """Clear a caller's counter so the next request starts a fresh window."""
    _resolve_policy(prefix)
    key = f"{prefix}:{identity}"
    await get_rate_limiter(request).reset(key)

    logger.info("rate_limit.admin_reset", extra={"key_hash": hash_key(key)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
