"""Factory functions selecting the counter-store backend."""

from __future__ import annotations

import time

from admission_guard.adapters.rate_limit.base import AbstractRateLimiter, Clock
from admission_guard.adapters.rate_limit.distributed import DistributedRateLimiter
from admission_guard.adapters.rate_limit.in_memory import InMemoryRateLimiter
from admission_guard.adapters.rate_limit.kv_store import KeyValueStore, RedisKeyValueStore
from admission_guard.core.config import RateLimitSettings, settings


def create_rate_limiter(
    kv_store: KeyValueStore | None = None,
    *,
    clock: Clock = time.time,
    sweep_interval_seconds: float = 60.0,
) -> AbstractRateLimiter:
    """Return the counter store matching the deployment environment.

    A shared store handle selects the distributed backend; without one the
    in-process fallback is used (local development, isolated test runs).
    Callers must treat the result polymorphically.

    Args:
        kv_store: Shared key-value store handle, if the deployment has one.
        clock: Time source returning UNIX time in seconds.
        sweep_interval_seconds: Sweep cadence for the in-process backend.

    Returns:
        AbstractRateLimiter: A fresh limiter instance.
    """
    if kv_store is not None:
        return DistributedRateLimiter(kv_store, clock=clock)

    return InMemoryRateLimiter(clock=clock, sweep_interval_seconds=sweep_interval_seconds)


def create_key_value_store(
    rate_limit_settings: RateLimitSettings | None = None,
) -> KeyValueStore | None:
    """Build the shared store handle from configuration.

    Returns:
        RedisKeyValueStore when ``RATE_LIMIT_REDIS_URL`` is set, else None.
    """
    cfg = rate_limit_settings or settings.rate_limit
    if not cfg.redis_url:
        return None
    return RedisKeyValueStore.from_url(cfg.redis_url, timeout_seconds=cfg.redis_timeout_seconds)
