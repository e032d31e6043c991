"""Rate limiting adapters.

A small abstraction layer over two interchangeable counter stores: a shared
Redis-backed store for production and an in-process fallback for local
development and tests. The API layer only sees ``AbstractRateLimiter``.
"""

from admission_guard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    CounterEntry,
    RateLimitConfig,
    RateLimitResult,
)
from admission_guard.adapters.rate_limit.distributed import DistributedRateLimiter
from admission_guard.adapters.rate_limit.factory import (
    create_key_value_store,
    create_rate_limiter,
)
from admission_guard.adapters.rate_limit.in_memory import InMemoryRateLimiter
from admission_guard.adapters.rate_limit.kv_store import KeyValueStore, RedisKeyValueStore

__all__ = [
    "AbstractRateLimiter",
    "CounterEntry",
    "DistributedRateLimiter",
    "InMemoryRateLimiter",
    "KeyValueStore",
    "RateLimitConfig",
    "RateLimitResult",
    "RedisKeyValueStore",
    "create_key_value_store",
    "create_rate_limiter",
]
