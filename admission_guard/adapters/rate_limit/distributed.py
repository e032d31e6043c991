"""Fixed-window rate limiter backed by a shared key-value store.

Counters live in a store reachable from every instance of the service, so
limits hold across the whole deployment. Each entry carries a TTL of the
remaining window plus a buffer and expires on its own; no instance ever
sweeps the shared store.

Known limitation:
    ``check_limit`` is a read followed by a write. Two concurrent requests
    for the same key can both read the same count and both be admitted,
    producing a small overcount under high concurrency. Closing the gap
    needs the store's atomic increment or a server-side script doing the
    read-modify-write in one step.

Failure policy:
    Any store error is logged and the request is admitted (fail open). An
    abuse filter must not take a public form down with it.
"""

from __future__ import annotations

import logging
import math
import time

from admission_guard.adapters.rate_limit.base import (
    AbstractRateLimiter,
    Clock,
    CounterEntry,
    RateLimitConfig,
    RateLimitResult,
    hash_key,
    now_ms,
)
from admission_guard.adapters.rate_limit.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "ratelimit"

# Extra lifetime on stored entries so they outlive their window slightly.
TTL_BUFFER_SECONDS = 60


class DistributedRateLimiter(AbstractRateLimiter):
    """Rate limiter sharing counters through a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore, *, clock: Clock = time.time) -> None:
        self._store = store
        self._clock = clock

    @staticmethod
    def _storage_key(key: str) -> str:
        return f"{KEY_NAMESPACE}:{key}"

    @staticmethod
    def _ttl_seconds(remaining_ms: int) -> int:
        return math.ceil(remaining_ms / 1000) + TTL_BUFFER_SECONDS

    async def _read_entry(self, storage_key: str) -> CounterEntry | None:
        raw = await self._store.get(storage_key)
        entry = CounterEntry.from_json(raw)
        if raw and entry is None:
            logger.info(
                "rate_limit.corrupt_entry",
                extra={"key_hash": hash_key(storage_key)},
            )
        return entry

    async def check_limit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Consume one request from ``key``'s window.

        Args:
            key: Namespaced rate-limit key.
            config: Limits for the calling endpoint.

        Returns:
            RateLimitResult. Store failures yield an optimistic success.
        """
        now = now_ms(self._clock)
        storage_key = self._storage_key(key)

        try:
            entry = await self._read_entry(storage_key)

            if entry is None or entry.is_expired(now):
                entry = CounterEntry(count=1, reset_time=now + config.window_ms)
                await self._store.put(
                    storage_key,
                    entry.to_json(),
                    ttl_seconds=self._ttl_seconds(config.window_ms),
                )
                return RateLimitResult(
                    success=True,
                    remaining=config.max_requests - 1,
                    reset_time=entry.reset_time,
                )

            if entry.count >= config.max_requests:
                return RateLimitResult(success=False, remaining=0, reset_time=entry.reset_time)

            entry.count += 1
            await self._store.put(
                storage_key,
                entry.to_json(),
                ttl_seconds=self._ttl_seconds(entry.reset_time - now),
            )
            return RateLimitResult(
                success=True,
                remaining=max(0, config.max_requests - entry.count),
                reset_time=entry.reset_time,
            )
        except Exception as exc:
            logger.warning(
                "rate_limit.store_error",
                extra={
                    "operation": "check_limit",
                    "key_hash": hash_key(key),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return RateLimitResult(
                success=True,
                remaining=config.max_requests - 1,
                reset_time=now + config.window_ms,
            )

    async def get_status(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Report usage for ``key`` without writing to the store."""
        now = now_ms(self._clock)
        untouched = RateLimitResult(
            success=True,
            remaining=config.max_requests,
            reset_time=now + config.window_ms,
        )

        try:
            entry = await self._read_entry(self._storage_key(key))
        except Exception as exc:
            logger.warning(
                "rate_limit.store_error",
                extra={
                    "operation": "get_status",
                    "key_hash": hash_key(key),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return untouched

        if entry is None or entry.is_expired(now):
            return untouched

        return RateLimitResult(
            success=entry.count < config.max_requests,
            remaining=max(0, config.max_requests - entry.count),
            reset_time=entry.reset_time,
        )

    async def reset(self, key: str) -> None:
        """Delete the stored counter for ``key``.

        Store failures are logged and not raised; the entry then simply
        expires with its TTL.
        """
        try:
            await self._store.delete(self._storage_key(key))
        except Exception as exc:
            logger.warning(
                "rate_limit.store_error",
                extra={
                    "operation": "reset",
                    "key_hash": hash_key(key),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return
        logger.info("rate_limit.reset", extra={"key_hash": hash_key(key)})

    async def aclose(self) -> None:
        close = getattr(self._store, "aclose", None)
        if close is not None:
            await close()
