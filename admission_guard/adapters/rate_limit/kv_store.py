"""Key-value store handle used by the distributed counter store.

The distributed limiter only needs get/put/delete with a per-key TTL, so it
depends on the ``KeyValueStore`` protocol rather than on a concrete client.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal async key-value interface with per-entry expiration."""

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """``KeyValueStore`` backed by Redis.

    Entries are written with ``SET key value EX ttl`` so stale counters
    expire on their own even if they are never read again.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float = 0.5) -> RedisKeyValueStore:
        """Create a store from a Redis URL.

        Args:
            url: Redis connection URL (e.g., "redis://localhost:6379/0").
            timeout_seconds: Connect and socket timeout applied to every call.
        """
        client = Redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        logger.debug("rate_limit.redis_client_created")
        return cls(client)

    async def get(self, key: str) -> str | None:
        return await self._client.get(key)

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def aclose(self) -> None:
        # aclose() is the redis-py 5.0+ spelling of close()
        await self._client.aclose()
        logger.debug("rate_limit.redis_client_closed")
