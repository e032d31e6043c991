"""Rate limiter interfaces and value types.

The API should depend on this abstraction (not the concrete implementation)
so the shared store and the in-process fallback stay interchangeable.
"""

from __future__ import annotations

import hashlib
import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from admission_guard.core.errors import ConfigurationAppError

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-endpoint admission limits.

    Attributes:
        max_requests: Requests admitted per window (> 0).
        window_ms: Window length in milliseconds (> 0).

    Raises:
        ConfigurationAppError: If either value is not a positive integer.
    """

    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        for field_name in ("max_requests", "window_ms"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationAppError(
                    code="rate_limit_invalid_config",
                    message=f"{field_name} must be a positive integer",
                    details={"field": field_name, "context": {"value": repr(value)}},
                )

    @classmethod
    def per_seconds(cls, max_requests: int, window_seconds: int) -> RateLimitConfig:
        """Build a config from a window expressed in seconds."""
        return cls(max_requests=max_requests, window_ms=window_seconds * 1000)

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)


@dataclass
class CounterEntry:
    """Usage of one rate-limit key within its current window.

    ``reset_time`` is an absolute UNIX timestamp in milliseconds.
    """

    count: int
    reset_time: int

    def is_expired(self, now_ms: int) -> bool:
        return self.reset_time < now_ms

    def to_json(self) -> str:
        return json.dumps({"count": self.count, "resetTime": self.reset_time})

    @classmethod
    def from_json(cls, raw: str | bytes | None) -> CounterEntry | None:
        """Parse a stored entry, returning None when absent or corrupt."""
        if not raw:
            return None
        try:
            data = json.loads(raw)
            count = data["count"]
            reset_time = data["resetTime"]
        except (ValueError, TypeError, KeyError):
            return None
        if not isinstance(count, int) or not isinstance(reset_time, (int, float)):
            return None
        if isinstance(count, bool) or count < 0:
            return None
        return cls(count=count, reset_time=int(reset_time))


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check or status peek.

    Attributes:
        success: Whether the request is admitted.
        remaining: Requests left in the current window (0 when blocked).
        reset_time: UNIX epoch milliseconds when the current window resets.
    """

    success: bool
    remaining: int
    reset_time: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Seconds until the window resets, rounded up and never negative."""
        return max(0, math.ceil((self.reset_time - now_ms) / 1000))


def now_ms(clock: Clock) -> int:
    """Convert a seconds-based clock reading to integer milliseconds."""
    return int(clock() * 1000)


def hash_key(key: str) -> str:
    """Hash a rate-limit key for logging without exposing caller addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class AbstractRateLimiter(ABC):
    """Interface for counter stores.

    ``check_limit`` is the only operation every backend must support.
    ``reset`` and ``get_status`` are optional administrative operations.
    """

    @abstractmethod
    async def check_limit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request against ``key`` if it is under quota.

        Args:
            key: Namespaced rate-limit key (``prefix:identity``).
            config: Limits for the calling endpoint.

        Returns:
            RateLimitResult describing whether the request is admitted.
        """
        raise NotImplementedError

    async def reset(self, key: str) -> None:
        """Clear all state for ``key``."""
        raise NotImplementedError

    async def get_status(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Report current usage for ``key`` without consuming quota."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release backend resources. No-op by default."""
        return None
