"""In-process fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers or instances multiplies the
  effective limit by the number of processes.
- Thread-safe: uses a lock around shared state, so the same store can be
  used from the event loop and from threadpool handlers.
- Expired windows are evicted by ``sweep()``, run periodically by a
  background task with an explicit start/stop lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
import threading
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

logger = logging.getLogger(__name__)


class InMemoryRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping counters in a dict owned by this instance.

    Important:
        This limiter is per-process only. If the API runs with multiple
        workers (e.g., multiple Uvicorn/Gunicorn workers) or several
        instances behind a load balancer, each one enforces its own
        independent limits. Configure a shared store for production.
    """

    def __init__(
        self,
        *,
        clock: Clock = time.time,
        sweep_interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_seconds: Delay between background sweeps.

        Raises:
            ValueError: If sweep_interval_seconds is not positive.
        """
        if sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._lock = threading.RLock()
        self._entries: dict[str, CounterEntry] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def check_limit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Consume one request from ``key``'s window.

        This method both checks the current window usage and mutates the
        state if the request is admitted.
        """
        now = now_ms(self._clock)

        with self._lock:
            entry = self._entries.get(key)

            if entry is None or entry.is_expired(now):
                entry = CounterEntry(count=1, reset_time=now + config.window_ms)
                self._entries[key] = entry
                return RateLimitResult(
                    success=True,
                    remaining=config.max_requests - 1,
                    reset_time=entry.reset_time,
                )

            if entry.count >= config.max_requests:
                return RateLimitResult(success=False, remaining=0, reset_time=entry.reset_time)

            entry.count += 1
            return RateLimitResult(
                success=True,
                remaining=max(0, config.max_requests - entry.count),
                reset_time=entry.reset_time,
            )

    async def get_status(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Peek at ``key``'s window without consuming quota."""
        now = now_ms(self._clock)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                return RateLimitResult(
                    success=True,
                    remaining=config.max_requests,
                    reset_time=now + config.window_ms,
                )
            return RateLimitResult(
                success=entry.count < config.max_requests,
                remaining=max(0, config.max_requests - entry.count),
                reset_time=entry.reset_time,
            )

    async def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
        logger.info("rate_limit.reset", extra={"key_hash": hash_key(key)})

    def sweep(self) -> int:
        """Evict every entry whose window has passed.

        Returns:
            Number of evicted entries.
        """
        now = now_ms(self._clock)
        with self._lock:
            expired_keys = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._entries[key]
            size = len(self._entries)

        if expired_keys:
            logger.debug(
                "rate_limit.sweep",
                extra={"evicted": len(expired_keys), "size": size},
            )
        return len(expired_keys)

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self.sweeper_running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep_forever(), name="rate-limit-sweeper"
        )
        logger.info(
            "rate_limit.sweeper_started",
            extra={"interval_s": self._sweep_interval},
        )

    async def stop_sweeper(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limit.sweeper_stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    async def aclose(self) -> None:
        await self.stop_sweeper()
