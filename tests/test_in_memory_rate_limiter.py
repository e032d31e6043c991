"""Unit tests for the in-process rate limiter."""

import asyncio
import threading

import pytest

from admission_guard.adapters.rate_limit import InMemoryRateLimiter, RateLimitConfig

CONFIG = RateLimitConfig(max_requests=2, window_ms=10_000)


@pytest.mark.asyncio
async def test_sweep_evicts_only_expired_windows(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock)
    await limiter.check_limit("old", CONFIG)
    clock.advance(8)
    await limiter.check_limit("fresh", CONFIG)

    clock.advance(3)
    evicted = limiter.sweep()

    assert evicted == 1
    assert len(limiter) == 1
    status = await limiter.get_status("fresh", CONFIG)
    assert status.remaining == 1


@pytest.mark.asyncio
async def test_sweep_with_nothing_expired_is_a_no_op(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock)
    await limiter.check_limit("k", CONFIG)

    assert limiter.sweep() == 0
    assert len(limiter) == 1


@pytest.mark.asyncio
async def test_get_status_does_not_create_entries(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock)

    await limiter.get_status("k", CONFIG)

    assert len(limiter) == 0


@pytest.mark.asyncio
async def test_reset_removes_entry(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock)
    await limiter.check_limit("k", CONFIG)

    await limiter.reset("k")

    assert len(limiter) == 0


@pytest.mark.asyncio
async def test_separate_instances_do_not_share_counters(clock) -> None:
    first = InMemoryRateLimiter(clock=clock)
    second = InMemoryRateLimiter(clock=clock)

    await first.check_limit("k", CONFIG)
    await first.check_limit("k", CONFIG)

    assert (await first.check_limit("k", CONFIG)).success is False
    assert (await second.check_limit("k", CONFIG)).success is True


def test_concurrent_threads_never_exceed_limit(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock)
    config = RateLimitConfig(max_requests=50, window_ms=60_000)
    admitted: list[bool] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(20):
            result = asyncio.run(limiter.check_limit("shared", config))
            with lock:
                admitted.append(result.success)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert admitted.count(True) == 50
    assert admitted.count(False) == 50


@pytest.mark.asyncio
async def test_sweeper_lifecycle(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock, sweep_interval_seconds=0.01)
    await limiter.check_limit("k", CONFIG)
    clock.advance(11)

    limiter.start_sweeper()
    limiter.start_sweeper()
    assert limiter.sweeper_running is True

    for _ in range(100):
        if len(limiter) == 0:
            break
        await asyncio.sleep(0.01)
    assert len(limiter) == 0

    await limiter.stop_sweeper()
    assert limiter.sweeper_running is False

    # Stopping twice is harmless
    await limiter.stop_sweeper()


@pytest.mark.asyncio
async def test_aclose_stops_sweeper(clock) -> None:
    limiter = InMemoryRateLimiter(clock=clock, sweep_interval_seconds=60)
    limiter.start_sweeper()

    await limiter.aclose()

    assert limiter.sweeper_running is False


def test_invalid_sweep_interval() -> None:
    with pytest.raises(ValueError):
        InMemoryRateLimiter(sweep_interval_seconds=0)
