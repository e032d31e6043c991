"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable so settings never load a .env
file, and makes sure no shared store is configured.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.pop("RATE_LIMIT_REDIS_URL", None)

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")

import pytest


class FakeClock:
    """Deterministic clock returning UNIX time in seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeKeyValueStore:
    """Dict-backed KeyValueStore honouring TTLs against a FakeClock."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.entries: dict[str, tuple[str, float]] = {}
        self.puts: list[tuple[str, str, int]] = []

    async def get(self, key: str) -> str | None:
        item = self.entries.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self._clock():
            del self.entries[key]
            return None
        return value

    async def put(self, key: str, value: str, *, ttl_seconds: int) -> None:
        self.puts.append((key, value, ttl_seconds))
        self.entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock: FakeClock) -> FakeKeyValueStore:
    return FakeKeyValueStore(clock)
