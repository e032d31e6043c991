"""Tests for the FastAPI rate-limit dependency and response headers."""

import time
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from admission_guard.adapters.rate_limit import (
    DistributedRateLimiter,
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitResult,
)
from admission_guard.core.errors import ConfigurationAppError
from admission_guard.core.exception_handlers import setup_exception_handlers
from admission_guard.core.rate_limit import (
    RATE_LIMITED_MESSAGE,
    build_rate_limit_headers,
    check_rate_limit,
    get_policies,
    get_rate_limiter,
    rate_limit_dependency,
)


def _app(limiter, *, config: RateLimitConfig | None = None) -> FastAPI:
    app = FastAPI()
    app.state.rate_limiter = limiter
    setup_exception_handlers(app)
    contact_limit = config or RateLimitConfig(max_requests=2, window_ms=60_000)

    @app.post("/contact", dependencies=[Depends(rate_limit_dependency("contact", contact_limit))])
    async def contact() -> dict:
        return {"sent": True}

    @app.post("/inquire", dependencies=[Depends(rate_limit_dependency("inquire"))])
    async def inquire() -> dict:
        return {"sent": True}

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_app(InMemoryRateLimiter()))


def test_admitted_requests_echo_rate_limit_headers(client: TestClient) -> None:
    headers = {"CF-Connecting-IP": "198.51.100.1"}

    first = client.post("/contact", headers=headers)
    second = client.post("/contact", headers=headers)

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert first.headers["X-RateLimit-Reset"] == second.headers["X-RateLimit-Reset"]
    assert int(first.headers["X-RateLimit-Reset"]) > time.time() * 1000
    assert "Retry-After" not in first.headers


def test_over_limit_returns_429_with_retry_after(client: TestClient) -> None:
    headers = {"CF-Connecting-IP": "198.51.100.1"}
    client.post("/contact", headers=headers)
    client.post("/contact", headers=headers)

    denied = client.post("/contact", headers=headers)

    assert denied.status_code == 429
    body = denied.json()
    assert body["error"] == RATE_LIMITED_MESSAGE
    assert 0 < body["retryAfter"] <= 60
    assert str(body["retryAfter"]) == denied.headers["Retry-After"]
    assert denied.headers["X-RateLimit-Remaining"] == "0"
    assert 0 < int(denied.headers["Retry-After"]) <= 60
    assert denied.headers["X-RateLimit-Reset"].isdigit()


def test_quota_is_per_caller(client: TestClient) -> None:
    for _ in range(2):
        client.post("/contact", headers={"X-Real-IP": "192.0.2.1"})

    assert client.post("/contact", headers={"X-Real-IP": "192.0.2.1"}).status_code == 429
    assert client.post("/contact", headers={"X-Real-IP": "192.0.2.2"}).status_code == 200


def test_quota_is_per_endpoint(client: TestClient) -> None:
    headers = {"X-Real-IP": "192.0.2.1"}
    for _ in range(2):
        client.post("/contact", headers=headers)

    assert client.post("/contact", headers=headers).status_code == 429
    assert client.post("/inquire", headers=headers).status_code == 200


def test_named_policy_is_used_when_no_config_given(client: TestClient) -> None:
    headers = {"X-Real-IP": "192.0.2.1"}
    inquire_limit = get_policies()["inquire"].max_requests

    statuses = [client.post("/inquire", headers=headers).status_code for _ in range(inquire_limit + 1)]

    assert statuses == [200] * inquire_limit + [429]


def test_unknown_policy_without_config_fails_fast() -> None:
    with pytest.raises(KeyError):
        rate_limit_dependency("newsletter")


def test_disabled_rate_limiting_admits_everything() -> None:
    client = TestClient(_app(InMemoryRateLimiter(), config=RateLimitConfig(1, 60_000)))

    with patch("admission_guard.core.rate_limit.settings") as mock_settings:
        mock_settings.rate_limit.enabled = False
        statuses = [client.post("/contact").status_code for _ in range(3)]

    assert statuses == [200, 200, 200]


def test_store_outage_does_not_block_requests(kv_store) -> None:
    async def broken_get(key: str) -> None:
        raise ConnectionError("store unavailable")

    kv_store.get = broken_get
    client = TestClient(_app(DistributedRateLimiter(kv_store), config=RateLimitConfig(1, 60_000)))

    statuses = [client.post("/contact").status_code for _ in range(3)]

    assert statuses == [200, 200, 200]


def test_app_without_limiter_reports_configuration_error() -> None:
    app = _app(None)
    client = TestClient(app)

    response = client.post("/contact")

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "rate_limiter_not_initialized"
    assert app.state.rate_limiter is None


def test_get_rate_limiter_never_builds_an_unmanaged_limiter() -> None:
    request = Mock()
    request.app.state = SimpleNamespace()

    with pytest.raises(ConfigurationAppError) as exc_info:
        get_rate_limiter(request)

    assert "create_app" in exc_info.value.details["hint"]
    assert not hasattr(request.app.state, "rate_limiter")


def test_get_rate_limiter_returns_attached_instance() -> None:
    limiter = InMemoryRateLimiter()
    request = Mock()
    request.app.state = SimpleNamespace(rate_limiter=limiter)

    assert get_rate_limiter(request) is limiter


class TestBuildRateLimitHeaders:
    def test_success_headers(self) -> None:
        result = RateLimitResult(success=True, remaining=4, reset_time=1_700_000_060_000)

        headers = build_rate_limit_headers(result, now_ms=1_700_000_000_000)

        assert headers == {
            "X-RateLimit-Remaining": "4",
            "X-RateLimit-Reset": "1700000060000",
        }

    def test_denied_headers_include_retry_after(self) -> None:
        result = RateLimitResult(success=False, remaining=0, reset_time=1_700_000_060_000)

        headers = build_rate_limit_headers(result, now_ms=1_700_000_000_500)

        assert headers["Retry-After"] == "60"
        assert headers["X-RateLimit-Remaining"] == "0"


@pytest.mark.asyncio
async def test_check_rate_limit_logs_outcome(caplog) -> None:
    limiter = InMemoryRateLimiter()
    config = RateLimitConfig(max_requests=1, window_ms=60_000)

    with caplog.at_level("INFO", logger="admission_guard.core.rate_limit"):
        await check_rate_limit(limiter, "contact:192.0.2.1", config)
        await check_rate_limit(limiter, "contact:192.0.2.1", config)

    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["rate_limit.allowed", "rate_limit.exceeded"]
    assert all("192.0.2.1" not in str(r.key_hash) for r in caplog.records)
