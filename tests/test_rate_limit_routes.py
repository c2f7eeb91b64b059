"""HTTP-level tests for rate limiting on the catch-all route.

Each test builds its own app with a fresh in-memory store on a frozen clock,
so windows never roll over mid-test.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from fastapi.testclient import TestClient

from edge_limiter.adapters.rate_limit.base import AbstractWindowStore
from edge_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore
from edge_limiter.core import rate_limit as rate_limit_module
from edge_limiter.core.app_factory import create_app
from edge_limiter.core.errors import BackendUnavailableError


@pytest.fixture
def configure_limits(monkeypatch: pytest.MonkeyPatch):
    """Patch the rate limit settings for one test."""

    def _configure(**overrides) -> None:
        values = {
            "rate_limit_ip": 5,
            "rate_limit_token": 10,
            "block_time": 2.0,
            "enable_ip_limit": True,
            "enable_token_limit": True,
            "rate_limit_failure_mode": "closed",
            "rate_limit_include_headers": True,
            "rate_limit_token_header": "API_KEY",
        }
        values.update(overrides)
        for name, value in values.items():
            monkeypatch.setattr(rate_limit_module.settings.rate_limit, name, value)

    return _configure


@pytest.fixture
def store() -> InMemoryWindowStore:
    return InMemoryWindowStore(clock=Mock(return_value=1000.0))


@pytest.fixture
def client(store: InMemoryWindowStore) -> TestClient:
    return TestClient(create_app(store=store))


def _get(client: TestClient, token: str | None = None, **headers: str) -> httpx.Response:
    if token:
        headers["API_KEY"] = token
    return client.get("/", headers=headers)


class TestIPLimiting:
    def test_blocks_sixth_request_from_same_ip(self, client: TestClient, configure_limits) -> None:
        configure_limits(rate_limit_ip=5, block_time=2.0)

        for _ in range(5):
            assert _get(client).status_code == 200

        blocked = _get(client)
        assert blocked.status_code == 429
        error = blocked.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert "maximum number of requests" in error["message"]
        assert error["retry_after"] == pytest.approx(2.0)
        assert blocked.headers["Retry-After"] == "2"
        assert blocked.headers.get("X-Request-ID")

    def test_forwarded_ips_have_separate_counters(
        self, client: TestClient, configure_limits
    ) -> None:
        configure_limits(rate_limit_ip=1)

        assert _get(client, **{"X-Forwarded-For": "203.0.113.1, 10.0.0.1"}).status_code == 200
        assert _get(client, **{"X-Forwarded-For": "203.0.113.1, 10.0.0.2"}).status_code == 429
        assert _get(client, **{"X-Forwarded-For": "203.0.113.2"}).status_code == 200

    def test_retry_after_header_can_be_disabled(
        self, client: TestClient, configure_limits
    ) -> None:
        configure_limits(rate_limit_ip=1, rate_limit_include_headers=False)

        _get(client)
        blocked = _get(client)

        assert blocked.status_code == 429
        assert "Retry-After" not in blocked.headers
        assert blocked.json()["error"]["retry_after"] == pytest.approx(2.0)

    def test_any_method_is_limited(self, client: TestClient, configure_limits) -> None:
        configure_limits(rate_limit_ip=2)

        assert client.post("/").status_code == 200
        assert client.delete("/").status_code == 200
        assert client.put("/").status_code == 429


class TestTokenLimiting:
    def test_blocks_after_token_limit(self, client: TestClient, configure_limits) -> None:
        configure_limits(rate_limit_ip=10, rate_limit_token=3, block_time=1.0)

        for _ in range(3):
            assert _get(client, "test-token-123").status_code == 200
        assert _get(client, "test-token-123").status_code == 429

    def test_token_precedence_over_ip(self, client: TestClient, configure_limits) -> None:
        configure_limits(rate_limit_ip=2, rate_limit_token=10)

        for _ in range(5):
            assert _get(client, "precedence-token").status_code == 200

    def test_distinct_tokens_have_independent_counters(
        self, client: TestClient, configure_limits
    ) -> None:
        configure_limits(rate_limit_ip=10, rate_limit_token=2)

        for token in ("token-1", "token-2"):
            codes = [_get(client, token).status_code for _ in range(3)]
            assert codes == [200, 200, 429]

    def test_custom_token_header(self, client: TestClient, configure_limits) -> None:
        configure_limits(rate_limit_ip=1, rate_limit_token=5, rate_limit_token_header="X-Token")

        for _ in range(3):
            assert client.get("/", headers={"X-Token": "abc"}).status_code == 200


class TestDisabledClasses:
    def test_ip_limit_disabled_admits_everything(
        self, client: TestClient, store: InMemoryWindowStore, configure_limits
    ) -> None:
        configure_limits(rate_limit_ip=1, rate_limit_token=1, enable_ip_limit=False)

        for _ in range(5):
            assert _get(client).status_code == 200
        assert len(store) == 0

    def test_token_limit_disabled_falls_back_to_ip(
        self, client: TestClient, store: InMemoryWindowStore, configure_limits
    ) -> None:
        configure_limits(rate_limit_ip=5, rate_limit_token=1, enable_token_limit=False)

        for _ in range(5):
            assert _get(client, "any-token").status_code == 200
        assert _get(client, "any-token").status_code == 429
        assert len(store) == 1

    def test_both_disabled(self, client: TestClient, configure_limits) -> None:
        configure_limits(enable_ip_limit=False, enable_token_limit=False)

        for _ in range(20):
            assert _get(client, "t").status_code == 200


class TestBackendFailure:
    @pytest.fixture
    def failing_store(self) -> AbstractWindowStore:
        store = Mock(spec=AbstractWindowStore)
        store.backend_name = "redis"
        store.allow = AsyncMock(
            side_effect=BackendUnavailableError(
                code="rate_limit_backend_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": "redis"},
            )
        )
        return store

    def test_fail_closed_returns_500(self, failing_store, configure_limits) -> None:
        configure_limits()
        client = TestClient(create_app(store=failing_store))

        response = _get(client)

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "rate_limit_backend_unavailable"
        assert "details" not in error

    def test_fail_open_admits(self, failing_store, configure_limits) -> None:
        configure_limits(rate_limit_failure_mode="open")
        client = TestClient(create_app(store=failing_store))

        assert _get(client).status_code == 200
        failing_store.allow.assert_awaited_once()


def test_health_is_not_rate_limited(client: TestClient, configure_limits) -> None:
    configure_limits(rate_limit_ip=1)

    for _ in range(5):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "backend": "memory"}


def test_root_payload(client: TestClient, configure_limits) -> None:
    configure_limits()

    body = _get(client).json()

    assert body["message"] == "Request successful"
    assert isinstance(body["timestamp"], int)


@pytest.mark.asyncio
async def test_concurrent_requests_admit_exactly_limit(store, configure_limits) -> None:
    configure_limits(rate_limit_ip=10, rate_limit_token=10, block_time=1.0)
    app = create_app(store=store)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        responses = await asyncio.gather(*(client.get("/") for _ in range(15)))

    codes = [r.status_code for r in responses]
    assert codes.count(200) == 10
    assert codes.count(429) == 5


def test_lifespan_builds_store_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from edge_limiter.core import app_factory

    monkeypatch.setattr(app_factory.settings.rate_limit, "rate_limit_backend", "memory")

    with TestClient(create_app()) as client:
        assert client.get("/health").json()["backend"] == "memory"
