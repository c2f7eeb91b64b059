from __future__ import annotations

from fastapi.testclient import TestClient

from edge_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore
from edge_limiter.core.app_factory import create_app


client = TestClient(create_app(store=InMemoryWindowStore()))


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_error_body_carries_request_id():
    store = InMemoryWindowStore(clock=lambda: 1000.0)
    limited = TestClient(create_app(store=store))
    headers = {"X-Request-ID": "req-429", "API_KEY": "tok"}

    codes = [limited.get("/", headers=headers).status_code for _ in range(11)]
    blocked = limited.get("/", headers=headers)

    assert codes[-1] == 429
    assert blocked.json()["error"]["request_id"] == "req-429"
