"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import of ``edge_limiter`` so the
global settings are built with the in-memory backend and no .env file.
"""

from __future__ import annotations

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("APP_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any  # noqa: E402

import pytest  # noqa: E402


class FakeClock:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeRedis:
    """Async in-memory stand-in for the redis.asyncio commands we use.

    Expiry follows Redis semantics against an injectable clock:
    PTTL returns -2 for missing keys and -1 for keys without expiry.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}
        self.closed = False
        self.calls: list[str] = []

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= self.clock():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)

    async def ping(self) -> bool:
        self.calls.append("ping")
        return True

    async def pttl(self, key: str) -> int:
        self.calls.append("pttl")
        self._purge(key)
        if key not in self.data:
            return -2
        if key not in self.expires_at:
            return -1
        return int(round((self.expires_at[key] - self.clock()) * 1000))

    async def get(self, key: str) -> str | None:
        self.calls.append("get")
        self._purge(key)
        return self.data.get(key)

    async def set(self, key: str, value: Any, px: int | None = None) -> bool:
        self.calls.append("set")
        self.data[key] = str(value)
        if px is not None:
            self.expires_at[key] = self.clock() + px / 1000
        else:
            self.expires_at.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self.calls.append("incr")
        self._purge(key)
        new_value = int(self.data.get(key, "0")) + 1
        self.data[key] = str(new_value)
        return new_value

    async def pexpire(self, key: str, ms: int) -> bool:
        self.calls.append("pexpire")
        self._purge(key)
        if key not in self.data:
            return False
        self.expires_at[key] = self.clock() + ms / 1000
        return True

    async def delete(self, *keys: str) -> int:
        self.calls.append("delete")
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.data:
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock: FakeClock) -> FakeRedis:
    return FakeRedis(fake_clock)
