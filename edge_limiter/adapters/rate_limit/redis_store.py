"""Redis-backed window store for multi-instance deployments.

Two keys per identifier:
- ``count:<key>``: integer counter, PEXPIRE one window, reset by expiry.
- ``block:<key>``: presence-only marker with a TTL of the block duration.

The default mode issues plain commands (PTTL, GET, SET/DEL or INCR/PEXPIRE).
Steps between GET and INCR are not transactional, so concurrent callers can
overshoot ``limit`` by their in-flight concurrency before one of them trips
the block. ``atomic=True`` runs the same algorithm as a Lua script instead.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from edge_limiter.adapters.rate_limit.base import (
    WINDOW_SECONDS,
    AbstractWindowStore,
    RateLimitDecision,
    validate_allow_args,
)
from edge_limiter.adapters.rate_limit.redis_lua import ALLOW_SCRIPT
from edge_limiter.core.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

_WINDOW_MS = int(WINDOW_SECONDS * 1000)


def normalize_redis_url(url: str) -> str:
    """Accept bare ``host:port`` addresses as well as full redis URLs."""
    url = url.strip()
    if "://" not in url:
        return f"redis://{url}"
    return url


def _to_ms(seconds: float) -> int:
    return int(math.ceil(seconds * 1000))


class RedisWindowStore(AbstractWindowStore):
    """Window store that keeps all state in Redis.

    The store owns no local state; per-key atomicity of INCR, SET PX and
    PEXPIRE on the server is what keeps counts consistent across processes.
    """

    backend_name = "redis"

    REDIS_KEY_PREFIX_COUNT = "count"
    REDIS_KEY_PREFIX_BLOCK = "block"

    def __init__(
        self,
        client: Any,
        *,
        timeout_seconds: float = 5.0,
        key_prefix: str = "",
        atomic: bool = False,
    ) -> None:
        """Initialize the store around an existing ``redis.asyncio`` client.

        Args:
            client: ``redis.asyncio.Redis`` (or compatible) client.
            timeout_seconds: Upper bound for one ``allow`` call.
            key_prefix: Optional namespace prepended to every Redis key.
            atomic: Use the Lua script instead of separate commands.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self._client = client
        self._timeout = timeout_seconds
        self._key_prefix = key_prefix
        self._atomic = atomic

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        timeout_seconds: float = 5.0,
        key_prefix: str = "",
        atomic: bool = False,
    ) -> "RedisWindowStore":
        client = aioredis.from_url(
            normalize_redis_url(url),
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
            decode_responses=True,
        )
        return cls(client, timeout_seconds=timeout_seconds, key_prefix=key_prefix, atomic=atomic)

    @property
    def atomic(self) -> bool:
        return self._atomic

    def _make_key(self, kind: str, key: str) -> str:
        if self._key_prefix:
            return f"{self._key_prefix}:{kind}:{key}"
        return f"{kind}:{key}"

    def _make_count_key(self, key: str) -> str:
        return self._make_key(self.REDIS_KEY_PREFIX_COUNT, key)

    def _make_block_key(self, key: str) -> str:
        return self._make_key(self.REDIS_KEY_PREFIX_BLOCK, key)

    def _unavailable(self, code: str, exc: BaseException) -> BackendUnavailableError:
        logger.warning(
            "rate_limit.backend_error",
            extra={
                "backend": self.backend_name,
                "error_code": code,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return BackendUnavailableError(
            code=code,
            message="Rate limit store is unavailable",
            details={
                "backend": self.backend_name,
                "error_type": type(exc).__name__,
                "timeout_s": self._timeout,
            },
        )

    async def _allow_commands(self, key: str, limit: int, block_seconds: float) -> RateLimitDecision:
        block_key = self._make_block_key(key)
        count_key = self._make_count_key(key)

        block_ttl_ms = await self._client.pttl(block_key)
        if block_ttl_ms > 0:
            return RateLimitDecision.deny(block_ttl_ms / 1000)

        raw = await self._client.get(count_key)
        try:
            current = int(raw) if raw is not None else 0
        except (TypeError, ValueError) as exc:
            raise self._unavailable("rate_limit_backend_protocol_error", exc) from exc

        if current >= limit:
            block_ms = _to_ms(block_seconds)
            if block_ms > 0:
                await self._client.set(block_key, "1", px=block_ms)
            # Counter never outlives the block.
            await self._client.delete(count_key)
            return RateLimitDecision.deny(block_seconds)

        await self._client.incr(count_key)
        if current == 0:
            await self._client.pexpire(count_key, _WINDOW_MS)

        return RateLimitDecision.admit()

    async def _allow_script(self, key: str, limit: int, block_seconds: float) -> RateLimitDecision:
        result = await self._client.eval(
            ALLOW_SCRIPT,
            2,  # Number of keys
            self._make_block_key(key),  # KEYS[1]
            self._make_count_key(key),  # KEYS[2]
            limit,  # ARGV[1]
            _to_ms(block_seconds),  # ARGV[2]
            _WINDOW_MS,  # ARGV[3]
        )
        try:
            allowed = bool(int(result[0]))
            retry_after_ms = int(result[1])
        except (TypeError, ValueError, IndexError) as exc:
            raise self._unavailable("rate_limit_backend_protocol_error", exc) from exc

        if allowed:
            return RateLimitDecision.admit()
        return RateLimitDecision.deny(retry_after_ms / 1000)

    async def allow(self, key: str, limit: int, block_seconds: float) -> RateLimitDecision:
        """Record one request for ``key`` and decide whether it is admitted.

        The whole exchange with Redis is bounded by ``timeout_seconds``.

        Raises:
            ValueError: If arguments violate the preconditions.
            BackendUnavailableError: On timeout, connection or protocol errors.
        """
        validate_allow_args(key, limit, block_seconds)

        if self._atomic:
            call = self._allow_script(key, limit, block_seconds)
        else:
            call = self._allow_commands(key, limit, block_seconds)

        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise self._unavailable("rate_limit_backend_timeout", exc) from exc
        except RedisError as exc:
            raise self._unavailable("rate_limit_backend_unavailable", exc) from exc

    async def clear(self, key: str) -> None:
        try:
            await asyncio.wait_for(
                self._client.delete(self._make_count_key(key), self._make_block_key(key)),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise self._unavailable("rate_limit_backend_timeout", exc) from exc
        except RedisError as exc:
            raise self._unavailable("rate_limit_backend_unavailable", exc) from exc

    async def ping(self) -> None:
        """Verify the store is reachable.

        Raises:
            BackendUnavailableError: If Redis does not answer in time.
        """
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise self._unavailable("rate_limit_backend_timeout", exc) from exc
        except RedisError as exc:
            raise self._unavailable("rate_limit_backend_unavailable", exc) from exc

    async def aclose(self) -> None:
        await self._client.aclose()
