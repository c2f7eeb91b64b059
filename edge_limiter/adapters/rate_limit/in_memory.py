"""In-memory fixed-window rate limiter with block phase.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
  Use the Redis store when more than one process serves traffic.
- Thread-safe: one lock covers the whole read-modify-write of a key, so the
  store can be shared by asyncio tasks and worker threads alike.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from edge_limiter.adapters.rate_limit.base import (
    WINDOW_SECONDS,
    AbstractWindowStore,
    RateLimitDecision,
    validate_allow_args,
)

logger = logging.getLogger(__name__)


@dataclass
class _KeyState:
    window_start: float
    count: int = 0
    blocked_until: float | None = None


class InMemoryWindowStore(AbstractWindowStore):
    """Window store backed by a dict owned by this instance.

    Every check that depends on "now" (block expiry, window expiry, the limit
    comparison and the increment) runs inside the same critical section, so
    two concurrent calls for one key can never both observe ``count < limit``
    and both be admitted past it.

    The lock is never held across I/O or an ``await``.
    """

    backend_name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the store.

        Args:
            clock: Monotonic time source returning seconds.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._state_by_key: dict[str, _KeyState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def _decide_locked(
        self, key: str, limit: int, block_seconds: float, now: float
    ) -> RateLimitDecision:
        state = self._state_by_key.get(key)

        if state is not None and state.blocked_until is not None:
            if now < state.blocked_until:
                return RateLimitDecision.deny(state.blocked_until - now)
            # Block expired: the key starts over with no memory of the past.
            state = None

        if state is None or now - state.window_start >= WINDOW_SECONDS:
            state = _KeyState(window_start=now)
            self._state_by_key[key] = state

        if state.count >= limit:
            state.blocked_until = now + block_seconds
            return RateLimitDecision.deny(block_seconds)

        state.count += 1
        return RateLimitDecision.admit()

    async def allow(self, key: str, limit: int, block_seconds: float) -> RateLimitDecision:
        """Record one request for ``key`` and decide whether it is admitted.

        Args:
            key: Namespaced rate limit key.
            limit: Maximum admitted requests per one-second window.
            block_seconds: Block duration once the limit is exceeded.

        Returns:
            RateLimitDecision for this request.

        Raises:
            ValueError: If arguments violate the preconditions.
        """
        validate_allow_args(key, limit, block_seconds)

        with self._lock:
            return self._decide_locked(key, limit, block_seconds, self._clock())

    async def clear(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    def sweep(self) -> int:
        """Drop entries whose block or window has fully expired.

        Only reclaims memory; decisions are the same with or without sweeping.

        Returns:
            Number of keys removed.
        """
        with self._lock:
            now = self._clock()
            stale = [
                key
                for key, state in self._state_by_key.items()
                if (state.blocked_until is not None and now >= state.blocked_until)
                or (state.blocked_until is None and now - state.window_start >= WINDOW_SECONDS)
            ]
            for key in stale:
                del self._state_by_key[key]
            remaining = len(self._state_by_key)

        if stale:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": len(stale), "entries": remaining},
            )
        return len(stale)
