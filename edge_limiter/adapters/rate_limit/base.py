"""Window store interface.

The HTTP layer and the classifier depend on this abstraction only, so the
in-process store and the Redis store (or a test double) are interchangeable.

Algorithm shared by every implementation (fixed window with block phase):

- A blocked key is denied until its block expires; no counting happens.
- An open key is admitted while fewer than ``limit`` requests were admitted in
  the current one-second window.
- The request that finds the window exhausted puts the key into a block of
  ``block_seconds`` and is denied.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

# Length of the fixed counting window, in seconds.
WINDOW_SECONDS = 1.0


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single ``allow`` call.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after_seconds: Time until the key may be admitted again
            (0.0 when allowed).
    """

    allowed: bool
    retry_after_seconds: float = 0.0

    @classmethod
    def admit(cls) -> "RateLimitDecision":
        return cls(allowed=True, retry_after_seconds=0.0)

    @classmethod
    def deny(cls, retry_after_seconds: float) -> "RateLimitDecision":
        return cls(allowed=False, retry_after_seconds=max(0.0, float(retry_after_seconds)))


def validate_allow_args(key: str, limit: int, block_seconds: float) -> None:
    """Check the preconditions of ``AbstractWindowStore.allow``.

    Raises:
        ValueError: If key is empty, limit < 1 or block_seconds < 0.
    """
    if not key:
        raise ValueError("key must be a non-empty string")
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if block_seconds < 0:
        raise ValueError("block_seconds must be >= 0")


class AbstractWindowStore(ABC):
    """Interface for fixed-window-with-block stores."""

    #: Short backend name used in logs and error details.
    backend_name: str = "abstract"

    @abstractmethod
    async def allow(self, key: str, limit: int, block_seconds: float) -> RateLimitDecision:
        """Record one request for ``key`` and decide whether it is admitted.

        Args:
            key: Namespaced rate limit key (e.g. ``ip:10.0.0.1``).
            limit: Maximum admitted requests per window (>= 1).
            block_seconds: Block duration entered when the limit is exceeded.

        Returns:
            RateLimitDecision for this request.

        Raises:
            ValueError: If arguments violate the preconditions.
            BackendUnavailableError: If the store cannot complete the call.
        """
        raise NotImplementedError

    @abstractmethod
    async def clear(self, key: str) -> None:
        """Forget all window and block state for ``key``."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release resources held by the store (no-op by default)."""
        return None
