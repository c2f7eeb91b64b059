"""Rate limiting dependency for FastAPI routes.

This module wires the window store into the HTTP layer.

Rate limiting strategy:
- Requests carrying a token (``API_KEY`` header) are limited per token.
- Otherwise requests are limited per client IP.
- A present token always shadows the IP limit, whichever limit is looser.
- A disabled class is not limited at all and touches no counter.

The store instance lives on ``app.state.window_store`` (built in the app
lifespan), so every app owns its own limiter state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from fastapi import Request

from edge_limiter.adapters.rate_limit.base import AbstractWindowStore, RateLimitDecision
from edge_limiter.core.config import RateLimitSettings, settings
from edge_limiter.core.errors import BackendUnavailableError, RateLimitExceededError
from edge_limiter.core.logging import hash_identifier
from edge_limiter.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED_MESSAGE = (
    "you have reached the maximum number of requests or actions allowed "
    "within a certain time frame"
)


class KeyKind(str, Enum):
    """Namespace of a rate limit key."""

    TOKEN = "token"
    IP = "ip"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limits and switches applied by the classifier."""

    ip_limit: int = 5
    token_limit: int = 10
    block_seconds: float = 100.0
    enable_ip_limit: bool = True
    enable_token_limit: bool = True

    @classmethod
    def from_settings(cls, cfg: RateLimitSettings) -> "RateLimitPolicy":
        return cls(
            ip_limit=cfg.rate_limit_ip,
            token_limit=cfg.rate_limit_token,
            block_seconds=cfg.block_time,
            enable_ip_limit=cfg.enable_ip_limit,
            enable_token_limit=cfg.enable_token_limit,
        )


@dataclass(frozen=True)
class RateLimitTarget:
    """Identifier and limit selected for one request."""

    kind: KeyKind
    key: str
    limit: int


def build_rate_limit_key(kind: KeyKind, value: str) -> str:
    """Namespace a raw identifier so token and IP keys never collide.

    Example:
        >>> build_rate_limit_key(KeyKind.IP, "10.0.0.1")
        'ip:10.0.0.1'
    """

    return f"{kind.value}:{value}"


def classify_request(
    token: str | None,
    client_ip: str | None,
    policy: RateLimitPolicy,
) -> RateLimitTarget | None:
    """Pick the identifier and limit for a request.

    Args:
        token: Token header value, if any.
        client_ip: Client IP as extracted by the boundary layer.
        policy: Active limits and switches.

    Returns:
        The target to check, or None when no limiting class applies.
    """

    token = (token or "").strip()
    if token and policy.enable_token_limit:
        return RateLimitTarget(
            kind=KeyKind.TOKEN,
            key=build_rate_limit_key(KeyKind.TOKEN, token),
            limit=policy.token_limit,
        )

    if policy.enable_ip_limit:
        return RateLimitTarget(
            kind=KeyKind.IP,
            key=build_rate_limit_key(KeyKind.IP, client_ip or "unknown"),
            limit=policy.ip_limit,
        )

    return None


async def check_rate_limit(
    store: AbstractWindowStore,
    target: RateLimitTarget,
    policy: RateLimitPolicy,
) -> RateLimitDecision:
    """Run the fixed-window decision for ``target`` against ``store``.

    Raises:
        BackendUnavailableError: Propagated unchanged from the store.
    """

    return await store.allow(target.key, target.limit, policy.block_seconds)


def get_rate_limit_policy() -> RateLimitPolicy:
    return RateLimitPolicy.from_settings(settings.rate_limit)


def get_window_store(request: Request) -> AbstractWindowStore:
    """Return the store owned by the running app."""

    return request.app.state.window_store


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing rate limits.

    Raises:
        RateLimitExceededError: When the identifier is over its limit or blocked.
        BackendUnavailableError: When the store fails and the failure mode is
            ``closed`` (the default).
    """

    policy = get_rate_limit_policy()
    token = request.headers.get(settings.rate_limit.rate_limit_token_header)
    target = classify_request(token, get_client_ip(request), policy)
    if target is None:
        logger.debug("rate_limit.skipped", extra={"reason": "no_enabled_class"})
        return

    store = get_window_store(request)
    key_hash = hash_identifier(target.key)

    try:
        decision = await check_rate_limit(store, target, policy)
    except BackendUnavailableError as exc:
        if settings.rate_limit.rate_limit_failure_mode == "open":
            logger.error(
                "rate_limit.backend_unavailable_fail_open",
                extra={
                    "key_type": target.kind.value,
                    "key_hash": key_hash,
                    "backend": store.backend_name,
                    "error_code": exc.code,
                },
            )
            return
        raise

    if decision.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_type": target.kind.value,
                "key_hash": key_hash,
                "limit": target.limit,
            },
        )
        return

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": target.kind.value,
            "key_hash": key_hash,
            "limit": target.limit,
            "block_s": policy.block_seconds,
            "retry_after_s": decision.retry_after_seconds,
        },
    )
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message=RATE_LIMIT_EXCEEDED_MESSAGE,
        details={
            "key_type": target.kind.value,
            "limit": target.limit,
            "retry_after": decision.retry_after_seconds,
        },
    )
