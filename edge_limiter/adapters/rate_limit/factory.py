"""Factory for the configured window store."""

from edge_limiter.adapters.rate_limit.base import AbstractWindowStore
from edge_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore
from edge_limiter.adapters.rate_limit.redis_store import RedisWindowStore
from edge_limiter.core.config import Settings, settings as default_settings
from edge_limiter.core.errors import ValidationAppError


def create_window_store(settings: Settings | None = None) -> AbstractWindowStore:
    """Instantiate the window store selected by ``RATE_LIMIT_BACKEND``.

    The Redis client is created lazily by redis-py; reachability is checked
    separately (see ``RedisWindowStore.ping``) during app startup.

    Returns:
        AbstractWindowStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is not supported.
    """
    cfg = settings or default_settings
    backend = cfg.rate_limit.rate_limit_backend.lower()

    if backend == "memory":
        return InMemoryWindowStore()

    if backend == "redis":
        return RedisWindowStore.from_url(
            cfg.redis.url,
            timeout_seconds=cfg.redis.timeout_seconds,
            key_prefix=cfg.redis.key_prefix,
            atomic=cfg.redis.atomic,
        )

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: memory, redis",
    )
