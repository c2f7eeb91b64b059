"""Application factory for FastAPI app.

Centralizes app construction (store lifecycle, middleware, handlers, routers)
so tests can build isolated apps with their own window store.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from edge_limiter.adapters.rate_limit.base import AbstractWindowStore
from edge_limiter.adapters.rate_limit.factory import create_window_store
from edge_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore
from edge_limiter.adapters.rate_limit.redis_store import RedisWindowStore
from edge_limiter.api.routes import health_router, root_router
from edge_limiter.core.config import settings
from edge_limiter.core.exception_handlers import setup_exception_handlers
from edge_limiter.core.logging import configure_logging
from edge_limiter.core.middleware import request_id_middleware
from edge_limiter.core.sweeper import WindowStoreSweeper

logger = logging.getLogger(__name__)


def _build_lifespan(store: AbstractWindowStore | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Injected stores belong to the caller and are left open.
        owns_store = store is None
        window_store = create_window_store() if owns_store else store
        sweeper: WindowStoreSweeper | None = None

        try:
            # A deployment that selects Redis cannot serve without it.
            if isinstance(window_store, RedisWindowStore):
                await window_store.ping()

            if (
                isinstance(window_store, InMemoryWindowStore)
                and settings.app.sweep_interval_seconds > 0
            ):
                sweeper = WindowStoreSweeper(window_store, settings.app.sweep_interval_seconds)
                await sweeper.start()

            app.state.window_store = window_store
            logger.info(
                "rate_limit.store_ready",
                extra={
                    "backend": window_store.backend_name,
                    "ip_limit": settings.rate_limit.rate_limit_ip,
                    "token_limit": settings.rate_limit.rate_limit_token,
                    "block_s": settings.rate_limit.block_time,
                    "enable_ip_limit": settings.rate_limit.enable_ip_limit,
                    "enable_token_limit": settings.rate_limit.enable_token_limit,
                },
            )
            yield
        finally:
            if sweeper is not None:
                await sweeper.stop()
            if owns_store:
                await window_store.aclose()

    return lifespan


def create_app(store: AbstractWindowStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Window store to use; when omitted, one is built from settings
            at startup.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Edge Limiter",
        description=(
            "Per-identifier request throttling. Requests are limited per API "
            "token (API_KEY header) or per client IP with a fixed one-second "
            "window; identifiers exceeding their limit are blocked for a "
            "configurable duration and receive 429 with retry_after."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=_build_lifespan(store),
    )

    # Store is also available before startup so handlers never see a missing
    # attribute when an explicit store is injected.
    if store is not None:
        app.state.window_store = store

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(root_router)

    return app
