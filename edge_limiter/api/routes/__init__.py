from __future__ import annotations

from edge_limiter.api.routes.health import router as health_router
from edge_limiter.api.routes.root import router as root_router

__all__ = ["health_router", "root_router"]
