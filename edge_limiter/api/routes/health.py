from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint (never rate limited).

    Returns:
        dict: ``status`` and the active window store backend.
    """

    store = getattr(request.app.state, "window_store", None)
    return {"status": "ok", "backend": store.backend_name if store is not None else None}
