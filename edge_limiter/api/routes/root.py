from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from edge_limiter.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Root"], dependencies=[Depends(enforce_rate_limit)])

_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route("/", methods=_ALL_METHODS)
def root() -> dict:
    """Rate limited catch-all endpoint.

    Returns:
        dict: Confirmation message and the current UNIX timestamp.
    """

    return {"message": "Request successful", "timestamp": int(time.time())}
