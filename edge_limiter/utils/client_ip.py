"""Client IP extraction for rate limiting."""

from __future__ import annotations

from fastapi import Request

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """Return the client IP for the request.

    Forwarding headers set by the edge proxy are trusted ahead of the
    transport peer address:

    1. First entry of ``X-Forwarded-For`` (comma-separated list).
    2. ``X-Real-IP``.
    3. The socket peer address.

    Returns:
        The IP string, or ``"unknown"`` when nothing is available.
    """

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
