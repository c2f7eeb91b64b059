"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429 with ``retry_after`` (seconds) and Retry-After
- BackendUnavailableError → 500 (the limiter could not decide: fail closed)
- ValidationAppError / other AppError → 400
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging
import math

from fastapi import Request
from fastapi.responses import JSONResponse

from edge_limiter.core.config import settings
from edge_limiter.core.errors import AppError, BackendUnavailableError, RateLimitExceededError
from edge_limiter.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, BackendUnavailableError):
        return 500
    return 400


def retry_after_header(seconds: float) -> str:
    """Render a Retry-After value: whole seconds, rounded up, at least 1."""
    return str(max(1, math.ceil(seconds)))


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Response body: ``{"error": {"code", "message", "request_id", ...}}``.
    Throttled responses add ``retry_after``; client errors add ``details``.
    Server faults never expose details.
    """
    status_code = _status_for(exc)

    log = logger.error if status_code >= 500 else logger.info
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    error_content: dict = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    headers: dict[str, str] = {}

    if isinstance(exc, RateLimitExceededError):
        error_content["retry_after"] = exc.retry_after
        if settings.rate_limit.rate_limit_include_headers:
            headers["Retry-After"] = retry_after_header(exc.retry_after)
    elif status_code < 500 and exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (no stack traces to client)."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Specific handlers are registered before the general fallback.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
