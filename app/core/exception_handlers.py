"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 403, 429, 500)
- CSRF and quota rejections keep the flat ``{"error": ..., "message": ...}``
  body clients already parse
- Unexpected Exception → generic 500 (safety net)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    CsrfAppError,
    RateLimitAppError,
    TokenIssuanceAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def csrf_rejection_response(message: str) -> JSONResponse:
    """Build the 403 response returned for any CSRF failure."""
    return JSONResponse(
        status_code=403,
        content={
            "error": "CSRF validation failed",
            "message": message or "Invalid CSRF token",
        },
    )


def rate_limit_rejection_response(exc: RateLimitAppError) -> JSONResponse:
    """Build the 429 response for an exhausted quota."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "message": exc.message,
            "retryAfter": exc.retry_after,
        },
        headers=exc.headers or None,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to HTTP status codes:
    - ValidationAppError → 400 Bad Request
    - CsrfAppError → 403 Forbidden
    - RateLimitAppError → 429 Too Many Requests
    - TokenIssuanceAppError → 500 Internal Server Error

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    if isinstance(exc, RateLimitAppError):
        return rate_limit_rejection_response(exc)
    if isinstance(exc, CsrfAppError):
        return csrf_rejection_response(exc.message)

    status_code = 400
    if isinstance(exc, TokenIssuanceAppError):
        status_code = 500

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message,
    so no stack traces reach the client.
    """
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

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
