"""HTTP middleware for request correlation and browser security headers.

- ``request_id_middleware`` accepts an incoming X-Request-ID header (or
  generates a UUID), stores it in contextvars for log correlation, and echoes
  it back together with the request duration.
- ``security_headers_middleware`` attaches XSS, clickjacking, MIME sniffing
  and content-security-policy headers to every response.

Usage:
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(security_headers_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

CSP_DIRECTIVES = (
    "default-src 'self'",
    "script-src 'self' 'unsafe-eval' 'unsafe-inline' https://cdn.vercel-insights.com "
    "https://vercel.live https://js.stripe.com",
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
    "font-src 'self' https://fonts.gstatic.com data:",
    "img-src 'self' data: blob: https: http:",
    "media-src 'self' blob: https:",
    "connect-src 'self' https://*.supabase.co https://*.d-id.com https://api.elevenlabs.io "
    "https://api.openai.com https://api.agora.io wss://*.supabase.co wss://*.agora.io "
    "https://*.stripe.com",
    "frame-src 'self' https://checkout.stripe.com https://js.stripe.com",
    "object-src 'none'",
    "base-uri 'self'",
    "form-action 'self'",
    "upgrade-insecure-requests",
)

SECURITY_HEADERS = {
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(self), microphone=(self), geolocation=(), interest-cohort=()",
    "Content-Security-Policy": "; ".join(CSP_DIRECTIVES),
}

HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides the configured request id header, that value is
    used; otherwise a new UUID is generated. The id is stored in contextvars
    for the lifetime of the request and returned in the response headers.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with X-Request-ID and
            X-Request-Duration-ms headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Attach browser security headers to the response.

    HSTS is only sent in production, where the service is served over HTTPS.
    """

    response: Response = await call_next(request)
    if not settings.app.security_headers_enabled:
        return response

    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if settings.is_production:
        response.headers.setdefault("Strict-Transport-Security", HSTS_VALUE)
    return response
