"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency factory only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind the
  abstract interface.
- Explicit lifetime: limiters live in a registry on ``app.state`` that the
  application lifespan creates and tears down.

Rate limiting strategy:
- Sliding window per caller identifier, one policy per endpoint class.
- Identifier is the first forwarded client IP, then X-Real-IP, else "unknown".
"""

from __future__ import annotations

import hashlib
import logging
import math
from typing import Awaitable, Callable

from fastapi import Request, Response

from app.adapters.rate_limit.base import LimiterPolicy, RateLimitResult
from app.adapters.rate_limit.registry import RateLimiterRegistry
from app.core.config import settings
from app.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

UNKNOWN_IDENTIFIER = "unknown"

_MINUTE_MS = 60_000
_HOUR_MS = 60 * _MINUTE_MS

DEFAULT_POLICIES: dict[str, LimiterPolicy] = {
    "api": LimiterPolicy(
        max_requests=100,
        window_ms=_MINUTE_MS,
        message="Too many API requests. Please try again later.",
    ),
    "chat": LimiterPolicy(
        max_requests=30,
        window_ms=_MINUTE_MS,
        message="Too many messages. Please slow down.",
    ),
    "auth": LimiterPolicy(
        max_requests=5,
        window_ms=15 * _MINUTE_MS,
        message="Too many login attempts. Please try again later.",
    ),
    "session": LimiterPolicy(
        max_requests=10,
        window_ms=_HOUR_MS,
        message="Too many sessions created. Please wait before starting a new one.",
    ),
    "voice": LimiterPolicy(
        max_requests=50,
        window_ms=_HOUR_MS,
        message="Voice quota exceeded. Please try again later.",
    ),
    "whiteboard": LimiterPolicy(
        max_requests=20,
        window_ms=_HOUR_MS,
        message="Too many whiteboard saves. Please wait a moment.",
    ),
}


def build_default_registry() -> RateLimiterRegistry:
    """Create a registry holding the standard endpoint policies."""
    return RateLimiterRegistry(DEFAULT_POLICIES)


def get_registry(request: Request) -> RateLimiterRegistry:
    """Return the registry installed on the application by its lifespan.

    Raises:
        RuntimeError: If the application was started without a registry.
    """
    registry = getattr(request.app.state, "rate_limiters", None)
    if registry is None:
        raise RuntimeError("rate limiter registry is not initialised on app.state")
    return registry


def extract_identifier(request: Request) -> str:
    """Build the limiter identifier for the current request.

    Uses the first entry of X-Forwarded-For, then X-Real-IP; falls back to
    the "unknown" sentinel so callers without either header share one bucket.
    """

    raw = (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or UNKNOWN_IDENTIFIER
    )
    return raw.split(",")[0].strip()


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Translate a limiter result into X-RateLimit-* response headers.

    ``X-RateLimit-Limit`` is the policy's configured maximum, and
    ``Retry-After`` is only present on denied results.
    """

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.floor(result.reset_at)),
    }
    if not result.allowed and result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def _hash_identifier(identifier: str) -> str:
    """Hash the identifier for logging without exposing client addresses."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


def rate_limit(policy_name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Create a FastAPI dependency enforcing the named policy.

    Usage:
        @router.post("/chat", dependencies=[Depends(rate_limit("chat"))])

    Args:
        policy_name: Name of a policy registered on the app's registry.

    Returns:
        Dependency that consumes one request from the caller's quota and
        raises RateLimitAppError (HTTP 429) when it is exhausted.
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        if not settings.rate_limit.enabled:
            return

        limiter = get_registry(request).get(policy_name)
        identifier = extract_identifier(request)
        result = limiter.check(identifier)
        headers = build_rate_limit_headers(result) if settings.rate_limit.include_headers else {}

        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "policy": policy_name,
                    "identifier_hash": _hash_identifier(identifier),
                    "remaining": result.remaining,
                },
            )
            response.headers.update(headers)
            return

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "policy": policy_name,
                "identifier_hash": _hash_identifier(identifier),
                "limit": result.limit,
                "window_ms": limiter.policy.window_ms,
                "retry_after_s": retry_after,
            },
        )
        raise RateLimitAppError(
            code="rate_limit_exceeded",
            message=limiter.policy.message,
            details={"policy": policy_name, "limit": result.limit, "retry_after": retry_after},
            retry_after=retry_after,
            headers=headers,
        )

    return enforce_rate_limit
