"""Application-level exception types.

This module defines domain errors used across the protection layer and the
API routes, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    field_errors: str
    retry_after: int
    limit: int
    policy: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input validation fails."""


class CsrfAppError(AppError):
    """Raised when a state-changing request fails CSRF validation."""


class TokenIssuanceAppError(AppError):
    """Raised when a CSRF token cannot be generated securely."""


@dataclass
class RateLimitAppError(AppError):
    """Raised when a caller exceeds its quota.

    Attributes:
        retry_after: Seconds the caller should wait before retrying.
        headers: X-RateLimit-* / Retry-After headers for the 429 response.
    """

    retry_after: int = 0
    headers: dict[str, str] = field(default_factory=dict)
