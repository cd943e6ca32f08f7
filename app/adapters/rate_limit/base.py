"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class LimiterPolicy:
    """Quota for one class of endpoints.

    Attributes:
        max_requests: Max requests allowed inside the window.
        window_ms: Window length in milliseconds.
        message: User-facing message returned when the quota is exhausted.
    """

    max_requests: int
    window_ms: int
    message: str = "Rate limit exceeded. Please try again later."

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Requests left in the window (0 when blocked).
        reset_at: UNIX time in seconds when the oldest counted request expires.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @property
    @abstractmethod
    def policy(self) -> LimiterPolicy:
        raise NotImplementedError

    @abstractmethod
    def check(self, identifier: str) -> RateLimitResult:
        """Count one request for ``identifier`` if it is within quota.

        Args:
            identifier: Opaque caller identifier (e.g., IP address, user id).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str) -> None:
        """Forget all recorded requests for ``identifier``."""
        raise NotImplementedError

    @abstractmethod
    def get_count(self, identifier: str) -> int:
        """Return the number of requests still inside the window."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Drop identifiers whose history has fully expired.

        Returns:
            Number of identifiers removed.
        """
        raise NotImplementedError
