"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, LimiterPolicy, RateLimitResult


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a sliding time window per identifier.

    Every admitted request stores its timestamp. A request is admitted while
    fewer than ``max_requests`` timestamps are newer than ``now - window``, so
    the counting interval moves with the clock instead of resetting at fixed
    boundaries.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        policy: LimiterPolicy,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            policy: Quota enforced by this limiter.
            clock: Time source function returning UNIX time in seconds.
        """
        self._policy = policy
        self._clock = clock
        self._lock = threading.RLock()
        self._requests: dict[str, list[float]] = {}

    @property
    def policy(self) -> LimiterPolicy:
        return self._policy

    def _window_start(self, now: float) -> float:
        return now - self._policy.window_seconds

    def _prune_locked(self, identifier: str, window_start: float) -> list[float]:
        """Return the live history for ``identifier`` after dropping expired entries."""
        history = [ts for ts in self._requests.get(identifier, ()) if ts > window_start]
        if history:
            self._requests[identifier] = history
        else:
            self._requests.pop(identifier, None)
        return history

    def check(self, identifier: str) -> RateLimitResult:
        """Check the identifier's quota and record the request when allowed.

        Args:
            identifier: Opaque caller identifier; empty strings are valid keys.

        Returns:
            RateLimitResult with allowance decision and metadata.
        """
        max_requests = self._policy.max_requests
        window = self._policy.window_seconds

        with self._lock:
            now = self._clock()
            history = self._prune_locked(identifier, self._window_start(now))
            count = len(history)

            if count < max_requests:
                history.append(now)
                self._requests[identifier] = history
                return RateLimitResult(
                    allowed=True,
                    limit=max_requests,
                    remaining=max_requests - count - 1,
                    reset_at=history[0] + window,
                    retry_after_seconds=None,
                )

            reset_at = history[0] + window
            return RateLimitResult(
                allowed=False,
                limit=max_requests,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(0, int(math.ceil(reset_at - now))),
            )

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._requests.pop(identifier, None)

    def get_count(self, identifier: str) -> int:
        with self._lock:
            window_start = self._window_start(self._clock())
            return sum(1 for ts in self._requests.get(identifier, ()) if ts > window_start)

    def sweep(self) -> int:
        """Remove identifiers whose whole history is outside the window.

        The lock is taken per identifier so concurrent ``check`` calls are
        never stalled behind a full pass over the map.
        """
        removed = 0
        with self._lock:
            identifiers = list(self._requests)

        for identifier in identifiers:
            with self._lock:
                window_start = self._window_start(self._clock())
                history = self._requests.get(identifier)
                if history is None:
                    continue
                live = [ts for ts in history if ts > window_start]
                if live:
                    self._requests[identifier] = live
                else:
                    del self._requests[identifier]
                    removed += 1
        return removed

    def tracked_identifiers(self) -> int:
        """Number of identifiers currently held in memory (expired or not)."""
        with self._lock:
            return len(self._requests)
