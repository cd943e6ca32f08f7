"""Named limiter registry and the periodic eviction task.

The registry is built once by the application lifespan and stored on
``app.state``; request handlers look limiters up by policy name instead of
importing module-level instances.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Mapping

from app.adapters.rate_limit.base import AbstractRateLimiter, LimiterPolicy
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class RateLimiterRegistry:
    """One independent limiter per named policy."""

    def __init__(
        self,
        policies: Mapping[str, LimiterPolicy],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not policies:
            raise ValueError("at least one rate limit policy is required")
        self._limiters: dict[str, AbstractRateLimiter] = {
            name: InMemorySlidingWindowRateLimiter(policy, clock=clock)
            for name, policy in policies.items()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    @property
    def names(self) -> list[str]:
        return list(self._limiters)

    def get(self, name: str) -> AbstractRateLimiter:
        """Return the limiter for ``name``.

        Raises:
            KeyError: If no policy with that name was registered.
        """
        try:
            return self._limiters[name]
        except KeyError:
            raise KeyError(f"unknown rate limit policy: {name!r}") from None

    def sweep_all(self) -> int:
        """Run one eviction pass over every limiter.

        Returns:
            Total number of identifiers removed.
        """
        removed = 0
        for name, limiter in self._limiters.items():
            count = limiter.sweep()
            if count:
                logger.debug(
                    "rate_limit.swept",
                    extra={"policy": name, "removed": count},
                )
            removed += count
        return removed


class RateLimitSweeper:
    """Background task that periodically evicts expired identifiers.

    Usage:
        sweeper = RateLimitSweeper(registry, interval_seconds=60)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, registry: RateLimiterRegistry, *, interval_seconds: float = 60.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._registry = registry
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limit.sweeper_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            removed = self._registry.sweep_all()
            if removed:
                logger.info("rate_limit.sweep", extra={"removed": removed})
