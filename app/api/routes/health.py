from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check for load balancers.

    Also reports whether the background rate-limit sweeper is running.
    """

    sweeper = getattr(request.app.state, "rate_limit_sweeper", None)
    return {
        "status": "ok",
        "rate_limit_sweeper": "running" if sweeper is not None and sweeper.running else "stopped",
    }
