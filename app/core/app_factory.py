"""Application factory for the tutoring API.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.rate_limit.registry import RateLimiterRegistry, RateLimitSweeper
from app.api.routes import chat_router, csrf_router, health_router, sessions_router
from app.core.config import DEFAULT_CSRF_SECRET, settings
from app.core.csrf import CsrfGuard
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware, security_headers_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import build_default_registry

logger = logging.getLogger(__name__)


def create_app(
    *,
    registry_factory: Callable[[], RateLimiterRegistry] = build_default_registry,
    csrf_guard: CsrfGuard | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    The rate limiter registry and CSRF guard are built here and attached to
    ``app.state`` so handlers never rely on module-level singletons. The
    background sweeper lives for exactly as long as the lifespan.

    Args:
        registry_factory: Builds the limiter registry (tests pass small policies).
        csrf_guard: Pre-built guard; defaults to one configured from settings.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    if settings.is_production and settings.csrf.secret == DEFAULT_CSRF_SECRET:
        logger.warning("csrf.default_secret_in_production")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = RateLimitSweeper(
            app.state.rate_limiters,
            interval_seconds=settings.rate_limit.sweep_interval_seconds,
        )
        sweeper.start()
        app.state.rate_limit_sweeper = sweeper
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(
        title="Tutoring API",
        description=(
            "Tutoring platform API. State-changing endpoints are rate limited per "
            "client and require a double-submit CSRF token obtained from GET /api/csrf."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # A malformed policy raises here, at startup.
    app.state.rate_limiters = registry_factory()
    app.state.csrf_guard = csrf_guard or CsrfGuard.from_settings()
    app.state.rate_limit_sweeper = None

    # Middleware (last registered runs first)
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(csrf_router, prefix="/api")
    app.include_router(chat_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    app.include_router(health_router)

    apply_openapi_customizations(app, csrf_header=app.state.csrf_guard.header_name)

    return app
