from __future__ import annotations

from app.api.routes.chat import router as chat_router
from app.api.routes.csrf import router as csrf_router
from app.api.routes.health import router as health_router
from app.api.routes.sessions import router as sessions_router

__all__ = ["chat_router", "csrf_router", "health_router", "sessions_router"]
