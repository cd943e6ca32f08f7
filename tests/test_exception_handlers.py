"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    CsrfAppError,
    RateLimitAppError,
    TokenIssuanceAppError,
    ValidationAppError,
)
from app.core.exception_handlers import setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify ValidationAppError returns HTTP 400."""
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(code="invalid_request", message="Invalid request body")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "invalid_request"
        assert data["error"]["message"] == "Invalid request body"
        assert "request_id" in data["error"]

    def test_validation_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify ValidationAppError includes details when provided."""
        @app_with_handlers.get("/test-validation-details")
        async def test_endpoint():
            raise ValidationAppError(
                code="invalid_request",
                message="message: String should have at least 1 character",
                details={"field_errors": "message: String should have at least 1 character"},
            )

        response = client.get("/test-validation-details")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["details"]["field_errors"].startswith("message:")

    def test_details_omitted_when_empty(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-no-details")
        async def test_endpoint():
            raise ValidationAppError(code="test", message="test")

        data = client.get("/test-no-details").json()
        assert "details" not in data["error"]

    def test_csrf_error_returns_flat_403(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify CsrfAppError returns HTTP 403 with the CSRF body shape."""
        @app_with_handlers.post("/test-csrf")
        async def test_endpoint():
            raise CsrfAppError(code="csrf_validation_failed", message="CSRF cookie missing.")

        response = client.post("/test-csrf")

        assert response.status_code == 403
        assert response.json() == {
            "error": "CSRF validation failed",
            "message": "CSRF cookie missing.",
        }

    def test_rate_limit_error_returns_429_with_headers(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify RateLimitAppError returns HTTP 429 with retry information."""
        @app_with_handlers.get("/test-rate-limit")
        async def test_endpoint():
            raise RateLimitAppError(
                code="rate_limit_exceeded",
                message="Too many messages. Please slow down.",
                retry_after=42,
                headers={
                    "X-RateLimit-Limit": "30",
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": "1060",
                    "Retry-After": "42",
                },
            )

        response = client.get("/test-rate-limit")

        assert response.status_code == 429
        assert response.json() == {
            "error": "Too Many Requests",
            "message": "Too many messages. Please slow down.",
            "retryAfter": 42,
        }
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Limit"] == "30"

    def test_token_issuance_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify TokenIssuanceAppError returns HTTP 500."""
        @app_with_handlers.get("/test-token")
        async def test_endpoint():
            raise TokenIssuanceAppError(
                code="csrf_token_generation_failed",
                message="Failed to generate CSRF token",
            )

        response = client.get("/test-token")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "csrf_token_generation_failed"

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify error responses have consistent JSON structure."""
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise ValidationAppError(code="test", message="test")

        response = client.get("/test-format")
        data = response.json()

        # Required fields always present
        assert "error" in data
        assert "code" in data["error"]
        assert "message" in data["error"]
        assert "request_id" in data["error"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        """Verify fallback exception handler is registered."""
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_logic(self):
        """Verify general_exception_handler returns correct structure."""
        from app.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: entropy pool exhausted")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        # Original error message should NOT be in response
        assert "entropy" not in data["error"]["message"]
        assert "request_id" in data["error"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        """Verify stack traces are never included in response."""
        from app.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        """Verify setup_exception_handlers properly registers handlers."""
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        """Verify calling setup_exception_handlers multiple times is safe."""
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers

    def test_app_error_str_is_message(self):
        err = RateLimitAppError(code="rate_limit_exceeded", message="slow down", retry_after=3)
        assert str(err) == "slow down"
        assert err.headers == {}
