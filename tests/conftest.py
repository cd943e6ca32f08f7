"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It seeds the environment before any module that reads settings is imported.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("CSRF_SECRET", "test-csrf-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import LimiterPolicy
from app.adapters.rate_limit.registry import RateLimiterRegistry
from app.core.app_factory import create_app
from app.core.csrf import CsrfGuard
from app.core.rate_limit import DEFAULT_POLICIES

TEST_CSRF_SECRET = "test-csrf-secret"


@pytest.fixture
def clock() -> Mock:
    """Deterministic UNIX clock in seconds; set ``clock.return_value`` to move it."""
    return Mock(return_value=1_000.0)


@pytest.fixture
def small_policies() -> dict[str, LimiterPolicy]:
    policies = dict(DEFAULT_POLICIES)
    policies["chat"] = LimiterPolicy(max_requests=3, window_ms=60_000, message="Too many messages. Please slow down.")
    policies["session"] = LimiterPolicy(max_requests=2, window_ms=60_000, message="Too many sessions created.")
    return policies


@pytest.fixture
def app(small_policies: dict[str, LimiterPolicy], clock: Mock) -> FastAPI:
    """App with tight chat/session quotas, an injectable clock and insecure cookies."""
    return create_app(
        registry_factory=lambda: RateLimiterRegistry(small_policies, clock=clock),
        csrf_guard=CsrfGuard(secret=TEST_CSRF_SECRET, cookie_secure=False),
    )


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
