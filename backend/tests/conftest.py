"""
Pytest configuration and shared test helpers for backend tests.
"""
import os

# Skip heavy server startup (MongoDB, scheduler) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from middleware import require_auth, get_current_company, enforce_plan_rate_limit
from utils.rate_limiter import rate_limiter

TEST_USER = {
    "user_id": "USR-TEST00000001",
    "email": "owner@example.ge",
    "full_name": "Test Owner",
}

TEST_COMPANY = {
    "company_id": "CMP-TEST00000001",
    "user_id": TEST_USER["user_id"],
    "name": "შპს ტესტი",
    "tax_id": "405123456",
    "invoice_prefix": "INV",
    "invoice_counter": 0,
    "default_vat_rate": 18,
    "default_due_days": 14,
    "default_currency": "GEL",
}


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


def make_app(*routers) -> FastAPI:
    """Small app with the given routers, the production validation handler, and auth overridden."""
    from server import validation_exception_handler

    app = FastAPI()
    for router in routers:
        app.include_router(router)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.dependency_overrides[require_auth] = lambda: dict(TEST_USER)
    app.dependency_overrides[get_current_company] = lambda: dict(TEST_COMPANY)
    app.dependency_overrides[enforce_plan_rate_limit] = lambda: dict(TEST_USER)
    return app


def make_client(*routers) -> TestClient:
    return TestClient(make_app(*routers))


def cursor(docs):
    """Mock motor cursor supporting sort/skip/limit chaining and to_list."""
    mock = MagicMock()
    mock.sort.return_value = mock
    mock.skip.return_value = mock
    mock.limit.return_value = mock
    mock.to_list = AsyncMock(return_value=list(docs))
    return mock


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def client():
    """TestClient for the full app (server:app)."""
    from server import app
    return TestClient(app)
