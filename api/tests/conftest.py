"""Pytest configuration and shared fixtures for the Scaffold API tests."""

import pytest
import logging
from typing import Any, Dict, List
from uuid import UUID, uuid4
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient
from fastapi import FastAPI

from src.main import create_app
from src.config import Settings
from src.pagination import InMemoryRepository


# Disable logging for cleaner test output
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("asyncpg").setLevel(logging.WARNING)

TEST_API_KEY = "ak_test-key-0123456789abcdefghijklmnopqrstuv"
TEST_API_KEY_ID = UUID("00000000-0000-4000-8000-000000000001")


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Override settings for testing."""
    return Settings(
        host="127.0.0.1",
        port=8001,
        debug=True,
        log_level="ERROR",
        cors_origins=["*"],
        cors_allow_credentials=True,
        cors_allow_methods=["*"],
        cors_allow_headers=["*"]
    )


@pytest.fixture
def mock_settings(test_settings: Settings):
    """Mock settings for unit tests."""
    with patch('src.main.get_settings', return_value=test_settings):
        yield test_settings


@pytest.fixture
def mock_validate_api_key():
    """Accept TEST_API_KEY in the authentication middleware."""
    with patch('src.auth.middleware.validate_api_key', new_callable=AsyncMock) as mock:
        mock.return_value = TEST_API_KEY_ID
        yield mock


@pytest.fixture
def app(mock_settings: Settings, mock_validate_api_key) -> FastAPI:
    """Create FastAPI application instance for testing."""
    return create_app()


@pytest.fixture
def test_client(app: FastAPI) -> TestClient:
    """Create test client for API testing."""
    return TestClient(app)


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Standard API key headers for API testing."""
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def json_headers() -> Dict[str, str]:
    """Standard JSON headers for API requests."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json"
    }


@pytest.fixture
def full_headers(auth_headers: Dict[str, str], json_headers: Dict[str, str]) -> Dict[str, str]:
    """Combined auth and JSON headers."""
    return {**auth_headers, **json_headers}


@pytest.fixture
def mock_db_pool():
    """Mock database pool with an async context manager acquire()."""
    pool = MagicMock()
    conn = AsyncMock()
    conn.transaction = MagicMock()

    pool.acquire.return_value.__aenter__.return_value = conn
    pool.acquire.return_value.__aexit__.return_value = False

    return pool, conn


# Sample data fixtures
@pytest.fixture
def sample_user_row() -> Dict[str, Any]:
    """Sample users table row."""
    now = datetime.now(timezone.utc)
    return {
        "id": uuid4(),
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "role": "USER",
        "created_at": now,
        "updated_at": now
    }


@pytest.fixture
def sample_api_key_row(sample_user_row: Dict[str, Any]) -> Dict[str, Any]:
    """Sample api_keys row as returned by the paginating repository."""
    now = datetime.now(timezone.utc)
    return {
        "id": uuid4(),
        "name": "Storefront",
        "description": None,
        "key_prefix": "ak_abcdefghi",
        "status": "ACTIVE",
        "expires_at": now + timedelta(days=30),
        "last_used_at": None,
        "ip_whitelist": [],
        "domain_whitelist": [],
        "created_by": {
            "id": str(sample_user_row["id"]),
            "name": sample_user_row["name"],
            "email": sample_user_row["email"]
        },
        "created_at": now,
        "updated_at": now
    }


@pytest.fixture
def posts() -> List[Dict[str, Any]]:
    """Twenty-five records with integer ids, repeated titles and a nested author."""
    base_time = datetime(2025, 8, 1, 9, 0, tzinfo=timezone.utc)
    authors = [
        {"id": 1, "name": "Jane", "email": "jane@example.com"},
        {"id": 2, "name": "John", "email": "john@example.com"},
        None,
    ]
    return [
        {
            "id": i,
            "title": f"Post {i % 7}",
            "views": (i * 37) % 11,
            "published": i % 2 == 0,
            "created_at": base_time + timedelta(hours=i * 5),
            "author": authors[i % 3],
        }
        for i in range(1, 26)
    ]


@pytest.fixture
def post_repository(posts: List[Dict[str, Any]]) -> InMemoryRepository:
    return InMemoryRepository(posts)


# Pytest markers for test categorization
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, mocked)")
    config.addinivalue_line("markers", "integration: Integration tests (slower, real database)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "integration" in str(item.path):
            item.add_marker(pytest.mark.integration)

        if "unit" in str(item.path):
            item.add_marker(pytest.mark.unit)


# Skip integration tests if database is not available
def pytest_runtest_setup(item):
    """Skip tests that require database if it's not available."""
    if item.get_closest_marker("integration"):
        try:
            import socket
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.settimeout(1)
            result = sock.connect_ex(('localhost', 5432))
            sock.close()
            if result != 0:
                pytest.skip("PostgreSQL database not available for integration tests")
        except OSError:
            pytest.skip("Cannot verify database availability for integration tests")
