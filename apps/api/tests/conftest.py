"""Pytest configuration and shared fixtures.

Tests run without a database: routes get mocked sessions through
``app.dependency_overrides`` and the polling pipeline runs against the
in-memory store from ``fakes``.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set testing mode BEFORE importing app to use NullPool and in-memory limits
os.environ["TESTING"] = "true"

from hockey_sugar.config import settings

# Override settings for testing
settings.testing = True

from hockey_sugar.main import app


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture(autouse=True)
def _clear_dependency_overrides():
    yield
    app.dependency_overrides.clear()
