"""Shared fixtures for API route tests.

Provides:
- A configured FastAPI test app (rate limiting off unless a test turns it on)
- An httpx AsyncClient pointed at the test app
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from automai.api.app import create_app
from automai.config import Settings


@pytest.fixture
def test_settings() -> Settings:
    """Create test Settings with console logging and no rate limiting."""
    return Settings(
        log_level="WARNING",
        log_format="console",
        cors_allowed_origins="http://localhost:3000",
        rate_limit_enabled=False,
    )


@pytest.fixture
def test_app(test_settings: Settings) -> object:
    """Create a test FastAPI app."""
    return create_app(settings=test_settings)


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient for the test app."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
