"""Pytest configuration and fixtures for Certus tests.

This module provides reusable fixtures for:
- Settings overrides
- A frozen clock and cache store
- Mocked openFDA client
- Async test client
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from mocks.openfda_responses import FrozenClock

from certus.config import Settings
from certus.main import create_app
from certus.services.cache import CachePolicy, CacheStore
from certus.services.drugs import DrugInformationService
from certus.services.openfda import OpenFDAClient

# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test-specific settings.

    Overrides production settings with test-appropriate values.
    """
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=True,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        openfda_api_key=None,
        openfda_base_url="https://api.fda.gov",
        openfda_timeout=5.0,
    )


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    """A clock frozen at 2025-06-30 12:00 UTC."""
    return FrozenClock(datetime(2025, 6, 30, 12, 0, tzinfo=UTC))


@pytest.fixture
def cache_store(clock: FrozenClock) -> CacheStore:
    """An empty cache store driven by the frozen clock."""
    return CacheStore(CachePolicy.from_minutes(), clock=clock)


@pytest.fixture
def mock_client() -> MagicMock:
    """Create a mock OpenFDAClient.

    ``fetch_records`` must be given a return value or side effect per test.
    """
    client = MagicMock(spec=OpenFDAClient)
    client.fetch_records = AsyncMock()
    client.probe = AsyncMock(return_value={"status": 200, "available": True})
    client.close = AsyncMock()
    client.api_key_configured = False
    return client


@pytest.fixture
def drug_service(
    mock_client: MagicMock,
    cache_store: CacheStore,
    test_settings: Settings,
    clock: FrozenClock,
) -> DrugInformationService:
    """DrugInformationService over the mock client and frozen clock."""
    return DrugInformationService(mock_client, cache_store, settings=test_settings, clock=clock)


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    """Create a test FastAPI application with test settings."""
    return create_app(settings=test_settings)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing.

    This client makes requests to the test app without starting a server.

    Usage:
        async def test_endpoint(async_client: AsyncClient):
            response = await async_client.get("/health/live")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
