"""Tests for drug API endpoints.

Tests the /api/v1/drugs/* endpoints plus the cache and health routes. The
real service runs behind the routes with a mocked openFDA client.
"""

from collections.abc import AsyncGenerator
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from mocks.openfda_responses import (
    LABEL_ITEM,
    RECALL_ITEM,
    SHORTAGE_ITEM,
    FrozenClock,
    empty_response,
    fetch_response,
)

from certus.core.exceptions import UpstreamTransientError
from certus.dependencies import get_drug_service
from certus.services.cache import CacheCategory
from certus.services.drugs import DrugInformationService

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def test_app(app: FastAPI, drug_service: DrugInformationService) -> FastAPI:
    """App with the service dependency pointed at the mocked service."""
    app.dependency_overrides[get_drug_service] = lambda: drug_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client


def serve(items: dict[CacheCategory, list]):
    async def fetch_records(category, search, limit, timeout=None):
        return fetch_response(category, items.get(category, []), search)

    return fetch_records


# =============================================================================
# Search Endpoint Tests
# =============================================================================


class TestSearchEndpoints:
    """Tests for GET search endpoints."""

    @pytest.mark.asyncio
    async def test_shortages(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.side_effect = serve({CacheCategory.SHORTAGE: [SHORTAGE_ITEM]})

        response = await client.get(
            "/api/v1/drugs/shortages", params={"drug_name": "amoxicillin", "limit": 5}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["search_term"] == "amoxicillin"
        assert data["strategy_used"] == "openfda.generic_name"
        assert len(data["results"]) == 1

    @pytest.mark.asyncio
    async def test_missing_drug_name_is_400(
        self, client: AsyncClient, mock_client: MagicMock
    ) -> None:
        response = await client.get("/api/v1/drugs/recalls")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "provide a medication name" in error["message"]
        assert "recalls" in error["message"]
        mock_client.fetch_records.assert_not_called()

    @pytest.mark.asyncio
    async def test_quote_only_drug_name_is_400(
        self, client: AsyncClient, mock_client: MagicMock
    ) -> None:
        response = await client.get("/api/v1/drugs/shortages", params={"drug_name": '""'})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        mock_client.fetch_records.assert_not_called()

    @pytest.mark.asyncio
    async def test_limit_out_of_range_is_400(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/drugs/shortages", params={"drug_name": "insulin", "limit": 500}
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "limit"

    @pytest.mark.asyncio
    async def test_recalls(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.side_effect = serve({CacheCategory.RECALL: [RECALL_ITEM]})

        response = await client.get("/api/v1/drugs/recalls", params={"drug_name": "metformin"})

        assert response.status_code == 200
        assert response.json()["results"][0]["recall_number"] == "D-0123-2024"

    @pytest.mark.asyncio
    async def test_serious_events(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.return_value = empty_response(
            CacheCategory.SERIOUS_ADVERSE_EVENT
        )

        response = await client.get(
            "/api/v1/drugs/adverse-events/serious",
            params={"drug_name": "aspirin", "detailed": "true"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["serious_only"] is True
        assert data["results"] == []

    @pytest.mark.asyncio
    async def test_upstream_timeout_is_504(
        self, client: AsyncClient, mock_client: MagicMock
    ) -> None:
        mock_client.fetch_records.side_effect = UpstreamTransientError(
            "openFDA request timed out", kind="timeout"
        )

        response = await client.get(
            "/api/v1/drugs/adverse-events",
            params={"drug_name": "aspirin"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.status_code == 504
        error = response.json()["error"]
        assert error["kind"] == "timeout"
        assert error["request_id"] == "req-123"
        assert error["details"]["operation"] == "search_adverse_events"


# =============================================================================
# Label, Trend & Batch Endpoint Tests
# =============================================================================


class TestAnalysisEndpoints:
    """Tests for label, profile, trend and batch endpoints."""

    @pytest.mark.asyncio
    async def test_label(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.side_effect = serve({CacheCategory.DRUG_LABEL: [LABEL_ITEM]})

        response = await client.get(
            "/api/v1/drugs/label",
            params={"drug_identifier": "Glucophage", "identifier_type": "brand_name"},
        )

        assert response.status_code == 200
        assert response.json()["identifier_type"] == "openfda.brand_name"

    @pytest.mark.asyncio
    async def test_profile(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.side_effect = serve({CacheCategory.DRUG_LABEL: [LABEL_ITEM]})

        response = await client.get(
            "/api/v1/drugs/profile", params={"drug_identifier": "metformin"}
        )

        assert response.status_code == 200
        assert response.json()["overall_status"] == (
            "Retrieved complete drug profile - no shortages found"
        )

    @pytest.mark.asyncio
    async def test_trends_out_of_range(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/drugs/trends", params={"drug_name": "insulin", "months_back": 0}
        )

        assert response.status_code == 400
        assert "between 1 and 60 months" in response.json()["error"]["message"]

    @pytest.mark.asyncio
    async def test_trends(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.return_value = empty_response(CacheCategory.SHORTAGE)

        response = await client.get(
            "/api/v1/drugs/trends", params={"drug_name": "metformin", "months_back": 6}
        )

        assert response.status_code == 200
        assert response.json()["historical_summary"]["shortage_frequency"] == "Low"

    @pytest.mark.asyncio
    async def test_batch(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.fetch_records.side_effect = serve({CacheCategory.SHORTAGE: [SHORTAGE_ITEM]})

        response = await client.post(
            "/api/v1/drugs/batch",
            json={"drug_list": ["amoxicillin", "", "insulin"], "include_trends": False},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["succeeded"] == 2
        assert data["summary"]["failed"] == 1
        assert data["drug_analyses"][1]["status"] == "error"

    @pytest.mark.asyncio
    async def test_batch_too_large(self, client: AsyncClient, mock_client: MagicMock) -> None:
        response = await client.post(
            "/api/v1/drugs/batch", json={"drug_list": [f"d{i}" for i in range(26)]}
        )

        assert response.status_code == 400
        mock_client.fetch_records.assert_not_called()


# =============================================================================
# Cache & Health Endpoint Tests
# =============================================================================


class TestOperationalEndpoints:
    """Tests for cache and readiness routes."""

    @pytest.mark.asyncio
    async def test_cache_stats_and_cleanup(
        self, client: AsyncClient, mock_client: MagicMock, clock: FrozenClock
    ) -> None:
        mock_client.fetch_records.side_effect = serve({CacheCategory.SHORTAGE: [SHORTAGE_ITEM]})
        await client.get("/api/v1/drugs/shortages", params={"drug_name": "amoxicillin"})

        stats = (await client.get("/cache/stats")).json()
        assert stats["entries_by_category"]["shortage"] == 1

        clock.advance(hours=2)
        cleanup = (await client.post("/cache/cleanup")).json()
        assert cleanup["entries_removed"] == 1
        assert cleanup["total_entries"] == 0

    @pytest.mark.asyncio
    async def test_readiness_ok(self, client: AsyncClient) -> None:
        response = await client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["checks"]["cache"] == "ok"
        assert set(data["checks"]["openfda"]) == {"label", "shortages", "enforcement", "event"}

    @pytest.mark.asyncio
    async def test_readiness_degraded(self, client: AsyncClient, mock_client: MagicMock) -> None:
        mock_client.probe.return_value = {"status": "error", "available": False, "error": "down"}

        response = await client.get("/health/ready")

        assert response.json()["status"] == "degraded"
