"""openFDA API client.

Async access to the four openFDA drug endpoints used by the engine. Raw
responses are translated here into typed records and typed errors:

- 404 means "no matching records" and becomes an empty result, not an error
- 429 becomes ``RateLimitedError``
- timeouts, other non-2xx statuses and transport failures become
  ``UpstreamTransientError`` with kind ``timeout``, ``upstream_error`` or
  ``network_error``

See: https://open.fda.gov/apis/drug/
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from certus.config import Settings, get_settings
from certus.core.exceptions import RateLimitedError, UpstreamTransientError
from certus.services.cache import CacheCategory
from certus.services.records import RECORD_TYPES

logger = structlog.get_logger(__name__)


class Endpoint(str, Enum):
    """openFDA drug endpoints (paths relative to the base URL)."""

    SHORTAGES = "/drug/shortages.json"
    LABEL = "/drug/label.json"
    ENFORCEMENT = "/drug/enforcement.json"
    EVENT = "/drug/event.json"


CATEGORY_ENDPOINTS: dict[CacheCategory, Endpoint] = {
    CacheCategory.SHORTAGE: Endpoint.SHORTAGES,
    CacheCategory.DRUG_LABEL: Endpoint.LABEL,
    CacheCategory.RECALL: Endpoint.ENFORCEMENT,
    CacheCategory.ADVERSE_EVENT: Endpoint.EVENT,
    CacheCategory.SERIOUS_ADVERSE_EVENT: Endpoint.EVENT,
}

DATA_SOURCES: dict[Endpoint, str] = {
    Endpoint.SHORTAGES: "FDA Drug Shortages Database",
    Endpoint.LABEL: "FDA Drug Label Database",
    Endpoint.ENFORCEMENT: "FDA Drug Enforcement Database",
    Endpoint.EVENT: "FDA FAERS Database",
}


def empty_payload() -> dict[str, Any]:
    """The payload shape openFDA would return for zero matches."""
    return {"meta": {"results": {"total": 0}}, "results": []}


@dataclass
class FetchResponse:
    """Typed records returned for one upstream query."""

    category: CacheCategory
    search: str
    records: list[Any]
    total: int
    fetched_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def is_empty(self) -> bool:
        return not self.records

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        return {
            "category": self.category.value,
            "search": self.search,
            "records": [record.to_dict() for record in self.records],
            "total": self.total,
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FetchResponse":
        """Create from cached dict."""
        category = CacheCategory(data["category"])
        record_type = RECORD_TYPES[category]
        return cls(
            category=category,
            search=data["search"],
            records=[record_type.from_dict(r) for r in data.get("records", [])],
            total=data.get("total", 0),
            fetched_at=data.get("fetched_at", ""),
        )


class OpenFDAClient:
    """Async client for the openFDA drug endpoints.

    Usage:
        ```python
        client = OpenFDAClient(settings)
        response = await client.fetch_records(
            CacheCategory.SHORTAGE, 'openfda.generic_name:"metformin"', limit=10
        )
        await client.close()
        ```
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Application settings (defaults to the cached settings)
        """
        self._settings = settings or get_settings()
        self._client: httpx.AsyncClient | None = None

    @property
    def _user_agent(self) -> str:
        return f"{self._settings.app_name}/{self._settings.app_version} (openFDA client)"

    @property
    def api_key_configured(self) -> bool:
        return self._settings.api_key_configured

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.openfda_base_url,
                timeout=self._settings.openfda_timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self._user_agent,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def build_params(self, search: str, limit: int) -> dict[str, Any]:
        """Build the query string: search expression, limit and optional api_key."""
        params: dict[str, Any] = {"search": search, "limit": limit}
        if self._settings.openfda_api_key and self.api_key_configured:
            params["api_key"] = self._settings.openfda_api_key.get_secret_value()
        return params

    async def fetch(
        self,
        endpoint: Endpoint,
        search: str,
        limit: int,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Run one openFDA query and return the decoded JSON payload.

        Args:
            endpoint: openFDA endpoint to query
            search: openFDA search expression (e.g., 'openfda.brand_name:"Advil"')
            limit: Maximum number of records to return
            timeout: Per-call timeout in seconds (defaults to the client timeout)

        Returns:
            The JSON payload; an empty result set when openFDA answers 404

        Raises:
            RateLimitedError: On HTTP 429
            UpstreamTransientError: On timeouts, other errors or bad JSON
        """
        client = await self._get_client()
        path = Endpoint(endpoint).value
        request_timeout = timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT

        try:
            response = await client.get(
                path,
                params=self.build_params(search, limit),
                timeout=request_timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("openfda_request_timeout", endpoint=path, search=search)
            raise UpstreamTransientError(
                f"openFDA request timed out: {e}", kind="timeout", endpoint=path
            ) from e
        except httpx.RequestError as e:
            logger.error("openfda_request_error", endpoint=path, error=str(e))
            raise UpstreamTransientError(
                f"Request failed: {e}", kind="network_error", endpoint=path
            ) from e

        if response.status_code == 404:
            logger.debug("openfda_no_matches", endpoint=path, search=search)
            return empty_payload()

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                logger.warning("openfda_rate_limited", endpoint=path)
                raise RateLimitedError(endpoint=path) from e
            logger.error(
                "openfda_request_failed",
                endpoint=path,
                status_code=status_code,
                search=search,
            )
            raise UpstreamTransientError(
                f"API request failed: {status_code}",
                kind="upstream_error",
                upstream_status=status_code,
                endpoint=path,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamTransientError(
                "openFDA returned a malformed JSON body",
                kind="upstream_error",
                endpoint=path,
            ) from e

        if not isinstance(data, dict):
            raise UpstreamTransientError(
                "Unexpected API response: payload is not an object",
                kind="upstream_error",
                endpoint=path,
            )
        return data

    async def fetch_records(
        self,
        category: CacheCategory,
        search: str,
        limit: int,
        timeout: float | None = None,
    ) -> FetchResponse:
        """Fetch and parse records for a data category."""
        endpoint = CATEGORY_ENDPOINTS[category]
        data = await self.fetch(endpoint, search, limit, timeout=timeout)
        return self._parse_response(category, search, data)

    async def probe(self, endpoint: Endpoint, search: str) -> dict[str, Any]:
        """Check that an endpoint answers; used by health checks."""
        client = await self._get_client()
        path = Endpoint(endpoint).value
        try:
            response = await client.get(path, params=self.build_params(search, 1))
        except httpx.RequestError as e:
            return {"status": "error", "available": False, "error": str(e)}
        return {
            "status": response.status_code,
            "available": response.status_code in (200, 404),
        }

    # -------------------------------------------------------------------------
    # Private Methods - Response Parsing (Anti-Corruption Layer)
    # -------------------------------------------------------------------------

    def _parse_response(
        self, category: CacheCategory, search: str, data: dict[str, Any]
    ) -> FetchResponse:
        raw_results = data.get("results") or []
        if not isinstance(raw_results, list):
            raise UpstreamTransientError(
                "Unexpected API response: 'results' is not a list",
                kind="upstream_error",
                endpoint=CATEGORY_ENDPOINTS[category].value,
            )

        record_type = RECORD_TYPES[category]
        records = [
            record_type.from_api(item)  # type: ignore[attr-defined]
            for item in raw_results
            if isinstance(item, dict)
        ]
        total = (data.get("meta") or {}).get("results", {}).get("total", len(records))
        return FetchResponse(category=category, search=search, records=records, total=total)
