"""Drug information service - the engine's public operations.

Every operation validates its input, runs through the strategy engine and
cache, and returns a ``Result``. Nothing raises across this boundary: errors
come back as ``ErrorDescriptor`` values naming the drug and the operation.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog

from certus.config import Settings, get_settings
from certus.core.exceptions import CertusError, FetchError
from certus.core.logging import operation_context
from certus.core.results import ErrorDescriptor, Result
from certus.services.batch import BatchOrchestrator, DrugAnalysis
from certus.services.cache import CacheCategory, CachePolicy, CacheStore, Clock, utc_now
from certus.services.openfda import Endpoint, OpenFDAClient
from certus.services.records import LabelRecord, summarize_adverse_events
from certus.services.strategy import SearchStrategyEngine, StrategyOutcome
from certus.services.trends import ShortageTrendAnalyzer
from certus.services.validation import (
    normalize_identifier_type,
    require_drug_name,
    require_limit,
    require_months_back,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_LIMIT = 10
DEFAULT_MONTHS_BACK = 12

# Used inside each batch item (matches the smaller per-drug fetches of a batch)
BATCH_SHORTAGE_LIMIT = 10
BATCH_RECALL_LIMIT = 5
BATCH_TREND_MONTHS = 6

HEALTH_PROBES: dict[Endpoint, str] = {
    Endpoint.LABEL: 'openfda.generic_name:"aspirin"',
    Endpoint.SHORTAGES: 'generic_name:"test"',
    Endpoint.ENFORCEMENT: 'product_description:"test"',
    Endpoint.EVENT: 'patient.drug.medicinalproduct:"aspirin"',
}


class DrugInformationService:
    """Facade over the strategy engine, trend analyzer and batch orchestrator.

    Usage:
        ```python
        service = DrugInformationService.from_settings(settings)
        result = await service.search_shortages("insulin", limit=5)
        if result.ok:
            print(result.data["results"])
        ```
    """

    def __init__(
        self,
        client: OpenFDAClient,
        cache: CacheStore,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the service.

        Args:
            client: openFDA client
            cache: Shared CacheStore instance
            settings: Application settings
            clock: Clock used for trend windows
        """
        self._settings = settings or get_settings()
        self.client = client
        self.cache = cache
        self.engine = SearchStrategyEngine(client, cache)
        self.analyzer = ShortageTrendAnalyzer(
            self.engine,
            clock=clock,
            high_threshold=self._settings.trend_high_frequency_threshold,
            moderate_threshold=self._settings.trend_moderate_frequency_threshold,
        )
        self.batch = BatchOrchestrator(
            self.analyze_drug, max_concurrency=self._settings.batch_max_concurrency
        )

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, cache: CacheStore | None = None
    ) -> "DrugInformationService":
        """Build the service and its collaborators from settings."""
        settings = settings or get_settings()
        cache = cache or CacheStore(CachePolicy.from_settings(settings))
        return cls(OpenFDAClient(settings), cache, settings=settings)

    async def close(self) -> None:
        await self.client.close()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def search_shortages(self, drug_name: Any, limit: Any = DEFAULT_LIMIT) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            name = require_drug_name(drug_name, "shortages")
            outcome = await self.engine.search(name, CacheCategory.SHORTAGE, require_limit(limit))
            return self._with_message(outcome, f'No shortages found for "{name}"')

        return await self._execute("search_shortages", drug_name, run)

    async def search_adverse_events(
        self, drug_name: Any, limit: Any = DEFAULT_LIMIT, detailed: bool = False
    ) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            name = require_drug_name(drug_name, "adverse events")
            outcome = await self.engine.search(name, CacheCategory.ADVERSE_EVENT, require_limit(limit))
            return self._event_payload(outcome, detailed, serious_only=False)

        return await self._execute("search_adverse_events", drug_name, run)

    async def search_serious_adverse_events(
        self, drug_name: Any, limit: Any = DEFAULT_LIMIT, detailed: bool = False
    ) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            name = require_drug_name(drug_name, "serious adverse events")
            outcome = await self.engine.search(
                name, CacheCategory.SERIOUS_ADVERSE_EVENT, require_limit(limit)
            )
            return self._event_payload(outcome, detailed, serious_only=True)

        return await self._execute("search_serious_adverse_events", drug_name, run)

    async def search_recalls(self, drug_name: Any, limit: Any = DEFAULT_LIMIT) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            name = require_drug_name(drug_name, "recalls")
            outcome = await self.engine.search(name, CacheCategory.RECALL, require_limit(limit))
            return self._with_message(outcome, f'No recalls found for "{name}"')

        return await self._execute("search_recalls", drug_name, run)

    async def get_label_info(
        self, drug_identifier: Any, identifier_type: str | None = None
    ) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            identifier = require_drug_name(drug_identifier, "label information")
            label, field_name = await self._lookup_label(identifier, identifier_type)
            return {
                "search_term": identifier,
                "identifier_type": field_name,
                "original_identifier_type": identifier_type,
                "data_source": "FDA Drug Label Database",
                "label": label.to_dict() if label else None,
                "message": None if label else f'No label information found for "{identifier}"',
            }

        return await self._execute("get_label_info", drug_identifier, run)

    async def get_medication_profile(
        self, drug_identifier: Any, identifier_type: str | None = None
    ) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            identifier = require_drug_name(drug_identifier, "a medication profile")
            label, field_name = await self._lookup_label(identifier, identifier_type)

            # Shortages are indexed by generic name, so prefer the label's
            shortage_term = (label.primary_generic_name if label else None) or identifier
            profile: dict[str, Any] = {
                "search_info": {
                    "drug_identifier": identifier,
                    "identifier_type": field_name,
                    "original_identifier_type": identifier_type,
                },
                "label_info": label.to_dict() if label else None,
                "shortage_search_term": shortage_term,
            }

            try:
                shortages = await self.engine.search(
                    shortage_term, CacheCategory.SHORTAGE, DEFAULT_LIMIT
                )
            except FetchError as e:
                profile["shortage_data"] = None
                profile["shortage_error"] = e.to_descriptor(drug_name=shortage_term).to_dict()
                profile["overall_status"] = "Retrieved label information but shortage lookup failed"
                return profile

            profile["shortage_data"] = shortages.to_dict()
            profile["has_active_shortage"] = any(r.is_open for r in shortages.records)
            profile["overall_status"] = self._profile_status(label, shortages)
            return profile

        return await self._execute("get_medication_profile", drug_identifier, run)

    async def analyze_trends(
        self, drug_name: Any, months_back: Any = DEFAULT_MONTHS_BACK
    ) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            name = require_drug_name(drug_name, "shortage trends")
            summary = await self.analyzer.analyze(name, require_months_back(months_back))
            return summary.to_dict()

        return await self._execute("analyze_trends", drug_name, run)

    async def batch_analyze(self, drug_list: Any, include_trends: bool = False) -> Result[dict[str, Any]]:
        async def run() -> dict[str, Any]:
            result = await self.batch.run(drug_list, include_trends=bool(include_trends))
            return result.to_dict()

        return await self._execute("batch_analyze", None, run)

    async def analyze_drug(self, drug_name: str, include_trends: bool) -> DrugAnalysis:
        """Single-drug batch pipeline: shortages, recalls and optional trends.

        Raises:
            CertusError: On any failure; the orchestrator isolates it
        """
        shortages = await self.engine.search(drug_name, CacheCategory.SHORTAGE, BATCH_SHORTAGE_LIMIT)
        recalls = await self.engine.search(drug_name, CacheCategory.RECALL, BATCH_RECALL_LIMIT)
        trends = None
        if include_trends:
            trends = await self.analyzer.analyze(drug_name, BATCH_TREND_MONTHS)
        return DrugAnalysis(drug_name=drug_name, shortages=shortages, recalls=recalls, trends=trends)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def cleanup_cache(self) -> dict[str, Any]:
        removed = self.cache.cleanup()
        return {"entries_removed": removed, **self.cache.stats()}

    async def health_check(self) -> dict[str, Any]:
        """Probe every openFDA endpoint once."""
        endpoints = {}
        for endpoint, search in HEALTH_PROBES.items():
            name = endpoint.value.rsplit("/", 1)[-1].removesuffix(".json")
            endpoints[name] = await self.client.probe(endpoint, search)
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "api_key_configured": self.client.api_key_configured,
            "endpoints": endpoints,
        }

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    async def _execute(
        self,
        operation: str,
        drug_name: Any,
        func: Callable[[], Awaitable[T]],
    ) -> Result[T]:
        context_name = drug_name if isinstance(drug_name, str) else None
        with operation_context(operation, drug_name=context_name):
            try:
                data = await func()
            except CertusError as e:
                logger.warning("operation_failed", code=e.code, kind=e.kind, error=e.message)
                return Result.failure(e.to_descriptor(drug_name=drug_name, operation=operation))
            except Exception as e:
                logger.exception("operation_crashed", error_type=type(e).__name__)
                return Result.failure(
                    ErrorDescriptor(
                        code="INTERNAL_ERROR",
                        kind="internal_error",
                        message=f"Unexpected error during {operation}",
                        details={"drug_name": context_name, "operation": operation},
                    )
                )
        return Result.success(data)

    async def _lookup_label(
        self, identifier: str, identifier_type: str | None
    ) -> tuple[LabelRecord | None, str]:
        field_name = normalize_identifier_type(identifier_type)
        outcome = await self.engine.search_field(field_name, identifier, CacheCategory.DRUG_LABEL, 1)
        label = outcome.records[0] if outcome.found else None
        return label, field_name

    @staticmethod
    def _with_message(outcome: StrategyOutcome, empty_message: str) -> dict[str, Any]:
        data = outcome.to_dict()
        if not outcome.found:
            data["message"] = empty_message
        return data

    @staticmethod
    def _event_payload(
        outcome: StrategyOutcome, detailed: bool, serious_only: bool
    ) -> dict[str, Any]:
        records = outcome.records
        data: dict[str, Any] = {
            "search_term": outcome.drug_name,
            "data_source": outcome.data_source,
            "serious_only": serious_only,
            "strategy_used": outcome.strategy_used,
            "strategies_tried": outcome.strategies_tried,
            "summary": summarize_adverse_events(records),
        }
        if detailed:
            data["results"] = [record.to_dict() for record in records]
        if not outcome.found:
            label = "serious adverse event" if serious_only else "adverse event"
            data["message"] = f"No {label} reports found for \"{outcome.drug_name}\""
        if outcome.errors:
            data["errors"] = outcome.errors
        return data

    @staticmethod
    def _profile_status(label: LabelRecord | None, shortages: StrategyOutcome) -> str:
        if label and shortages.found:
            return "Retrieved complete drug profile with shortage information"
        if label:
            return "Retrieved complete drug profile - no shortages found"
        if shortages.found:
            return "Found shortage information but no label data"
        return "No label or shortage information found"
