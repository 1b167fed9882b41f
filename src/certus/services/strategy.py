"""Ordered fallback search over openFDA fields.

A drug name is tried against a fixed, per-category list of fields until one
returns at least one record. The order is part of the contract: namespaced
generic name, namespaced brand name, then the bare (dataset-specific) generic
and brand fields. Every candidate goes through the CacheStore before the
network.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from certus.core.exceptions import FetchError
from certus.services.cache import CacheCategory, CacheStore
from certus.services.openfda import CATEGORY_ENDPOINTS, DATA_SOURCES, FetchResponse, OpenFDAClient

logger = structlog.get_logger(__name__)


# Tie-break order for each category, most standardized field first
STRATEGY_FIELDS: dict[CacheCategory, tuple[str, ...]] = {
    CacheCategory.SHORTAGE: (
        "openfda.generic_name",
        "openfda.brand_name",
        "generic_name",
        "proprietary_name",
    ),
    CacheCategory.DRUG_LABEL: (
        "openfda.generic_name",
        "openfda.brand_name",
        "openfda.substance_name",
    ),
    CacheCategory.RECALL: (
        "openfda.generic_name",
        "openfda.brand_name",
        "product_description",
    ),
    CacheCategory.ADVERSE_EVENT: (
        "patient.drug.openfda.generic_name",
        "patient.drug.openfda.brand_name",
        "patient.drug.medicinalproduct",
    ),
    CacheCategory.SERIOUS_ADVERSE_EVENT: (
        "patient.drug.openfda.generic_name",
        "patient.drug.openfda.brand_name",
        "patient.drug.medicinalproduct",
    ),
}

# Extra clauses ANDed onto every candidate of a category
CATEGORY_FILTERS: dict[CacheCategory, str] = {
    CacheCategory.SERIOUS_ADVERSE_EVENT: "serious:1",
}


@dataclass(frozen=True)
class StrategyCandidate:
    """One ``(field, value)`` pair tried against the search API."""

    field: str
    value: str
    filter: str | None = None

    @property
    def expression(self) -> str:
        """openFDA search expression for this candidate."""
        clean_value = self.value.replace('"', "").strip()
        expression = f'{self.field}:"{clean_value}"'
        if self.filter:
            expression = f"{expression} AND {self.filter}"
        return expression


@dataclass
class StrategyOutcome:
    """Result of running a strategy: the first non-empty response or nothing.

    An exhausted strategy is not a failure; ``errors`` lists what went wrong
    per candidate, for diagnostics.
    """

    drug_name: str
    category: CacheCategory
    response: FetchResponse | None
    strategy_used: str | None
    strategies_tried: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    from_cache: bool = False

    @property
    def found(self) -> bool:
        return self.response is not None and not self.response.is_empty

    @property
    def records(self) -> list[Any]:
        return list(self.response.records) if self.response else []

    @property
    def data_source(self) -> str:
        return DATA_SOURCES[CATEGORY_ENDPOINTS[self.category]]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "search_term": self.drug_name,
            "data_source": self.data_source,
            "strategy_used": self.strategy_used,
            "strategies_tried": self.strategies_tried,
            "total_found": self.response.total if self.found and self.response else 0,
            "results": [record.to_dict() for record in self.records],
        }
        if self.errors:
            data["errors"] = self.errors
        return data


def build_strategy(drug_name: str, category: CacheCategory) -> list[StrategyCandidate]:
    """Build the ordered candidate list for a drug name and category."""
    category_filter = CATEGORY_FILTERS.get(category)
    return [
        StrategyCandidate(field=name, value=drug_name, filter=category_filter)
        for name in STRATEGY_FIELDS[category]
    ]


class SearchStrategyEngine:
    """Runs strategies through the cache and the openFDA client.

    Usage:
        ```python
        engine = SearchStrategyEngine(client, cache)
        outcome = await engine.search("Advil", CacheCategory.SHORTAGE, limit=10)
        outcome.strategy_used  # "openfda.brand_name"
        ```
    """

    def __init__(self, client: OpenFDAClient, cache: CacheStore) -> None:
        """Initialize the engine.

        Args:
            client: openFDA client
            cache: Shared CacheStore instance
        """
        self.client = client
        self.cache = cache

    async def search(
        self, drug_name: str, category: CacheCategory, limit: int
    ) -> StrategyOutcome:
        """Try every field for the category, in order, until one matches.

        Raises:
            FetchError: Only when every candidate failed with an upstream
                error, so "no data" and "openFDA unavailable" stay distinct
        """
        return await self.run(build_strategy(drug_name, category), drug_name, category, limit)

    async def search_field(
        self, field_name: str, value: str, category: CacheCategory, limit: int
    ) -> StrategyOutcome:
        """Run a single-candidate strategy against one explicit field."""
        candidate = StrategyCandidate(
            field=field_name, value=value, filter=CATEGORY_FILTERS.get(category)
        )
        return await self.run([candidate], value, category, limit)

    async def run(
        self,
        candidates: list[StrategyCandidate],
        drug_name: str,
        category: CacheCategory,
        limit: int,
    ) -> StrategyOutcome:
        tried: list[str] = []
        errors: list[str] = []
        last_error: FetchError | None = None

        for candidate in candidates:
            tried.append(candidate.field)
            try:
                response, from_cache = await self._fetch_candidate(candidate, category, limit)
            except FetchError as e:
                logger.warning(
                    "strategy_candidate_failed",
                    drug_name=drug_name,
                    field=candidate.field,
                    kind=e.kind,
                    error=e.message,
                )
                errors.append(f"{candidate.field}: {e.message}")
                last_error = e
                continue

            if not response.is_empty:
                logger.info(
                    "strategy_matched",
                    drug_name=drug_name,
                    category=category.value,
                    field=candidate.field,
                    from_cache=from_cache,
                )
                return StrategyOutcome(
                    drug_name=drug_name,
                    category=category,
                    response=response,
                    strategy_used=candidate.field,
                    strategies_tried=tried,
                    errors=errors,
                    from_cache=from_cache,
                )

        if last_error is not None and len(errors) == len(candidates):
            raise last_error

        logger.info(
            "strategy_exhausted",
            drug_name=drug_name,
            category=category.value,
            errors=len(errors),
        )
        return StrategyOutcome(
            drug_name=drug_name,
            category=category,
            response=None,
            strategy_used=None,
            strategies_tried=tried,
            errors=errors,
        )

    async def _fetch_candidate(
        self, candidate: StrategyCandidate, category: CacheCategory, limit: int
    ) -> tuple[FetchResponse, bool]:
        cache_key = CacheStore.make_key(
            category,
            candidate.value,
            field=candidate.field,
            filter=candidate.filter,
            limit=limit,
        )

        cached_data = self.cache.get(category, cache_key)
        if cached_data is not None:
            return FetchResponse.from_dict(cached_data), True

        response = await self.client.fetch_records(category, candidate.expression, limit)
        self.cache.put(category, cache_key, response.to_dict())
        return response, False
