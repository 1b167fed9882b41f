"""Services package for Certus.

This module exports the data-access engine's components.
"""

from certus.services.batch import BatchOrchestrator, BatchResult, DrugAnalysis
from certus.services.cache import (
    CacheCategory,
    CacheEntry,
    CachePolicy,
    CacheStore,
    periodic_cleanup,
)
from certus.services.drugs import DrugInformationService
from certus.services.openfda import Endpoint, FetchResponse, OpenFDAClient
from certus.services.strategy import (
    SearchStrategyEngine,
    StrategyCandidate,
    StrategyOutcome,
    build_strategy,
)
from certus.services.trends import FrequencyClass, ShortageTrendAnalyzer, TrendSummary

__all__ = [
    # Batch
    "BatchOrchestrator",
    "BatchResult",
    "DrugAnalysis",
    # Cache
    "CacheCategory",
    "CacheEntry",
    "CachePolicy",
    "CacheStore",
    "periodic_cleanup",
    # Facade
    "DrugInformationService",
    # openFDA
    "Endpoint",
    "FetchResponse",
    "OpenFDAClient",
    # Strategy
    "SearchStrategyEngine",
    "StrategyCandidate",
    "StrategyOutcome",
    "build_strategy",
    # Trends
    "FrequencyClass",
    "ShortageTrendAnalyzer",
    "TrendSummary",
]
