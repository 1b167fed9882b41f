"""Batch analysis of several drugs with per-item failure isolation.

A fixed pool of workers pulls drugs from a queue, so at most
``max_concurrency`` per-drug pipelines talk to openFDA at once. Each drug's
outcome is recorded in its input position; one drug failing never affects
another.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from certus.core.exceptions import CertusError
from certus.core.results import ErrorDescriptor, Result
from certus.services.strategy import StrategyOutcome
from certus.services.trends import TrendSummary
from certus.services.validation import require_drug_list, require_drug_name

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


@dataclass
class DrugAnalysis:
    """Everything the batch pipeline gathered for one drug."""

    drug_name: str
    shortages: StrategyOutcome
    recalls: StrategyOutcome | None = None
    trends: TrendSummary | None = None

    @property
    def has_active_shortage(self) -> bool:
        return any(record.is_open for record in self.shortages.records)

    @property
    def recall_count(self) -> int:
        return len(self.recalls.records) if self.recalls else 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "drug_name": self.drug_name,
            "has_active_shortage": self.has_active_shortage,
            "shortage_data": self.shortages.to_dict(),
        }
        if self.recalls is not None:
            data["recall_data"] = self.recalls.to_dict()
        if self.trends is not None:
            data["trend_data"] = self.trends.to_dict()
        return data


DrugPipeline = Callable[[str, bool], Awaitable[DrugAnalysis]]


@dataclass
class BatchItem:
    """Outcome for one drug: an analysis or a typed error."""

    drug_name: Any
    result: Result[DrugAnalysis]

    def to_dict(self) -> dict[str, Any]:
        if self.result.ok and self.result.data is not None:
            return {"drug_name": self.drug_name, "status": "success", **self.result.data.to_dict()}
        error = self.result.error
        return {
            "drug_name": self.drug_name,
            "status": "error",
            "error": error.to_dict() if error else None,
        }


@dataclass
class BatchResult:
    """Ordered per-drug outcomes plus summary counts."""

    total_requested: int
    include_trends: bool
    per_drug: list[BatchItem] = field(default_factory=list)
    completed_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def summary_counts(self) -> dict[str, int]:
        analyses = [item.result.data for item in self.per_drug if item.result.ok and item.result.data]
        return {
            "succeeded": len(analyses),
            "failed": sum(1 for item in self.per_drug if not item.result.ok),
            "with_active_shortages": sum(1 for a in analyses if a.has_active_shortage),
            "with_recalls": sum(1 for a in analyses if a.recall_count > 0),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_info": {
                "total_drugs": self.total_requested,
                "include_trends": self.include_trends,
                "completed_at": self.completed_at,
            },
            "summary": self.summary_counts,
            "drug_analyses": [item.to_dict() for item in self.per_drug],
        }


class BatchOrchestrator:
    """Runs a per-drug pipeline over up to 25 drugs.

    Usage:
        ```python
        orchestrator = BatchOrchestrator(service.analyze_drug, max_concurrency=4)
        result = await orchestrator.run(["insulin", "metformin"], include_trends=True)
        ```
    """

    def __init__(
        self, pipeline: DrugPipeline, max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.pipeline = pipeline
        self.max_concurrency = max_concurrency

    async def run(self, drug_names: Any, include_trends: bool = False) -> BatchResult:
        """Analyze every drug, preserving input order.

        Raises:
            ValidationError: If the list is empty, not a list, or longer than
                25 entries (before any work starts)
        """
        names = require_drug_list(drug_names)
        slots: list[BatchItem | None] = [None] * len(names)

        queue: asyncio.Queue[tuple[int, Any]] = asyncio.Queue()
        for position, name in enumerate(names):
            queue.put_nowait((position, name))

        async def worker() -> None:
            while True:
                try:
                    position, name = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                slots[position] = await self._run_one(name, include_trends)

        worker_count = min(self.max_concurrency, len(names))
        logger.info("batch_started", total_drugs=len(names), workers=worker_count)
        await asyncio.gather(*(worker() for _ in range(worker_count)))

        result = BatchResult(
            total_requested=len(names),
            include_trends=include_trends,
            per_drug=[item for item in slots if item is not None],
        )
        logger.info("batch_complete", **result.summary_counts)
        return result

    async def _run_one(self, name: Any, include_trends: bool) -> BatchItem:
        try:
            drug_name = require_drug_name(name, "batch analysis")
            analysis = await self.pipeline(drug_name, include_trends)
        except CertusError as e:
            logger.warning("batch_item_failed", drug_name=name, code=e.code, kind=e.kind)
            return BatchItem(
                drug_name=name,
                result=Result.failure(e.to_descriptor(drug_name=name, operation="batch_analyze")),
            )
        except Exception as e:
            logger.exception("batch_item_crashed", drug_name=name, error_type=type(e).__name__)
            return BatchItem(
                drug_name=name,
                result=Result.failure(
                    ErrorDescriptor(
                        code="INTERNAL_ERROR",
                        kind="internal_error",
                        message=f"Unexpected error analyzing '{name}'",
                        details={"drug_name": name, "operation": "batch_analyze"},
                    )
                ),
            )
        return BatchItem(drug_name=drug_name, result=Result.success(analysis))
