"""Tests for the batch orchestrator.

The per-drug pipeline is replaced by a stub so ordering, isolation and the
concurrency bound can be observed directly.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from mocks.openfda_responses import RECALL_ITEM, SHORTAGE_ITEM, fetch_response

from certus.core.exceptions import UpstreamTransientError, ValidationError
from certus.services.batch import BatchOrchestrator, DrugAnalysis
from certus.services.cache import CacheCategory
from certus.services.strategy import StrategyOutcome


def make_analysis(drug_name: str, active: bool = False, recalls: int = 0) -> DrugAnalysis:
    shortage_items = [SHORTAGE_ITEM] if active else []
    shortages = StrategyOutcome(
        drug_name=drug_name,
        category=CacheCategory.SHORTAGE,
        response=fetch_response(CacheCategory.SHORTAGE, shortage_items),
        strategy_used="openfda.generic_name" if active else None,
    )
    recall_outcome = StrategyOutcome(
        drug_name=drug_name,
        category=CacheCategory.RECALL,
        response=fetch_response(CacheCategory.RECALL, [RECALL_ITEM] * recalls),
        strategy_used="openfda.generic_name" if recalls else None,
    )
    return DrugAnalysis(drug_name=drug_name, shortages=shortages, recalls=recall_outcome)


class TestBatchOrchestrator:
    """Tests for BatchOrchestrator.run."""

    @pytest.mark.asyncio
    async def test_failure_is_isolated_and_order_preserved(self) -> None:
        async def pipeline(drug_name: str, include_trends: bool) -> DrugAnalysis:
            if drug_name == "b":
                raise UpstreamTransientError("openFDA request timed out", kind="timeout")
            return make_analysis(drug_name)

        result = await BatchOrchestrator(pipeline).run(["a", "b", "c"], include_trends=False)

        assert [item.drug_name for item in result.per_drug] == ["a", "b", "c"]
        assert [item.result.ok for item in result.per_drug] == [True, False, True]
        error = result.per_drug[1].result.error
        assert error.code == "UPSTREAM_TRANSIENT_ERROR"
        assert error.kind == "timeout"
        assert error.details["drug_name"] == "b"
        assert result.summary_counts["succeeded"] == 2
        assert result.summary_counts["failed"] == 1

    @pytest.mark.asyncio
    async def test_order_preserved_when_later_drugs_finish_first(self) -> None:
        delays = {"slow": 0.05, "medium": 0.02, "fast": 0.0}

        async def pipeline(drug_name: str, include_trends: bool) -> DrugAnalysis:
            await asyncio.sleep(delays[drug_name])
            return make_analysis(drug_name)

        result = await BatchOrchestrator(pipeline, max_concurrency=3).run(
            ["slow", "medium", "fast"]
        )

        assert [item.drug_name for item in result.per_drug] == ["slow", "medium", "fast"]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        in_flight = 0
        peak = 0

        async def pipeline(drug_name: str, include_trends: bool) -> DrugAnalysis:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return make_analysis(drug_name)

        await BatchOrchestrator(pipeline, max_concurrency=2).run([f"d{i}" for i in range(7)])

        assert peak == 2

    @pytest.mark.asyncio
    async def test_too_many_drugs_rejected_before_work(self) -> None:
        pipeline = AsyncMock()

        with pytest.raises(ValidationError):
            await BatchOrchestrator(pipeline).run([f"d{i}" for i in range(26)])

        pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_entry_fails_alone(self) -> None:
        pipeline = AsyncMock(side_effect=lambda name, trends: make_analysis(name))

        result = await BatchOrchestrator(pipeline).run(["insulin", "", 7])

        assert [item.result.ok for item in result.per_drug] == [True, False, False]
        assert "provide a medication name" in result.per_drug[1].result.error.message
        assert pipeline.await_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_internal_error(self) -> None:
        pipeline = AsyncMock(side_effect=KeyError("boom"))

        result = await BatchOrchestrator(pipeline).run(["insulin"])

        error = result.per_drug[0].result.error
        assert error.code == "INTERNAL_ERROR"
        assert error.kind == "internal_error"

    @pytest.mark.asyncio
    async def test_summary_counts(self) -> None:
        analyses = {
            "a": make_analysis("a", active=True, recalls=2),
            "b": make_analysis("b"),
            "c": make_analysis("c", active=True),
        }
        pipeline = AsyncMock(side_effect=lambda name, trends: analyses[name])

        result = await BatchOrchestrator(pipeline).run(["a", "b", "c"], include_trends=True)

        assert result.summary_counts == {
            "succeeded": 3,
            "failed": 0,
            "with_active_shortages": 2,
            "with_recalls": 1,
        }
        data = result.to_dict()
        assert data["batch_info"]["total_drugs"] == 3
        assert data["batch_info"]["include_trends"] is True
        assert data["drug_analyses"][0]["status"] == "success"
        assert data["drug_analyses"][0]["has_active_shortage"] is True

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError):
            BatchOrchestrator(AsyncMock(), max_concurrency=0)
