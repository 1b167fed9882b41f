"""Tests for shortage trend analysis."""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest
from mocks.openfda_responses import (
    FrozenClock,
    empty_response,
    fetch_response,
    shortage_item,
)

from certus.core.exceptions import UpstreamTransientError
from certus.services.cache import CacheCategory, CacheStore
from certus.services.records import ShortageRecord
from certus.services.strategy import SearchStrategyEngine
from certus.services.trends import (
    CURRENT_SHORTAGE,
    NO_CURRENT_SHORTAGES,
    TREND_FETCH_LIMIT,
    FrequencyClass,
    ShortageTrendAnalyzer,
    classify_frequency,
    months_before,
)

TODAY = date(2025, 6, 30)


@pytest.fixture
def analyzer(
    mock_client: MagicMock, cache_store: CacheStore, clock: FrozenClock
) -> ShortageTrendAnalyzer:
    return ShortageTrendAnalyzer(SearchStrategyEngine(mock_client, cache_store), clock=clock)


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestClassifyFrequency:
    """Tests for the frequency bands."""

    @pytest.mark.parametrize(
        ("events", "months", "expected"),
        [
            (12, 12, FrequencyClass.HIGH),
            (4, 6, FrequencyClass.HIGH),
            (3, 6, FrequencyClass.MODERATE),  # exactly 0.5 is not High
            (2, 6, FrequencyClass.MODERATE),
            (1, 6, FrequencyClass.LOW),
            (0, 60, FrequencyClass.LOW),
        ],
    )
    def test_bands(self, events: int, months: int, expected: FrequencyClass) -> None:
        assert classify_frequency(events, months) == expected

    def test_custom_thresholds(self) -> None:
        assert classify_frequency(1, 12, high_threshold=0.05, moderate_threshold=0.01) == (
            FrequencyClass.HIGH
        )


class TestMonthsBefore:
    """Tests for calendar month arithmetic."""

    def test_simple(self) -> None:
        assert months_before(TODAY, 6) == date(2024, 12, 30)

    def test_clamps_to_month_end(self) -> None:
        assert months_before(date(2025, 3, 31), 1) == date(2025, 2, 28)

    def test_crosses_years(self) -> None:
        assert months_before(date(2025, 1, 15), 60) == date(2020, 1, 15)


# =============================================================================
# Analyzer Tests
# =============================================================================


class TestAnalyze:
    """Tests for ShortageTrendAnalyzer.analyze."""

    @pytest.mark.asyncio
    async def test_no_records_in_window(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        old = shortage_item("Metformin", date(2019, 1, 1), date(2019, 3, 1))
        mock_client.fetch_records.return_value = fetch_response(CacheCategory.SHORTAGE, [old])

        summary = await analyzer.analyze("metformin", 6)

        assert summary.total_events == 0
        assert summary.average_duration_days == 0.0
        assert summary.frequency_class == FrequencyClass.LOW
        assert summary.current_status == NO_CURRENT_SHORTAGES
        assert summary.current_status.lower() == "no current shortages"
        assert summary.current_shortage is None
        assert "metformin" in summary.message
        assert summary.to_dict()["historical_summary"]["first_recorded"] is None

    @pytest.mark.asyncio
    async def test_no_records_at_all(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        mock_client.fetch_records.return_value = empty_response(CacheCategory.SHORTAGE)

        summary = await analyzer.analyze("metformin", 6)

        assert summary.total_events == 0
        assert summary.strategy_used is None

    @pytest.mark.asyncio
    async def test_twelve_events_of_thirty_days(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        items = []
        for i in range(12):
            start = date(2024, 7, 1) + timedelta(days=25 * i)
            items.append(shortage_item("Insulin", start, start + timedelta(days=30)))
        mock_client.fetch_records.return_value = fetch_response(CacheCategory.SHORTAGE, items)

        summary = await analyzer.analyze("insulin", 12)

        assert summary.total_events == 12
        assert summary.total_duration_days == 360
        assert summary.average_duration_days == 30
        assert summary.frequency_class == FrequencyClass.HIGH
        assert summary.to_dict()["historical_summary"]["shortage_frequency"] == "High"
        assert summary.first_recorded == date(2024, 7, 1)

    @pytest.mark.asyncio
    async def test_fetches_with_trend_limit(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        mock_client.fetch_records.return_value = empty_response(CacheCategory.SHORTAGE)

        await analyzer.analyze("insulin", 12)

        assert mock_client.fetch_records.call_args.args[2] == TREND_FETCH_LIMIT

    @pytest.mark.asyncio
    async def test_open_shortage_is_current(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        items = [
            shortage_item("Amoxicillin", date(2025, 1, 10), date(2025, 2, 9)),
            shortage_item("Amoxicillin", date(2025, 5, 31)),
        ]
        mock_client.fetch_records.return_value = fetch_response(CacheCategory.SHORTAGE, items)

        summary = await analyzer.analyze("amoxicillin", 6)

        assert summary.current_status == CURRENT_SHORTAGE
        assert summary.current_shortage["duration_days"] == 30
        assert summary.current_shortage["start_date"] == "2025-05-31"
        assert summary.total_duration_days == 60

    @pytest.mark.asyncio
    async def test_resolved_shortage_without_end_date_is_not_current(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        items = [shortage_item("Amoxicillin", date(2025, 1, 15), status="Resolved")]
        mock_client.fetch_records.return_value = fetch_response(CacheCategory.SHORTAGE, items)

        summary = await analyzer.analyze("amoxicillin", 6)

        assert summary.total_events == 1
        assert summary.total_duration_days == 0
        assert summary.current_status == NO_CURRENT_SHORTAGES
        assert summary.current_shortage is None

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(
        self, analyzer: ShortageTrendAnalyzer, mock_client: MagicMock
    ) -> None:
        mock_client.fetch_records.side_effect = UpstreamTransientError(kind="timeout")

        with pytest.raises(UpstreamTransientError):
            await analyzer.analyze("insulin", 12)


# =============================================================================
# Window Tests
# =============================================================================


class TestWindow:
    """Tests for window overlap rules."""

    def _record(self, start: date | None, end: date | None) -> ShortageRecord:
        return ShortageRecord(
            drug_name="x", start_date=start, end_date=end, reason=None, status=None
        )

    def test_episode_spanning_window_start_counts(self) -> None:
        window_start = months_before(TODAY, 6)
        record = self._record(date(2024, 10, 1), date(2025, 1, 15))

        assert ShortageTrendAnalyzer._overlaps(record, window_start, TODAY) is True

    def test_episode_ended_before_window(self) -> None:
        window_start = months_before(TODAY, 6)
        record = self._record(date(2024, 1, 1), date(2024, 2, 1))

        assert ShortageTrendAnalyzer._overlaps(record, window_start, TODAY) is False

    def test_open_episode_always_counts(self) -> None:
        record = self._record(date(2015, 1, 1), None)

        assert ShortageTrendAnalyzer._overlaps(record, months_before(TODAY, 1), TODAY) is True

    def test_closed_episode_without_end_date_ends_at_start(self) -> None:
        record = ShortageRecord(
            drug_name="x",
            start_date=date(2024, 1, 1),
            end_date=None,
            reason=None,
            status="Resolved",
        )

        assert ShortageTrendAnalyzer._overlaps(record, months_before(TODAY, 6), TODAY) is False

    def test_undated_episode_is_ignored(self) -> None:
        record = self._record(None, None)

        assert ShortageTrendAnalyzer._overlaps(record, months_before(TODAY, 60), TODAY) is False

    def test_thresholds_must_be_ordered(self, mock_client: MagicMock, cache_store) -> None:
        with pytest.raises(ValueError):
            ShortageTrendAnalyzer(
                SearchStrategyEngine(mock_client, cache_store),
                high_threshold=0.2,
                moderate_threshold=0.5,
            )
