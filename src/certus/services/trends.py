"""Shortage trend analysis over a rolling window of months.

Shortage records for a drug are fetched through the strategy engine, kept if
they overlap ``[today - months_back, today]``, and aggregated into counts,
durations and a frequency class. Summaries are computed on every call; only
the underlying shortage responses are cached.

Frequency classes (events per month over the window):
    - High: more than 0.5
    - Moderate: more than 0.2
    - Low: anything else
"""

import calendar
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

import structlog

from certus.services.cache import CacheCategory, Clock, utc_now
from certus.services.records import ShortageRecord
from certus.services.strategy import SearchStrategyEngine

logger = structlog.get_logger(__name__)

HIGH_FREQUENCY_THRESHOLD = 0.5
MODERATE_FREQUENCY_THRESHOLD = 0.2

# Enough history for a 60-month window on any realistic drug
TREND_FETCH_LIMIT = 100

NO_CURRENT_SHORTAGES = "No current shortages"
CURRENT_SHORTAGE = "Current shortage"


class FrequencyClass(str, Enum):
    HIGH = "High"
    MODERATE = "Moderate"
    LOW = "Low"


def classify_frequency(
    total_events: int,
    months_back: int,
    high_threshold: float = HIGH_FREQUENCY_THRESHOLD,
    moderate_threshold: float = MODERATE_FREQUENCY_THRESHOLD,
) -> FrequencyClass:
    """Classify shortage frequency from the events-per-month rate."""
    rate = total_events / months_back
    if rate > high_threshold:
        return FrequencyClass.HIGH
    if rate > moderate_threshold:
        return FrequencyClass.MODERATE
    return FrequencyClass.LOW


def months_before(day: date, months: int) -> date:
    """Same calendar day ``months`` earlier, clamped to the month's last day."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


@dataclass
class TrendSummary:
    """Aggregate shortage statistics for one drug over a window."""

    drug_name: str
    window_months: int
    window_start: date
    window_end: date
    total_events: int
    total_duration_days: int
    average_duration_days: float
    frequency_class: FrequencyClass
    timeline: list[ShortageRecord] = field(default_factory=list)
    current_status: str = NO_CURRENT_SHORTAGES
    current_shortage: dict[str, Any] | None = None
    strategy_used: str | None = None
    message: str | None = None

    @property
    def first_recorded(self) -> date | None:
        return self.timeline[0].start_date if self.timeline else None

    def to_dict(self) -> dict[str, Any]:
        first = self.first_recorded
        return {
            "drug_name": self.drug_name,
            "analysis_period_months": self.window_months,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "current_status": self.current_status,
            "current_shortage": self.current_shortage,
            "historical_summary": {
                "total_shortage_events": self.total_events,
                "total_duration_days": self.total_duration_days,
                "average_duration_days": round(self.average_duration_days, 1),
                "shortage_frequency": self.frequency_class.value,
                "first_recorded": first.isoformat() if first else None,
            },
            "timeline": [record.to_dict() for record in self.timeline],
            "strategy_used": self.strategy_used,
            "message": self.message,
            "data_source": "FDA Drug Shortages Database",
        }


class ShortageTrendAnalyzer:
    """Computes ``TrendSummary`` values from shortage history.

    Usage:
        ```python
        analyzer = ShortageTrendAnalyzer(engine)
        summary = await analyzer.analyze("insulin", months_back=12)
        summary.frequency_class  # FrequencyClass.HIGH
        ```
    """

    def __init__(
        self,
        engine: SearchStrategyEngine,
        clock: Clock = utc_now,
        high_threshold: float = HIGH_FREQUENCY_THRESHOLD,
        moderate_threshold: float = MODERATE_FREQUENCY_THRESHOLD,
    ) -> None:
        if moderate_threshold >= high_threshold:
            raise ValueError("moderate_threshold must be lower than high_threshold")
        self.engine = engine
        self._clock = clock
        self.high_threshold = high_threshold
        self.moderate_threshold = moderate_threshold

    async def analyze(self, drug_name: str, months_back: int) -> TrendSummary:
        """Fetch shortage history and summarize it over the window.

        Args:
            drug_name: Validated drug name
            months_back: Validated window size (1-60)

        Raises:
            FetchError: If openFDA could not be reached for any strategy
        """
        outcome = await self.engine.search(drug_name, CacheCategory.SHORTAGE, TREND_FETCH_LIMIT)
        today = self._clock().date()
        window_start = months_before(today, months_back)

        in_window = [
            record
            for record in outcome.records
            if self._overlaps(record, window_start, today)
        ]
        summary = self.summarize(drug_name, in_window, months_back, window_start, today)
        summary.strategy_used = outcome.strategy_used

        logger.info(
            "trend_analysis_complete",
            drug_name=drug_name,
            months_back=months_back,
            total_events=summary.total_events,
            frequency=summary.frequency_class.value,
        )
        return summary

    def summarize(
        self,
        drug_name: str,
        records: list[ShortageRecord],
        months_back: int,
        window_start: date,
        today: date,
    ) -> TrendSummary:
        """Aggregate already-filtered records into a ``TrendSummary``."""
        timeline = sorted(records, key=lambda r: r.start_date or date.min)
        durations = [record.duration_days(today) for record in timeline]
        total_events = len(timeline)
        total_duration = sum(durations)
        average = total_duration / total_events if total_events else 0.0

        open_records = [record for record in timeline if record.is_open]
        current_shortage = None
        if open_records:
            latest = open_records[-1]
            current_shortage = {
                "drug_name": latest.drug_name,
                "start_date": latest.start_date.isoformat() if latest.start_date else None,
                "duration_days": latest.duration_days(today),
                "reason": latest.reason or "Not specified",
                "availability": latest.availability or "Unknown",
                "status": latest.status,
            }

        message = None
        if total_events == 0:
            message = (
                f"No current or historical shortages found for '{drug_name}' "
                f"in the last {months_back} months"
            )

        return TrendSummary(
            drug_name=drug_name,
            window_months=months_back,
            window_start=window_start,
            window_end=today,
            total_events=total_events,
            total_duration_days=total_duration,
            average_duration_days=average,
            frequency_class=classify_frequency(
                total_events, months_back, self.high_threshold, self.moderate_threshold
            ),
            timeline=timeline,
            current_status=CURRENT_SHORTAGE if open_records else NO_CURRENT_SHORTAGES,
            current_shortage=current_shortage,
            message=message,
        )

    @staticmethod
    def _overlaps(record: ShortageRecord, window_start: date, today: date) -> bool:
        if record.start_date is None or record.start_date > today:
            return False
        if record.end_date is not None:
            end = record.end_date
        elif record.is_closed:
            end = record.start_date
        else:
            end = today
        return end >= window_start
