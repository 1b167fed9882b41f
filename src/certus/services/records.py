"""Typed openFDA records (anti-corruption layer).

Raw openFDA JSON is converted to these records at the fetcher boundary, so
the rest of the engine never handles untyped payloads. Records are
cached in their ``to_dict`` form and rebuilt with ``from_dict``.
"""

from collections import Counter
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from typing import Any, ClassVar

from certus.services.cache import CacheCategory

# openFDA mixes US-style and compact date formats across datasets
_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%Y%m%d")

RESOLVED_STATUSES = frozenset({"resolved", "no longer in shortage"})
DISCONTINUED_STATUSES = frozenset({"discontinued", "to be discontinued"})


def parse_date(value: Any) -> date | None:
    """Parse an openFDA date string; returns None if absent or unparseable."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _first(values: Any, default: str | None = None) -> str | None:
    """Return the first element of an openFDA list field (or the value itself)."""
    if isinstance(values, list):
        return str(values[0]) if values else default
    if values in (None, ""):
        return default
    return str(values)


def _as_list(values: Any) -> list[str]:
    if values is None:
        return []
    if isinstance(values, list):
        return [str(v) for v in values]
    return [str(values)]


class _RecordMixin:
    """Shared dict conversion for the record dataclasses."""

    category: ClassVar[CacheCategory]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        data = asdict(self)  # type: ignore[call-overload]
        for key, value in data.items():
            if isinstance(value, date):
                data[key] = value.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        """Create from cached dict."""
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in known})


# -----------------------------------------------------------------------------
# Shortages
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ShortageRecord(_RecordMixin):
    """A drug shortage as reported by the FDA Drug Shortages database.

    Openness follows ``status``: resolved and discontinued shortages are
    closed even when openFDA gives no usable end date. ``end_date`` only
    bounds the duration.
    """

    category: ClassVar[CacheCategory] = CacheCategory.SHORTAGE

    drug_name: str
    start_date: date | None
    end_date: date | None
    reason: str | None
    status: str | None
    brand_name: str | None = None
    company_name: str | None = None
    availability: str | None = None
    presentation: str | None = None

    @property
    def is_closed(self) -> bool:
        """True when the status says the shortage is resolved or discontinued."""
        status = (self.status or "").strip().lower()
        return status in RESOLVED_STATUSES or status in DISCONTINUED_STATUSES

    @property
    def is_open(self) -> bool:
        return not self.is_closed and self.end_date is None

    def duration_days(self, today: date) -> int:
        """Days from start to end (or ``today`` while still open), never negative.

        A closed shortage with no known end date has an unknown duration: 0.
        """
        if self.start_date is None:
            return 0
        if self.end_date is None and self.is_closed:
            return 0
        end = self.end_date or today
        return max(0, (end - self.start_date).days)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ShortageRecord":
        openfda = data.get("openfda") or {}
        status = data.get("status")
        normalized_status = (status or "").strip().lower()

        end_date = None
        if normalized_status in RESOLVED_STATUSES:
            end_date = parse_date(data.get("change_date") or data.get("update_date"))
        elif normalized_status in DISCONTINUED_STATUSES:
            end_date = parse_date(data.get("discontinued_date"))

        return cls(
            drug_name=(
                data.get("generic_name")
                or _first(openfda.get("generic_name"))
                or data.get("proprietary_name")
                or "Unknown"
            ),
            start_date=parse_date(data.get("initial_posting_date")),
            end_date=end_date,
            reason=data.get("shortage_reason") or data.get("reason"),
            status=status,
            brand_name=data.get("proprietary_name") or _first(openfda.get("brand_name")),
            company_name=data.get("company_name"),
            availability=data.get("availability"),
            presentation=data.get("presentation"),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShortageRecord":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["start_date"] = parse_date(values.get("start_date"))
        values["end_date"] = parse_date(values.get("end_date"))
        return cls(**values)


# -----------------------------------------------------------------------------
# Labels
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LabelRecord(_RecordMixin):
    """Structured product labeling (SPL) summary."""

    category: ClassVar[CacheCategory] = CacheCategory.DRUG_LABEL

    set_id: str | None
    effective_time: str | None
    brand_name: list[str] = field(default_factory=list)
    generic_name: list[str] = field(default_factory=list)
    manufacturer_name: list[str] = field(default_factory=list)
    route: list[str] = field(default_factory=list)
    product_type: list[str] = field(default_factory=list)
    indications_and_usage: list[str] = field(default_factory=list)
    dosage_and_administration: list[str] = field(default_factory=list)
    boxed_warning: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    contraindications: list[str] = field(default_factory=list)
    adverse_reactions: list[str] = field(default_factory=list)
    drug_interactions: list[str] = field(default_factory=list)

    @property
    def primary_generic_name(self) -> str | None:
        return self.generic_name[0] if self.generic_name else None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "LabelRecord":
        openfda = data.get("openfda") or {}
        return cls(
            set_id=data.get("set_id"),
            effective_time=data.get("effective_time"),
            brand_name=_as_list(openfda.get("brand_name")),
            generic_name=_as_list(openfda.get("generic_name")),
            manufacturer_name=_as_list(openfda.get("manufacturer_name")),
            route=_as_list(openfda.get("route")),
            product_type=_as_list(openfda.get("product_type")),
            indications_and_usage=_as_list(data.get("indications_and_usage")),
            dosage_and_administration=_as_list(data.get("dosage_and_administration")),
            boxed_warning=_as_list(data.get("boxed_warning")),
            warnings=_as_list(data.get("warnings") or data.get("warnings_and_cautions")),
            contraindications=_as_list(data.get("contraindications")),
            adverse_reactions=_as_list(data.get("adverse_reactions")),
            drug_interactions=_as_list(data.get("drug_interactions")),
        )


# -----------------------------------------------------------------------------
# Recalls (enforcement reports)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RecallRecord(_RecordMixin):
    """An FDA enforcement report (recall)."""

    category: ClassVar[CacheCategory] = CacheCategory.RECALL

    recall_number: str | None
    status: str | None
    classification: str | None
    product_description: str | None
    reason_for_recall: str | None
    recalling_firm: str | None
    recall_initiation_date: str | None
    report_date: str | None
    distribution_pattern: str | None = None
    voluntary_mandated: str | None = None
    product_quantity: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RecallRecord":
        return cls(
            recall_number=data.get("recall_number"),
            status=data.get("status"),
            classification=data.get("classification"),
            product_description=data.get("product_description"),
            reason_for_recall=data.get("reason_for_recall"),
            recalling_firm=data.get("recalling_firm"),
            recall_initiation_date=data.get("recall_initiation_date"),
            report_date=data.get("report_date"),
            distribution_pattern=data.get("distribution_pattern"),
            voluntary_mandated=data.get("voluntary_mandated"),
            product_quantity=data.get("product_quantity"),
        )


# -----------------------------------------------------------------------------
# Adverse events (FAERS)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AdverseEventRecord(_RecordMixin):
    """A single FAERS safety report."""

    category: ClassVar[CacheCategory] = CacheCategory.ADVERSE_EVENT

    safety_report_id: str | None
    receive_date: str | None
    serious: bool
    outcomes: list[str] = field(default_factory=list)
    reactions: list[str] = field(default_factory=list)
    drugs: list[str] = field(default_factory=list)
    patient_sex: str | None = None
    patient_age: str | None = None

    SERIOUSNESS_FLAGS: ClassVar[dict[str, str]] = {
        "seriousnessdeath": "death",
        "seriousnesslifethreatening": "life_threatening",
        "seriousnesshospitalization": "hospitalization",
        "seriousnessdisabling": "disability",
        "seriousnesscongenitalanomali": "congenital_anomaly",
        "seriousnessother": "other_serious",
    }
    PATIENT_SEX: ClassVar[dict[str, str]] = {"0": "unknown", "1": "male", "2": "female"}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "AdverseEventRecord":
        patient = data.get("patient") or {}
        reactions = [
            r.get("reactionmeddrapt")
            for r in patient.get("reaction") or []
            if r.get("reactionmeddrapt")
        ]
        drugs = [
            d.get("medicinalproduct")
            for d in patient.get("drug") or []
            if d.get("medicinalproduct")
        ]
        outcomes = [
            label for flag, label in cls.SERIOUSNESS_FLAGS.items() if str(data.get(flag)) == "1"
        ]
        age = patient.get("patientonsetage")
        return cls(
            safety_report_id=data.get("safetyreportid"),
            receive_date=data.get("receivedate"),
            serious=str(data.get("serious")) == "1",
            outcomes=outcomes,
            reactions=reactions,
            drugs=drugs,
            patient_sex=cls.PATIENT_SEX.get(str(patient.get("patientsex"))),
            patient_age=str(age) if age is not None else None,
        )


@dataclass(frozen=True)
class SeriousAdverseEventRecord(AdverseEventRecord):
    """A FAERS report restricted to serious outcomes (never cached)."""

    category: ClassVar[CacheCategory] = CacheCategory.SERIOUS_ADVERSE_EVENT


RECORD_TYPES: dict[CacheCategory, type[_RecordMixin]] = {
    CacheCategory.SHORTAGE: ShortageRecord,
    CacheCategory.DRUG_LABEL: LabelRecord,
    CacheCategory.RECALL: RecallRecord,
    CacheCategory.ADVERSE_EVENT: AdverseEventRecord,
    CacheCategory.SERIOUS_ADVERSE_EVENT: SeriousAdverseEventRecord,
}


def summarize_adverse_events(
    records: list[AdverseEventRecord], top_n: int = 10
) -> dict[str, Any]:
    """Aggregate FAERS reports into counts and the most frequent reactions."""
    reaction_counts = Counter(term for record in records for term in record.reactions)
    outcome_counts = Counter(outcome for record in records for outcome in record.outcomes)
    return {
        "total_reports": len(records),
        "serious_reports": sum(1 for record in records if record.serious),
        "top_reactions": [
            {"reaction": term, "count": count}
            for term, count in reaction_counts.most_common(top_n)
        ],
        "outcomes": dict(outcome_counts),
    }
