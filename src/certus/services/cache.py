"""CacheStore - in-process TTL cache for openFDA responses.

Entries are grouped by data category and each category has a TTL or is never
cached. Safety-critical data (recalls, serious adverse events) is never
stored, whatever the configuration says.

TTL table (minutes):
    - drug_label - 1440
    - shortage - 30
    - adverse_event - 60
    - recall - never
    - serious_adverse_event - never

The store is created once at startup and handed to every component that needs
it. The clock is injectable so expiry can be tested without sleeping.
"""

import asyncio
import copy
import hashlib
import threading
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any

import structlog

from certus.config import Settings

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class CacheCategory(str, Enum):
    """Data categories with their own caching policy."""

    DRUG_LABEL = "drug_label"
    SHORTAGE = "shortage"
    RECALL = "recall"
    ADVERSE_EVENT = "adverse_event"
    SERIOUS_ADVERSE_EVENT = "serious_adverse_event"


# Hard safety rule, not a tunable default
NEVER_CACHE_CATEGORIES = frozenset(
    {CacheCategory.RECALL, CacheCategory.SERIOUS_ADVERSE_EVENT}
)


@dataclass(frozen=True)
class CachePolicy:
    """Immutable mapping of category -> TTL, where ``None`` means never cache."""

    ttls: Mapping[CacheCategory, timedelta | None]

    TTL_DRUG_LABEL_MINUTES = 1440
    TTL_SHORTAGE_MINUTES = 30
    TTL_ADVERSE_EVENT_MINUTES = 60

    def __post_init__(self) -> None:
        for category in NEVER_CACHE_CATEGORIES:
            if self.ttls.get(category) is not None:
                raise ValueError(f"{category.value} data must never be cached")
        ttls = {category: self.ttls.get(category) for category in CacheCategory}
        object.__setattr__(self, "ttls", MappingProxyType(ttls))

    @classmethod
    def from_minutes(
        cls,
        *,
        drug_label: int = TTL_DRUG_LABEL_MINUTES,
        shortage: int = TTL_SHORTAGE_MINUTES,
        adverse_event: int = TTL_ADVERSE_EVENT_MINUTES,
    ) -> "CachePolicy":
        return cls(
            ttls={
                CacheCategory.DRUG_LABEL: timedelta(minutes=drug_label),
                CacheCategory.SHORTAGE: timedelta(minutes=shortage),
                CacheCategory.ADVERSE_EVENT: timedelta(minutes=adverse_event),
                CacheCategory.RECALL: None,
                CacheCategory.SERIOUS_ADVERSE_EVENT: None,
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CachePolicy":
        return cls.from_minutes(
            drug_label=settings.cache_ttl_drug_label,
            shortage=settings.cache_ttl_shortage,
            adverse_event=settings.cache_ttl_adverse_event,
        )

    def ttl_for(self, category: CacheCategory) -> timedelta | None:
        return self.ttls[CacheCategory(category)]

    def is_cacheable(self, category: CacheCategory) -> bool:
        return self.ttl_for(category) is not None


@dataclass
class CacheEntry:
    """A stored upstream payload."""

    key: str
    category: CacheCategory
    payload: Any
    stored_at: datetime | None = field(default=None)


class CacheStore:
    """Thread-safe keyed store of upstream payloads with per-category TTLs.

    Reads never observe a half-written entry: every mutation happens under a
    single lock and payloads are copied on the way in and out.

    Usage:
        ```python
        store = CacheStore(CachePolicy.from_settings(settings))
        key = CacheStore.make_key(CacheCategory.SHORTAGE, "Metformin", limit=10)
        if (payload := store.get(CacheCategory.SHORTAGE, key)) is None:
            payload = await fetch(...)
            store.put(CacheCategory.SHORTAGE, key, payload)
        ```
    """

    # Rough per-entry cost, for observability only
    APPROX_ENTRY_BYTES = 2048

    def __init__(self, policy: CachePolicy | None = None, clock: Clock = utc_now) -> None:
        """Initialize the store.

        Args:
            policy: Category TTL policy (defaults to the standard TTL table)
            clock: Returns the current aware datetime
        """
        self.policy = policy or CachePolicy.from_minutes()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, category: CacheCategory, key: str) -> Any | None:
        """Return a copy of the cached payload, or None on a miss or expiry."""
        ttl = self.policy.ttl_for(category)
        if ttl is None:
            return None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self.is_valid(entry, ttl):
                del self._entries[key]
                logger.debug("cache_entry_expired", cache_key=key)
                return None
            payload = entry.payload

        logger.debug("cache_hit", cache_key=key, category=category.value)
        return copy.deepcopy(payload)

    def put(self, category: CacheCategory, key: str, payload: Any) -> None:
        """Store a payload. A no-op for categories that are never cached."""
        if not self.policy.is_cacheable(category):
            logger.debug("cache_skip_never_cache", cache_key=key, category=category.value)
            return

        entry = CacheEntry(
            key=key,
            category=CacheCategory(category),
            payload=copy.deepcopy(payload),
            stored_at=self._clock(),
        )
        with self._lock:
            self._entries[key] = entry
        logger.debug("cache_set", cache_key=key, category=category.value)

    def is_valid(self, entry: CacheEntry | None, ttl: timedelta | None) -> bool:
        """Check an entry against a TTL.

        False for a missing entry, an entry without a timestamp, a missing
        TTL, or an entry older than the TTL.
        """
        if entry is None or entry.stored_at is None or ttl is None:
            return False
        return self._clock() - entry.stored_at <= ttl

    def cleanup(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if not self.is_valid(entry, self.policy.ttl_for(entry.category))
            ]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        logger.info("cache_cleanup", removed=len(expired), remaining=remaining)
        return len(expired)

    def flush(self) -> int:
        """Drop every entry.

        Returns:
            Number of entries dropped
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("cache_flushed", removed=count)
        return count

    def stats(self) -> dict[str, Any]:
        with self._lock:
            by_category = Counter(entry.category.value for entry in self._entries.values())
            total = len(self._entries)

        return {
            "total_entries": total,
            "approx_memory_bytes": total * self.APPROX_ENTRY_BYTES,
            "entries_by_category": {
                category.value: by_category.get(category.value, 0)
                for category in CacheCategory
            },
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -------------------------------------------------------------------------
    # Cache Key Generators
    # -------------------------------------------------------------------------

    @staticmethod
    def make_key(category: CacheCategory, drug_name: str, **params: Any) -> str:
        """Generate a deterministic cache key.

        Same category, drug and result-shaping parameters = same key.
        The drug name is normalized (lowercase, stripped); parameters are
        sorted so keyword order does not matter.

        Args:
            category: Data category
            drug_name: Drug name or identifier
            **params: Parameters that change the result (limit, field, ...)

        Returns:
            Cache key (e.g., "shortage:a3f2b1c4d5e6f7a8")
        """
        normalized = {"drug": drug_name.lower().strip()}
        for name, value in params.items():
            if value is not None:
                normalized[name] = str(value).strip()

        key_string = "&".join(sorted(f"{k}={v}" for k, v in normalized.items()))
        hash_digest = hashlib.sha256(key_string.encode()).hexdigest()[:16]
        return f"{CacheCategory(category).value}:{hash_digest}"


async def periodic_cleanup(store: CacheStore, interval_seconds: float) -> None:
    """Sweep expired entries forever, every ``interval_seconds``.

    Meant to run as a background task; cancel it on shutdown.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        store.cleanup()
