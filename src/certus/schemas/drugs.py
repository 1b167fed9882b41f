"""Drug query API schemas.

Request bodies are deliberately loose: bounds on names, limits and list
sizes are enforced by the engine's validator, so HTTP callers get the same
error messages as any other caller.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from certus.schemas.common import BaseSchema


class BatchAnalysisRequest(BaseSchema):
    """Request body for batch drug analysis."""

    drug_list: list[Any] = Field(
        ...,
        description="Drug names to analyze (at most 25)",
        json_schema_extra={"example": ["insulin", "metformin", "amoxicillin"]},
    )
    include_trends: bool = Field(
        False, description="Also compute 6-month shortage trends per drug"
    )


class CacheStatsResponse(BaseModel):
    """Cache statistics."""

    total_entries: int = Field(..., ge=0, description="Entries currently stored")
    approx_memory_bytes: int = Field(..., ge=0, description="Approximate memory use")
    entries_by_category: dict[str, int] = Field(
        default_factory=dict, description="Entry count per data category"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_entries": 3,
                "approx_memory_bytes": 6144,
                "entries_by_category": {
                    "drug_label": 1,
                    "shortage": 2,
                    "recall": 0,
                    "adverse_event": 0,
                    "serious_adverse_event": 0,
                },
            }
        }
    )


class CacheCleanupResponse(CacheStatsResponse):
    """Cache statistics after an expiry sweep."""

    entries_removed: int = Field(..., ge=0, description="Expired entries removed")
