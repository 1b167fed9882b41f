"""Common Pydantic schemas used across the API.

This module provides shared schemas for:
- Error responses (consistent error format)
- Health checks
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from certus.core.results import ErrorDescriptor

# =============================================================================
# Base Configuration
# =============================================================================


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,  # Allow both alias and field name
        str_strip_whitespace=True,  # Strip whitespace from strings
    )


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorDetail(BaseModel):
    """Details of an error response.

    Attributes:
        code: Machine-readable error code (e.g., "VALIDATION_ERROR")
        kind: Error category (validation_error, rate_limited, timeout, ...)
        message: Human-readable error description
        request_id: Correlation ID for tracing (optional)
        details: Additional error context (optional)
    """

    code: str = Field(..., description="Machine-readable error code")
    kind: str | None = Field(None, description="Error category")
    message: str = Field(..., description="Human-readable error description")
    request_id: str | None = Field(
        None, description="Request correlation ID for tracing"
    )
    details: dict[str, Any] | None = Field(None, description="Additional error context")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "VALIDATION_ERROR",
                "kind": "validation_error",
                "message": "Please provide a medication name to search for recalls.",
                "request_id": "abc-123-def-456",
                "details": {"field": "drug_name", "provided_value": ""},
            }
        }
    )

    @classmethod
    def from_descriptor(
        cls, descriptor: ErrorDescriptor, request_id: str | None = None
    ) -> "ErrorDetail":
        return cls(
            code=descriptor.code,
            kind=descriptor.kind,
            message=descriptor.message,
            request_id=request_id,
            details=dict(descriptor.details) or None,
        )


class ErrorResponse(BaseModel):
    """Standard error response wrapper.

    All API errors return this format for consistency.
    """

    error: ErrorDetail


# =============================================================================
# Health Check Schemas
# =============================================================================


class HealthCheckResponse(BaseModel):
    """Health check endpoint response.

    Attributes:
        status: Overall health status
        checks: Individual service health checks
    """

    status: str = Field(..., pattern="^(ok|degraded|error)$")
    checks: dict[str, Any] = Field(
        default_factory=dict, description="Individual service checks"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "ok",
                "checks": {
                    "cache": "ok",
                    "openfda": {"label": {"status": 200, "available": True}},
                },
            }
        }
    )
