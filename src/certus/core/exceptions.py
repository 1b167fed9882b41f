"""Custom exception hierarchy for Certus.

Exceptions are raised inside the engine and converted to ``ErrorDescriptor``
values at the public boundary, so every failure carries:
- A machine-readable code and kind
- A consistent HTTP status code mapping
- Context (drug name, operation, offending value) for the caller

Usage:
    from certus.core.exceptions import ValidationError

    raise ValidationError("limit must be between 1 and 50", field="limit", value=99)
"""

from typing import Any

from certus.core.results import ErrorDescriptor


class CertusError(Exception):
    """Base exception for all Certus errors.

    Attributes:
        code: Machine-readable error code (e.g., "VALIDATION_ERROR")
        kind: Error category shared with ``ErrorDescriptor.kind``
        message: Human-readable error message
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    code: str = "INTERNAL_ERROR"
    kind: str = "internal_error"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_descriptor(self, **context: Any) -> ErrorDescriptor:
        """Convert to an ``ErrorDescriptor``, merging caller context.

        Args:
            **context: Extra details such as ``drug_name`` or ``operation``

        Returns:
            ErrorDescriptor for the Result convention
        """
        details = {**self.details, **{k: v for k, v in context.items() if v is not None}}
        return ErrorDescriptor(
            code=self.code,
            kind=self.kind,
            message=self.message,
            status_code=self.status_code,
            details=details,
        )

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert exception to API error response format.

        Args:
            request_id: Request correlation ID

        Returns:
            Error response dictionary
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if request_id:
            error["request_id"] = request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(CertusError):
    """Raised when caller input is malformed or out of bounds.

    Always raised before any network call and never retried.
    """

    code: str = "VALIDATION_ERROR"
    kind: str = "validation_error"
    message: str = "Validation error"
    status_code: int = 400

    _MISSING = object()

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        value: Any = _MISSING,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with optional field information.

        Args:
            message: Override default message
            field: Name of the offending parameter
            value: The rejected value, echoed back to the caller
            details: Additional error details
        """
        if details is None:
            details = {}
        if field:
            details["field"] = field
        if value is not self._MISSING:
            details["provided_value"] = value
        super().__init__(message=message, details=details if details else None)


# =============================================================================
# Upstream (openFDA) Errors
# =============================================================================


class FetchError(CertusError):
    """Base class for failed upstream fetches.

    Attributes:
        upstream_status: HTTP status returned by openFDA, if any
        endpoint: openFDA endpoint path that was queried
    """

    code: str = "UPSTREAM_ERROR"
    kind: str = "upstream_error"
    message: str = "openFDA request failed"
    status_code: int = 502

    def __init__(
        self,
        message: str | None = None,
        kind: str | None = None,
        upstream_status: int | None = None,
        endpoint: str | None = None,
    ) -> None:
        if kind:
            self.kind = kind
        self.upstream_status = upstream_status
        self.endpoint = endpoint
        details: dict[str, Any] = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message=message, details=details if details else None)


class UpstreamTransientError(FetchError):
    """Timeout, 5xx or network failure talking to openFDA.

    Surfaced to the caller but never retried by the engine.
    """

    code: str = "UPSTREAM_TRANSIENT_ERROR"
    kind: str = "upstream_error"
    message: str = "openFDA is temporarily unavailable"

    TRANSIENT_KINDS = ("timeout", "upstream_error", "network_error")

    def __init__(
        self,
        message: str | None = None,
        kind: str = "upstream_error",
        upstream_status: int | None = None,
        endpoint: str | None = None,
    ) -> None:
        if kind not in self.TRANSIENT_KINDS:
            raise ValueError(f"Unknown transient error kind: {kind}")
        if kind == "timeout":
            self.status_code = 504
        super().__init__(
            message=message,
            kind=kind,
            upstream_status=upstream_status,
            endpoint=endpoint,
        )


class RateLimitedError(FetchError):
    """openFDA answered 429; callers should back off."""

    code: str = "RATE_LIMITED"
    kind: str = "rate_limited"
    message: str = "openFDA rate limit exceeded"
    status_code: int = 429

    def __init__(self, message: str | None = None, endpoint: str | None = None) -> None:
        super().__init__(message=message, upstream_status=429, endpoint=endpoint)
