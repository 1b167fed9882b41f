"""Result convention returned by every public engine operation.

Operations never raise across the public boundary. They return a ``Result``
holding either the success payload or an ``ErrorDescriptor``.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ErrorDescriptor:
    """Typed, serializable description of a failed operation.

    Attributes:
        code: Machine-readable error code (e.g., "VALIDATION_ERROR")
        kind: Error category (validation_error, rate_limited, timeout,
            upstream_error, network_error, internal_error)
        message: Human-readable error message
        status_code: HTTP status code the transport layer should use
        details: Context such as the drug name, operation and invalid value
    """

    code: str
    kind: str
    message: str
    status_code: int = 500
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        data: dict[str, Any] = {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
        }
        if self.details:
            data["details"] = dict(self.details)
        return data


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success payload or typed error, never both."""

    data: T | None = None
    error: ErrorDescriptor | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> "Result[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, error: ErrorDescriptor) -> "Result[T]":
        return cls(error=error)
