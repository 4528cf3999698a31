"""
Common Models
=============

Tagged operation results and shared response models.

Version: 0.1.0
"""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from taxproof.errors import ErrorKind, TaxProofError


T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Stable error kind with a human-readable message."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] | None = None


class OperationResult(BaseModel, Generic[T]):
    """
    Tagged result of an exposed operation.

    Exactly one of `data` and `error` is meaningful, selected by `success`.
    `warnings` carries non-fatal kinds such as weak_verification.
    """

    success: bool = True
    data: T | None = None
    error: ErrorDetail | None = None
    warnings: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def ok(cls, data: Any = None, warnings: list[str] | None = None) -> "OperationResult":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(cls, error: TaxProofError) -> "OperationResult":
        return cls(success=False, error=ErrorDetail(**error.to_dict()))


class HealthResponse(BaseModel):
    """Service health check response."""

    status: str = "healthy"
    service: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Component health
    components: dict[str, dict[str, Any]] = Field(default_factory=dict)