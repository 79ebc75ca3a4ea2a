"""Structured results returned across the engine boundary."""

from dataclasses import dataclass, field
from typing import Any

from src.services.errors import DistributionError


@dataclass(frozen=True)
class Actor:
    """User performing an operation, injected explicitly into every call."""

    id: int | None


@dataclass
class DistributionResult:
    """Discriminated result: ``success`` plus payload or failure description."""

    success: bool
    message: str | None = None
    code: str | None = None
    severity: str | None = None
    failed_step: str | None = None
    completed_steps: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    http_status: int = 200
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None, message: str | None = None) -> "DistributionResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def from_error(cls, error: DistributionError) -> "DistributionResult":
        return cls(
            success=False,
            message=error.message,
            code=error.code,
            severity=error.severity.value,
            failed_step=getattr(error, "failed_step", None),
            completed_steps=list(getattr(error, "completed_steps", [])),
            details=error.details,
            http_status=error.http_status,
        )


__all__ = ["Actor", "DistributionResult"]
