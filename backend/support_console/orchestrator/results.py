"""
Result type returned by every console operation.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .errors import ErrorCode, SupportConsoleError


def _serialize(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


class Outcome(str, Enum):
    OK = "ok"
    ALREADY_ESCALATED = "already_escalated"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class OperationResult:
    """
    Standardized return type for console operations.

    Attributes:
        success: Whether the operation did what was asked (or it was already done)
        outcome: OK, ALREADY_ESCALATED, CANCELLED or FAILED
        data: Operation-specific payload
        error: Error message if success=False
        error_code: Structured error code
        retryable: Whether retrying the same call may succeed

    Example:
        result = await console.escalate(session_id)
        if result.outcome == Outcome.ALREADY_ESCALATED:
            ...
    """
    success: bool
    outcome: Outcome = Outcome.OK
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    retryable: bool = False

    @classmethod
    def ok(cls, outcome: Outcome = Outcome.OK, **data: Any) -> "OperationResult":
        return cls(success=True, outcome=outcome, data=data)

    @classmethod
    def failed(cls, error: SupportConsoleError, **data: Any) -> "OperationResult":
        return cls(
            success=False,
            outcome=Outcome.FAILED,
            data=data,
            error=error.message,
            error_code=error.error_code,
            retryable=error.retryable,
        )

    @property
    def already_escalated(self) -> bool:
        return self.outcome == Outcome.ALREADY_ESCALATED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {
            "success": self.success,
            "outcome": self.outcome.value,
            "data": {key: _serialize(value) for key, value in self.data.items()},
            "error": self.error,
            "retryable": self.retryable,
        }
        if self.error_code:
            result["error_code"] = self.error_code.value
        return result


__all__ = ["Outcome", "OperationResult"]
