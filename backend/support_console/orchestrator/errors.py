"""
Error taxonomy surfaced by the orchestrator.

Store and backend errors are translated into these types at the component
boundary; presentation code only ever sees them inside an
``OperationResult``.

Version: 1.0.0
"""
import logging
from enum import Enum
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..assistant.base import AssistantBackendError, AssistantTimeoutError
from ..schemas.requests import describe_validation_error
from ..store.errors import RecordNotFoundError, StoreError
from ..store.locks import LockAcquisitionError
from ..utils.retry import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for console operations."""
    VALIDATION_ERROR = "validation_error"
    TURN_IN_PROGRESS = "turn_in_progress"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    BACKEND_TIMEOUT = "backend_timeout"
    INVALID_TRANSITION = "invalid_transition"
    PERSISTENCE_FAILURE = "persistence_failure"
    HANDLER_UNAVAILABLE = "handler_unavailable"
    UNKNOWN_ERROR = "unknown_error"


class SupportConsoleError(Exception):
    """Base class for orchestrator errors."""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    retryable: bool = False

    def __init__(self, message: str, *, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class ValidationError(SupportConsoleError):
    """Bad input or unknown session/ticket; raised before any side effect."""
    error_code = ErrorCode.VALIDATION_ERROR


class TurnInProgress(ValidationError):
    """The session already has a turn waiting on the assistant."""
    error_code = ErrorCode.TURN_IN_PROGRESS
    retryable = True

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} already has a turn in progress")
        self.session_id = session_id


class BackendUnavailable(SupportConsoleError):
    """The assistant call failed, timed out or returned nothing usable."""
    error_code = ErrorCode.BACKEND_UNAVAILABLE
    retryable = True

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out
        if timed_out:
            self.error_code = ErrorCode.BACKEND_TIMEOUT


class InvalidTransition(SupportConsoleError):
    """Illegal state change; the state is left untouched."""
    error_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Cannot move {entity} from {current} to {target}")
        self.entity = entity
        self.current = current
        self.target = target


class PersistenceFailure(SupportConsoleError):
    """The store failed; the operation left no partial state and can be retried."""
    error_code = ErrorCode.PERSISTENCE_FAILURE
    retryable = True


class HandlerUnavailable(SupportConsoleError):
    """No handler could be assigned; escalation aborted before any write."""
    error_code = ErrorCode.HANDLER_UNAVAILABLE
    retryable = True


def translate_error(exc: BaseException) -> SupportConsoleError:
    """
    Map a lower-level exception to the taxonomy.

    Args:
        exc: Exception raised by a store, backend or validator

    Returns:
        The matching orchestrator error (``exc`` itself if already one)
    """
    if isinstance(exc, SupportConsoleError):
        return exc

    if isinstance(exc, PydanticValidationError):
        return ValidationError(describe_validation_error(exc))

    if isinstance(exc, RecordNotFoundError):
        return ValidationError(str(exc))

    if isinstance(exc, LockAcquisitionError):
        return PersistenceFailure(f"Session is busy: {exc}")

    if isinstance(exc, StoreError):
        return PersistenceFailure(f"Store failure: {exc}")

    if isinstance(exc, AssistantTimeoutError):
        return BackendUnavailable(str(exc), timed_out=True)

    if isinstance(exc, AssistantBackendError):
        return BackendUnavailable(str(exc))

    if isinstance(exc, CircuitBreakerOpenError):
        return BackendUnavailable(f"Assistant temporarily unavailable: {exc}")

    logger.error(f"Unexpected error type {type(exc).__name__}: {exc}", exc_info=exc)
    error = SupportConsoleError(f"Unexpected error: {exc}")
    return error


__all__ = [
    "ErrorCode",
    "SupportConsoleError",
    "ValidationError",
    "TurnInProgress",
    "BackendUnavailable",
    "InvalidTransition",
    "PersistenceFailure",
    "HandlerUnavailable",
    "translate_error",
]
