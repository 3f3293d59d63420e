"""
Support session orchestrator.
Session and ticket state machines, the escalation transaction, the
assistant response pipeline and the console that ties them together.

Version: 1.0.0
"""
from .channel import ChannelRegistry, CompletionChannel, WorkerOutcome
from .console import SupportConsole, create_support_console
from .errors import (
    BackendUnavailable,
    ErrorCode,
    HandlerUnavailable,
    InvalidTransition,
    PersistenceFailure,
    SupportConsoleError,
    TurnInProgress,
    ValidationError,
    translate_error,
)
from .escalation import EscalationCoordinator, EscalationReceipt
from .handlers import (
    FixedHandlerSelector,
    HandlerSelector,
    RoundRobinHandlerSelector,
    create_handler_selector,
)
from .pipeline import ResponsePipeline, TurnResult
from .priority import PriorityClassifier, classify_priority
from .results import OperationResult, Outcome
from .session_state import SessionStateMachine
from .surface import InteractiveSurface, LoggingSurface, SurfaceState
from .ticket_lifecycle import TicketLifecycle

__all__ = [
    # Console
    "SupportConsole",
    "create_support_console",
    "OperationResult",
    "Outcome",
    # Components
    "ResponsePipeline",
    "TurnResult",
    "EscalationCoordinator",
    "EscalationReceipt",
    "SessionStateMachine",
    "TicketLifecycle",
    "PriorityClassifier",
    "classify_priority",
    "CompletionChannel",
    "ChannelRegistry",
    "WorkerOutcome",
    # Handlers
    "HandlerSelector",
    "FixedHandlerSelector",
    "RoundRobinHandlerSelector",
    "create_handler_selector",
    # Surface
    "InteractiveSurface",
    "SurfaceState",
    "LoggingSurface",
    # Errors
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
