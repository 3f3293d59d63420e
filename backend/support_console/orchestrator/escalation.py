"""
Escalation coordinator.
Turns an ACTIVE session into exactly one handled ticket.

Version: 1.0.0
"""
import functools
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from ..schemas.domain import ChatSession, Message, SessionStatus, Ticket, TicketStatus
from ..store.conversation_store import ConversationStore
from ..store.errors import DuplicateTicketError, StoreError
from ..store.locks import SessionLockManager
from ..utils.clock import new_id
from ..utils.retry import persistence_retrying
from ..utils.workers import WorkerPool
from .channel import ChannelRegistry, WorkerOutcome
from .errors import (
    HandlerUnavailable,
    InvalidTransition,
    PersistenceFailure,
    SupportConsoleError,
    ValidationError,
    translate_error,
)
from .handlers import HandlerSelector
from .priority import PriorityClassifier
from .session_state import SessionStateMachine
from .surface import InteractiveSurface

logger = logging.getLogger(__name__)

REQUESTING_NOTICE = "Requesting Live Support Agent..."
CONNECTED_NOTICE = "Connected to Live Support Agent. Ticket #{ticket_id} (Priority: {priority})"
ALREADY_ESCALATED_NOTICE = "This chat has already been escalated. Ticket #{ticket_id}"
FAILED_NOTICE = "Failed to connect to agent. Please try again."
REJECTED_NOTICE = "Cannot request a live agent: {reason}"

History = Sequence[Union[str, Message]]


@dataclass(frozen=True)
class EscalationReceipt:
    """Ticket bound to the session, and whether this call created it."""
    ticket: Ticket
    already_escalated: bool = False

    @property
    def ticket_id(self) -> str:
        return self.ticket.ticket_id

    @property
    def priority(self):
        return self.ticket.priority


class EscalationCoordinator:
    """
    Idempotent, race-free escalation.

    The whole check-transition-create sequence runs on a worker under the
    session lock, and the store's insert-if-absent backs it up across
    processes. If the ticket cannot be created after retries, the session
    is put back to ACTIVE before the failure is reported.
    """

    def __init__(
        self,
        store: ConversationStore,
        locks: SessionLockManager,
        state_machine: SessionStateMachine,
        classifier: PriorityClassifier,
        handler_selector: HandlerSelector,
        pool: WorkerPool,
        channels: ChannelRegistry,
        surface: InteractiveSurface,
        max_attempts: int = 3,
        retry_wait: float = 0.2,
        lock_timeout: float = 30.0,
    ):
        self.store = store
        self.locks = locks
        self.state_machine = state_machine
        self.classifier = classifier
        self.handler_selector = handler_selector
        self.pool = pool
        self.channels = channels
        self.surface = surface
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait
        self.lock_timeout = lock_timeout

    # ===========================
    # Blocking transaction (worker thread)
    # ===========================

    def escalate_blocking(self, session_id: str, history: Optional[History] = None) -> EscalationReceipt:
        """
        Escalate a session. Safe to call concurrently from several threads.

        Raises:
            ValidationError: Unknown session
            InvalidTransition: Session is not ACTIVE (and has no ticket)
            HandlerUnavailable: No handler could be assigned
            PersistenceFailure: Store failure; the session is left ACTIVE
        """
        try:
            with self.locks.hold(session_id, self.lock_timeout):
                return self._escalate_locked(session_id, history)
        except SupportConsoleError:
            raise
        except Exception as e:
            raise translate_error(e) from e

    def _escalate_locked(self, session_id: str, history: Optional[History]) -> EscalationReceipt:
        existing = self.store.get_ticket_by_session(session_id)
        if existing is not None:
            logger.info(
                f"Session {session_id} already escalated (ticket {existing.ticket_id})",
                extra={"session_id": session_id, "ticket_id": existing.ticket_id},
            )
            return EscalationReceipt(ticket=existing, already_escalated=True)

        session = self.state_machine.load(session_id)
        self.state_machine.check(session, SessionStatus.ESCALATED)

        handler_id = self.handler_selector.select(session)
        if not handler_id:
            raise HandlerUnavailable(f"No handler available for session {session_id}")

        if history is None:
            history = self.store.get_messages(session_id)

        self.state_machine.transition(session_id, SessionStatus.ESCALATED, handler_id)
        priority = self.classifier.classify(history)

        try:
            ticket = self._create_ticket(session, handler_id, priority)
        except DuplicateTicketError as e:
            # Another writer got there first (e.g. another process on the same store)
            ticket = self.store.get_ticket_by_session(session_id)
            if ticket is None:
                self._rollback(session_id)
                raise PersistenceFailure(f"Ticket for session {session_id} vanished") from e
            return EscalationReceipt(ticket=ticket, already_escalated=True)
        except PersistenceFailure:
            self._rollback(session_id)
            raise

        logger.info(
            f"✓ Session {session_id} escalated: ticket {ticket.ticket_id} "
            f"(priority={ticket.priority.value}, handler={handler_id})",
            extra={"session_id": session_id, "ticket_id": ticket.ticket_id},
        )
        return EscalationReceipt(ticket=ticket)

    def _create_ticket(self, session: ChatSession, handler_id: str, priority) -> Ticket:
        def attempt() -> Ticket:
            try:
                return self.store.create_ticket(session.session_id, handler_id, priority, TicketStatus.OPEN)
            except DuplicateTicketError:
                raise
            except StoreError as e:
                raise PersistenceFailure(f"Ticket creation failed: {e}") from e

        retrying = persistence_retrying(self.max_attempts, self.retry_wait, (PersistenceFailure,))
        return retrying(attempt)

    def _rollback(self, session_id: str) -> None:
        try:
            self.state_machine.revert_escalation(session_id)
        except SupportConsoleError as e:
            logger.critical(
                f"Session {session_id} left ESCALATED without a ticket; rollback failed: {e}",
                extra={"session_id": session_id},
            )
            raise

    # ===========================
    # Async entry point
    # ===========================

    async def escalate(self, session_id: str, conversation_history: Optional[History] = None) -> EscalationReceipt:
        """
        Escalate on a worker and apply the result on the loop.

        Args:
            session_id: Session to escalate
            conversation_history: Messages (or user texts) to classify;
                the stored transcript when omitted

        Returns:
            EscalationReceipt (``already_escalated`` set on repeat calls)
        """
        channel = self.channels.get(session_id)
        op_id = new_id()
        history = list(conversation_history) if conversation_history is not None else None

        self.surface.notify(session_id, REQUESTING_NOTICE)
        future = channel.expect(op_id, functools.partial(self._apply, session_id))
        worker = self.pool.submit(self.escalate_blocking, session_id, history)
        worker.add_done_callback(functools.partial(channel.deliver_future, op_id))
        return await future

    async def _apply(self, session_id: str, outcome: WorkerOutcome) -> EscalationReceipt:
        if outcome.cancelled:
            self.surface.notify(session_id, FAILED_NOTICE)
            raise PersistenceFailure("Escalation was cancelled before it completed")

        if outcome.error is not None:
            error = translate_error(outcome.error)
            if isinstance(error, (InvalidTransition, ValidationError)):
                self.surface.notify(session_id, REJECTED_NOTICE.format(reason=error.message))
            else:
                self.surface.notify(session_id, FAILED_NOTICE)
            raise error

        receipt: EscalationReceipt = outcome.value
        if receipt.already_escalated:
            self.surface.notify(session_id, ALREADY_ESCALATED_NOTICE.format(ticket_id=receipt.ticket_id))
        else:
            self.surface.notify(
                session_id,
                CONNECTED_NOTICE.format(ticket_id=receipt.ticket_id, priority=receipt.priority.value),
            )
        return receipt


__all__ = [
    "EscalationCoordinator",
    "EscalationReceipt",
    "REQUESTING_NOTICE",
    "CONNECTED_NOTICE",
    "ALREADY_ESCALATED_NOTICE",
    "FAILED_NOTICE",
]
