"""
Ticket lifecycle: acknowledge, reply, resolve and close.

Version: 1.0.0
"""
import logging
from typing import Dict, FrozenSet, Optional, Tuple

from ..schemas.domain import Message, SenderRole, SessionStatus, Ticket, TicketStatus
from ..store.conversation_store import ConversationStore
from ..store.errors import StoreError
from ..store.locks import SessionLockManager
from .errors import InvalidTransition, PersistenceFailure, SupportConsoleError, ValidationError, translate_error

logger = logging.getLogger(__name__)

TICKET_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.RESOLVED}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED}),
    TicketStatus.CLOSED: frozenset(),
}

RESOLVED_NOTICE = "Ticket resolved by {name}"


class TicketLifecycle:
    """
    Guarded ticket status writes.

    Blocking; runs on worker threads under the lock of the ticket's
    session so ticket writes and transcript appends stay ordered.
    """

    def __init__(self, store: ConversationStore, locks: SessionLockManager, lock_timeout: float = 30.0):
        self.store = store
        self.locks = locks
        self.lock_timeout = lock_timeout

    @staticmethod
    def check(ticket: Ticket, target: TicketStatus) -> None:
        if target not in TICKET_TRANSITIONS[ticket.status]:
            raise InvalidTransition("ticket", ticket.status.value, target.value)

    def load(self, ticket_id: str) -> Ticket:
        try:
            ticket = self.store.get_ticket(ticket_id)
        except StoreError as e:
            raise translate_error(e) from e
        if ticket is None:
            raise ValidationError(f"Unknown ticket: {ticket_id}")
        return ticket

    def _write_status(self, ticket: Ticket, target: TicketStatus, handler_id: Optional[str] = None) -> Ticket:
        if not self.store.update_ticket_status(ticket.ticket_id, target, handler_id):
            raise ValidationError(f"Unknown ticket: {ticket.ticket_id}")
        updated = self.store.get_ticket(ticket.ticket_id)
        logger.info(
            f"Ticket {ticket.ticket_id}: {ticket.status.value} -> {target.value}",
            extra={"ticket_id": ticket.ticket_id, "session_id": ticket.session_id},
        )
        return updated

    def _restore(self, ticket: Ticket) -> None:
        """Put a ticket back to a previous status after a failed follow-up write."""
        try:
            self.store.update_ticket_status(ticket.ticket_id, ticket.status, ticket.handler_id)
        except StoreError as e:
            logger.critical(
                f"Failed to restore ticket {ticket.ticket_id} to {ticket.status.value}: {e}",
                extra={"ticket_id": ticket.ticket_id},
            )

    def _run_locked(self, ticket_id: str, operation):
        ticket = self.load(ticket_id)
        try:
            with self.locks.hold(ticket.session_id, self.lock_timeout):
                # Re-read under the lock
                return operation(self.load(ticket_id))
        except SupportConsoleError:
            raise
        except Exception as e:
            raise translate_error(e) from e

    # ===========================
    # Operations
    # ===========================

    def acknowledge(self, ticket_id: str, handler_id: str) -> Ticket:
        """OPEN -> IN_PROGRESS, recording the handler."""
        def operation(ticket: Ticket) -> Ticket:
            self.check(ticket, TicketStatus.IN_PROGRESS)
            return self._write_status(ticket, TicketStatus.IN_PROGRESS, handler_id)

        return self._run_locked(ticket_id, operation)

    def reply(self, ticket_id: str, handler_id: str, text: str) -> Tuple[Ticket, Message]:
        """
        Append a HANDLER message to the ticket's session.

        An OPEN ticket moves to IN_PROGRESS with the reply. Replies are
        rejected once the ticket or its session is closed.

        Returns:
            (ticket, message)
        """
        def operation(ticket: Ticket) -> Tuple[Ticket, Message]:
            if ticket.status == TicketStatus.CLOSED:
                raise InvalidTransition("ticket", ticket.status.value, "reply")

            session = self.store.get_session(ticket.session_id)
            if session is None:
                raise ValidationError(f"Unknown session: {ticket.session_id}")
            if session.status == SessionStatus.CLOSED:
                raise InvalidTransition("session", session.status.value, "reply")

            updated = ticket
            if ticket.status == TicketStatus.OPEN:
                updated = self._write_status(ticket, TicketStatus.IN_PROGRESS, handler_id)

            try:
                message = self.store.append_message(ticket.session_id, SenderRole.HANDLER, text)
            except StoreError:
                if updated is not ticket:
                    self._restore(ticket)
                raise
            return updated, message

        return self._run_locked(ticket_id, operation)

    def resolve(self, ticket_id: str, resolved_by: str) -> Tuple[Ticket, Message]:
        """
        Resolve a ticket and append the SYSTEM audit message.

        Both writes land or neither does: if the message append fails the
        ticket is put back to its previous status.

        Returns:
            (ticket, audit message)
        """
        def operation(ticket: Ticket) -> Tuple[Ticket, Message]:
            self.check(ticket, TicketStatus.RESOLVED)
            updated = self._write_status(ticket, TicketStatus.RESOLVED)
            try:
                message = self.store.append_message(
                    ticket.session_id,
                    SenderRole.SYSTEM,
                    RESOLVED_NOTICE.format(name=resolved_by),
                )
            except StoreError as e:
                self._restore(ticket)
                raise PersistenceFailure(f"Failed to record resolution: {e}") from e
            return updated, message

        return self._run_locked(ticket_id, operation)

    def close(self, ticket_id: str) -> Ticket:
        """RESOLVED -> CLOSED."""
        def operation(ticket: Ticket) -> Ticket:
            self.check(ticket, TicketStatus.CLOSED)
            return self._write_status(ticket, TicketStatus.CLOSED)

        return self._run_locked(ticket_id, operation)


__all__ = ["TicketLifecycle", "TICKET_TRANSITIONS", "RESOLVED_NOTICE"]
