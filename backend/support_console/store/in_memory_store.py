"""
In-memory conversation store implementation.
Suitable for development, tests and single-process deployments.

Version: 1.0.0
"""
import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from ..schemas.domain import (
    ChatSession,
    Message,
    SenderRole,
    SessionStatus,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from ..utils.clock import new_id, utcnow
from .conversation_store import ConversationStore
from .errors import DuplicateTicketError, RecordNotFoundError

logger = logging.getLogger(__name__)


class InMemoryConversationStore(ConversationStore):
    """
    In-memory implementation of ConversationStore.

    Features:
    - Thread-safe operations using one re-entrant lock
    - Atomic insert-if-absent for tickets (checked and written under the lock)
    - Monotonic per-session message sequence
    - Records are frozen pydantic models, so callers can never mutate stored state

    Limitations:
    - Data lost on restart
    - Not shared across processes
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: "OrderedDict[str, ChatSession]" = OrderedDict()
        self._messages: Dict[str, List[Message]] = {}
        self._tickets: Dict[str, Ticket] = {}
        self._ticket_by_session: Dict[str, str] = {}

        logger.info("InMemoryConversationStore initialized")

    # ===========================
    # Sessions
    # ===========================

    def create_session(self, user_id: str, product_id: Optional[str] = None) -> ChatSession:
        now = utcnow()
        session = ChatSession(
            session_id=new_id(),
            user_id=user_id,
            product_id=product_id,
            status=SessionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._sessions[session.session_id] = session
            self._messages[session.session_id] = []

        logger.debug(f"Created session {session.session_id} for user {user_id}")
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def update_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        handler_id: Optional[str] = None
    ) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False

            # Validate the whole record before storing it
            updated = ChatSession(
                **{
                    **session.model_dump(),
                    "status": status,
                    "handler_id": handler_id,
                    "updated_at": utcnow(),
                }
            )
            self._sessions[session_id] = updated

        logger.debug(f"Session {session_id} status -> {status.value}")
        return True

    def list_sessions_by_user(self, user_id: str) -> List[ChatSession]:
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    # ===========================
    # Messages
    # ===========================

    def append_message(
        self,
        session_id: str,
        role: SenderRole,
        content: str,
        image_ref: Optional[str] = None
    ) -> Message:
        with self._lock:
            if session_id not in self._sessions:
                raise RecordNotFoundError(f"Session {session_id} not found")

            transcript = self._messages[session_id]
            message = Message(
                message_id=new_id(),
                session_id=session_id,
                role=role,
                content=content,
                image_ref=image_ref,
                sequence=len(transcript),
                created_at=utcnow(),
            )
            transcript.append(message)

        return message

    def get_messages(self, session_id: str) -> List[Message]:
        with self._lock:
            return list(self._messages.get(session_id, []))

    # ===========================
    # Tickets
    # ===========================

    def create_ticket(
        self,
        session_id: str,
        handler_id: Optional[str],
        priority: TicketPriority,
        status: TicketStatus = TicketStatus.OPEN
    ) -> Ticket:
        with self._lock:
            if session_id not in self._sessions:
                raise RecordNotFoundError(f"Session {session_id} not found")

            existing_id = self._ticket_by_session.get(session_id)
            if existing_id is not None:
                raise DuplicateTicketError(session_id, existing_id)

            now = utcnow()
            ticket = Ticket(
                ticket_id=new_id(),
                session_id=session_id,
                handler_id=handler_id,
                priority=priority,
                status=status,
                created_at=now,
                updated_at=now,
            )
            self._tickets[ticket.ticket_id] = ticket
            self._ticket_by_session[session_id] = ticket.ticket_id

        logger.debug(f"Created ticket {ticket.ticket_id} for session {session_id}")
        return ticket

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            return self._tickets.get(ticket_id)

    def get_ticket_by_session(self, session_id: str) -> Optional[Ticket]:
        with self._lock:
            ticket_id = self._ticket_by_session.get(session_id)
            return self._tickets.get(ticket_id) if ticket_id else None

    def update_ticket_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        handler_id: Optional[str] = None
    ) -> bool:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                return False

            now = utcnow()
            if status == TicketStatus.RESOLVED:
                resolved_at = now
            elif status == TicketStatus.CLOSED:
                resolved_at = ticket.resolved_at
            else:
                resolved_at = None

            updates: Dict[str, Any] = {
                "status": status,
                "updated_at": now,
                "resolved_at": resolved_at,
            }
            if handler_id is not None:
                updates["handler_id"] = handler_id

            self._tickets[ticket_id] = ticket.model_copy(update=updates)

        logger.debug(f"Ticket {ticket_id} status -> {status.value}")
        return True

    def list_tickets(
        self,
        status: Optional[TicketStatus] = None,
        handler_id: Optional[str] = None
    ) -> List[Ticket]:
        with self._lock:
            tickets = [
                t for t in self._tickets.values()
                if (status is None or t.status == status)
                and (handler_id is None or t.handler_id == handler_id)
            ]
        return sorted(tickets, key=lambda t: t.created_at, reverse=True)

    # ===========================
    # Maintenance
    # ===========================

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "status": "healthy",
                "store_type": "in_memory",
                "sessions": len(self._sessions),
                "messages": sum(len(m) for m in self._messages.values()),
                "tickets": len(self._tickets),
            }

    def clear(self) -> None:
        """Remove everything (tests)."""
        with self._lock:
            self._sessions.clear()
            self._messages.clear()
            self._tickets.clear()
            self._ticket_by_session.clear()


__all__ = ["InMemoryConversationStore"]
