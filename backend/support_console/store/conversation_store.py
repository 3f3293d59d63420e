"""
Abstract conversation store interface.
Defines the persistence contract for sessions, messages and tickets.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
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


class ConversationStore(ABC):
    """
    Abstract base class for conversation storage.

    Methods are blocking and must be safe to call from several worker
    threads. Implementations raise ``StoreError`` subclasses only.
    """

    @abstractmethod
    def create_session(self, user_id: str, product_id: Optional[str] = None) -> ChatSession:
        """
        Create an ACTIVE session.

        Args:
            user_id: Owning user
            product_id: Associated product (optional)

        Returns:
            The new session
        """
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Get a session by ID, or None."""
        pass

    @abstractmethod
    def update_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        handler_id: Optional[str] = None
    ) -> bool:
        """
        Set status and handler in one write.

        Passing ``handler_id=None`` clears the handler.

        Returns:
            True if the session existed and was updated
        """
        pass

    @abstractmethod
    def append_message(
        self,
        session_id: str,
        role: SenderRole,
        content: str,
        image_ref: Optional[str] = None
    ) -> Message:
        """
        Append a message to the session transcript.

        Raises:
            RecordNotFoundError: If the session does not exist
        """
        pass

    @abstractmethod
    def get_messages(self, session_id: str) -> List[Message]:
        """All messages of a session in transcript order."""
        pass

    @abstractmethod
    def create_ticket(
        self,
        session_id: str,
        handler_id: Optional[str],
        priority: TicketPriority,
        status: TicketStatus = TicketStatus.OPEN
    ) -> Ticket:
        """
        Insert a ticket if the session has none.

        Raises:
            DuplicateTicketError: If a ticket already exists for the session
        """
        pass

    @abstractmethod
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    def get_ticket_by_session(self, session_id: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    def update_ticket_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        handler_id: Optional[str] = None
    ) -> bool:
        """
        Set the ticket status, and the handler when one is given.

        ``resolved_at`` is stamped on entering RESOLVED, kept on CLOSED
        and cleared for any other status.

        Returns:
            True if the ticket existed and was updated
        """
        pass

    @abstractmethod
    def list_sessions_by_user(self, user_id: str) -> List[ChatSession]:
        """Sessions of a user, newest first."""
        pass

    @abstractmethod
    def list_tickets(
        self,
        status: Optional[TicketStatus] = None,
        handler_id: Optional[str] = None
    ) -> List[Ticket]:
        """Tickets filtered by status and/or handler, newest first."""
        pass

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        pass

    def close(self) -> None:
        """Release resources (no-op by default)."""
        pass


__all__ = ["ConversationStore"]
