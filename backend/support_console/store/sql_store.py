"""
SQLAlchemy conversation store implementation.
Works against SQLite or PostgreSQL through ``Database``.

Version: 1.0.0
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database import Database
from ..models import ChatSessionRecord, MessageRecord, TicketRecord
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
from .errors import DuplicateTicketError, RecordNotFoundError, StoreError

logger = logging.getLogger(__name__)


class SQLConversationStore(ConversationStore):
    """
    SQL implementation of ConversationStore.

    Each method runs in its own transaction. The unique constraint on
    ``tickets.session_id`` makes ticket creation insert-if-absent even
    across processes; ``IntegrityError`` on it becomes
    ``DuplicateTicketError``. Any other ``SQLAlchemyError`` becomes
    ``StoreError``.
    """

    def __init__(self, database: Database, init_schema: bool = True):
        """
        Initialize SQL store.

        Args:
            database: Database owning the engine
            init_schema: Create tables if missing
        """
        self.database = database
        if init_schema:
            try:
                database.init_schema()
            except SQLAlchemyError as e:
                raise StoreError(f"Schema initialization failed: {e}") from e

        logger.info(f"SQLConversationStore initialized ({database.engine.dialect.name})")

    # ===========================
    # Sessions
    # ===========================

    def create_session(self, user_id: str, product_id: Optional[str] = None) -> ChatSession:
        now = utcnow()
        record = ChatSessionRecord(
            session_id=new_id(),
            user_id=user_id,
            product_id=product_id,
            status=SessionStatus.ACTIVE.value,
            handler_id=None,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.database.session_scope() as db:
                db.add(record)
                db.flush()
                session = ChatSession.model_validate(record)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create session for user {user_id}: {e}")
            raise StoreError(f"Failed to create session: {e}") from e

        logger.debug(f"Created session {session.session_id} for user {user_id}")
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        try:
            with self.database.session_scope() as db:
                record = db.get(ChatSessionRecord, session_id)
                return ChatSession.model_validate(record) if record else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load session {session_id}: {e}") from e

    def update_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        handler_id: Optional[str] = None
    ) -> bool:
        try:
            with self.database.session_scope() as db:
                record = db.get(ChatSessionRecord, session_id)
                if record is None:
                    return False

                record.status = status.value
                record.handler_id = handler_id
                record.updated_at = utcnow()

                # Reject a combination that breaks the handler invariant
                ChatSession.model_validate(record)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update session {session_id}: {e}")
            raise StoreError(f"Failed to update session {session_id}: {e}") from e

        logger.debug(f"Session {session_id} status -> {status.value}")
        return True

    def list_sessions_by_user(self, user_id: str) -> List[ChatSession]:
        try:
            with self.database.session_scope() as db:
                records = db.scalars(
                    select(ChatSessionRecord)
                    .where(ChatSessionRecord.user_id == user_id)
                    .order_by(ChatSessionRecord.created_at.desc())
                ).all()
                return [ChatSession.model_validate(r) for r in records]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list sessions for user {user_id}: {e}") from e

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
        try:
            with self.database.session_scope() as db:
                if db.get(ChatSessionRecord, session_id) is None:
                    raise RecordNotFoundError(f"Session {session_id} not found")

                last = db.scalar(
                    select(func.max(MessageRecord.sequence))
                    .where(MessageRecord.session_id == session_id)
                )
                record = MessageRecord(
                    message_id=new_id(),
                    session_id=session_id,
                    sequence=0 if last is None else last + 1,
                    role=role.value,
                    content=content,
                    image_ref=image_ref,
                    created_at=utcnow(),
                )
                db.add(record)
                db.flush()
                return Message.model_validate(record)
        except SQLAlchemyError as e:
            logger.error(f"Failed to append message to session {session_id}: {e}")
            raise StoreError(f"Failed to append message: {e}") from e

    def get_messages(self, session_id: str) -> List[Message]:
        try:
            with self.database.session_scope() as db:
                records = db.scalars(
                    select(MessageRecord)
                    .where(MessageRecord.session_id == session_id)
                    .order_by(MessageRecord.sequence)
                ).all()
                return [Message.model_validate(r) for r in records]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load messages for {session_id}: {e}") from e

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
        now = utcnow()
        try:
            with self.database.session_scope() as db:
                if db.get(ChatSessionRecord, session_id) is None:
                    raise RecordNotFoundError(f"Session {session_id} not found")

                record = TicketRecord(
                    ticket_id=new_id(),
                    session_id=session_id,
                    handler_id=handler_id,
                    priority=priority.value,
                    status=status.value,
                    created_at=now,
                    updated_at=now,
                )
                db.add(record)
                db.flush()
                ticket = Ticket.model_validate(record)
        except IntegrityError as e:
            existing = self.get_ticket_by_session(session_id)
            if existing is not None:
                raise DuplicateTicketError(session_id, existing.ticket_id) from e
            raise StoreError(f"Failed to create ticket: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to create ticket for session {session_id}: {e}")
            raise StoreError(f"Failed to create ticket: {e}") from e

        logger.debug(f"Created ticket {ticket.ticket_id} for session {session_id}")
        return ticket

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        try:
            with self.database.session_scope() as db:
                record = db.get(TicketRecord, ticket_id)
                return Ticket.model_validate(record) if record else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load ticket {ticket_id}: {e}") from e

    def get_ticket_by_session(self, session_id: str) -> Optional[Ticket]:
        try:
            with self.database.session_scope() as db:
                record = db.scalar(
                    select(TicketRecord).where(TicketRecord.session_id == session_id)
                )
                return Ticket.model_validate(record) if record else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load ticket for session {session_id}: {e}") from e

    def update_ticket_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        handler_id: Optional[str] = None
    ) -> bool:
        try:
            with self.database.session_scope() as db:
                record = db.get(TicketRecord, ticket_id)
                if record is None:
                    return False

                now = utcnow()
                record.status = status.value
                record.updated_at = now
                if status == TicketStatus.RESOLVED:
                    record.resolved_at = now
                elif status != TicketStatus.CLOSED:
                    record.resolved_at = None
                if handler_id is not None:
                    record.handler_id = handler_id
        except SQLAlchemyError as e:
            logger.error(f"Failed to update ticket {ticket_id}: {e}")
            raise StoreError(f"Failed to update ticket {ticket_id}: {e}") from e

        logger.debug(f"Ticket {ticket_id} status -> {status.value}")
        return True

    def list_tickets(
        self,
        status: Optional[TicketStatus] = None,
        handler_id: Optional[str] = None
    ) -> List[Ticket]:
        query = select(TicketRecord)
        if status is not None:
            query = query.where(TicketRecord.status == status.value)
        if handler_id is not None:
            query = query.where(TicketRecord.handler_id == handler_id)

        try:
            with self.database.session_scope() as db:
                records = db.scalars(query.order_by(TicketRecord.created_at.desc())).all()
                return [Ticket.model_validate(r) for r in records]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list tickets: {e}") from e

    # ===========================
    # Maintenance
    # ===========================

    def health_check(self) -> Dict[str, Any]:
        healthy = self.database.check_connection()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "store_type": "sql",
            **self.database.get_info(),
        }

    def close(self) -> None:
        self.database.dispose()


__all__ = ["SQLConversationStore"]
