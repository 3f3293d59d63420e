"""
Ticket model for escalated sessions.
"""
from sqlalchemy import Column, DateTime, ForeignKey, String

from ..database import Base
from ..utils.clock import utcnow


class TicketRecord(Base):
    """
    Support ticket raised by escalating a session.

    The unique constraint on ``session_id`` is what makes ticket
    creation an atomic insert-if-absent.
    """
    __tablename__ = "tickets"

    ticket_id = Column(String(36), primary_key=True)
    session_id = Column(
        String(36),
        ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    handler_id = Column(String(100), nullable=False, index=True)

    priority = Column(String(20), nullable=False, default="MEDIUM")
    status = Column(String(20), nullable=False, default="OPEN", index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<TicketRecord(id={self.ticket_id}, session={self.session_id}, status={self.status})>"
