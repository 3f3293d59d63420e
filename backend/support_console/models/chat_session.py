"""
Chat session model.
"""
from sqlalchemy import Column, DateTime, String

from ..database import Base
from ..utils.clock import utcnow


class ChatSessionRecord(Base):
    """
    One conversation between a user and the support system, scoped to a product.
    """
    __tablename__ = "chat_sessions"

    session_id = Column(String(36), primary_key=True)
    user_id = Column(String(100), nullable=False, index=True)
    product_id = Column(String(100), nullable=True, index=True)

    status = Column(String(20), nullable=False, default="ACTIVE")  # ACTIVE, ESCALATED, CLOSED
    handler_id = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ChatSessionRecord(id={self.session_id}, user={self.user_id}, status={self.status})>"
