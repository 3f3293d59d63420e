"""
Message model for storing conversation transcripts.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from ..database import Base
from ..utils.clock import utcnow


class MessageRecord(Base):
    """
    A single utterance in a session. ``sequence`` orders the transcript.
    """
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_messages_session_sequence"),
    )

    message_id = Column(String(36), primary_key=True)
    session_id = Column(
        String(36),
        ForeignKey("chat_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)

    role = Column(String(20), nullable=False)  # USER, ASSISTANT, HANDLER, SYSTEM
    content = Column(Text, nullable=False, default="")
    image_ref = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MessageRecord(id={self.message_id}, session={self.session_id}, role={self.role})>"
