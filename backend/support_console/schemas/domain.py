"""
Domain records exchanged across the conversation store boundary.

Version: 1.0.0
"""
import hashlib
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..utils.clock import utcnow


# ===========================
# Enumerations
# ===========================

class SessionStatus(str, Enum):
    """Chat session states."""
    ACTIVE = "ACTIVE"
    ESCALATED = "ESCALATED"
    CLOSED = "CLOSED"


class SenderRole(str, Enum):
    """Who authored a message."""
    USER = "USER"
    ASSISTANT = "ASSISTANT"
    HANDLER = "HANDLER"
    SYSTEM = "SYSTEM"


class TicketStatus(str, Enum):
    """Ticket states."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class TicketPriority(str, Enum):
    """Ticket priority levels, lowest first."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ===========================
# Records
# ===========================

class DomainModel(BaseModel):
    """Base for store records."""

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
    )


class ChatSession(DomainModel):
    """
    One conversation between a user and the support system.

    The handler is set exactly when the session was escalated: never on an
    ACTIVE session, always on an ESCALATED one, and kept on a CLOSED one
    only if it was escalated before closing.
    """

    session_id: str = Field(..., min_length=1, max_length=36)
    user_id: str = Field(..., min_length=1, max_length=100)
    product_id: Optional[str] = Field(None, max_length=100)
    status: SessionStatus = SessionStatus.ACTIVE
    handler_id: Optional[str] = Field(None, max_length=100)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_handler_assignment(self) -> "ChatSession":
        if self.status == SessionStatus.ACTIVE and self.handler_id is not None:
            raise ValueError("an ACTIVE session cannot have an assigned handler")
        if self.status == SessionStatus.ESCALATED and self.handler_id is None:
            raise ValueError("an ESCALATED session requires an assigned handler")
        return self

    @property
    def is_closed(self) -> bool:
        return self.status == SessionStatus.CLOSED


class Message(DomainModel):
    """An immutable utterance in a session transcript."""

    message_id: str
    session_id: str
    role: SenderRole
    content: str = ""
    image_ref: Optional[str] = None
    sequence: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class Ticket(DomainModel):
    """Support ticket bound to exactly one session."""

    ticket_id: str
    session_id: str
    handler_id: Optional[str] = None
    priority: TicketPriority = TicketPriority.MEDIUM
    status: TicketStatus = TicketStatus.OPEN
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None


class Product(DomainModel):
    """Product a session is scoped to; only what the assistant prompt needs."""

    product_id: str
    name: str
    model_version: Optional[str] = None
    category: Optional[str] = None
    manual: Optional[str] = Field(None, description="Knowledge-base or manual text")


class ImageAttachment(BaseModel):
    """Image attached to a user turn."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., repr=False)
    mime_type: str = "image/png"
    filename: Optional[str] = None

    def reference(self) -> str:
        """Stable reference stored on the message instead of the bytes."""
        digest = hashlib.sha256(self.data).hexdigest()[:16]
        name = self.filename or "image"
        return f"{name}#sha256:{digest}"


__all__ = [
    "SessionStatus",
    "SenderRole",
    "TicketStatus",
    "TicketPriority",
    "ChatSession",
    "Message",
    "Ticket",
    "Product",
    "ImageAttachment",
]
