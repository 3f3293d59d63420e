"""
Domain records and request validation.
"""
from .domain import (
    ChatSession,
    ImageAttachment,
    Message,
    Product,
    SenderRole,
    SessionStatus,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from .requests import (
    HandlerReplyRequest,
    StartSessionRequest,
    SubmitTurnRequest,
    describe_validation_error,
)

__all__ = [
    "ChatSession",
    "ImageAttachment",
    "Message",
    "Product",
    "SenderRole",
    "SessionStatus",
    "Ticket",
    "TicketPriority",
    "TicketStatus",
    "HandlerReplyRequest",
    "StartSessionRequest",
    "SubmitTurnRequest",
    "describe_validation_error",
]
