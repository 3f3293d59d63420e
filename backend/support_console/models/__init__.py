"""
ORM models for the conversation store.
"""
from .chat_session import ChatSessionRecord
from .message import MessageRecord
from .ticket import TicketRecord

__all__ = ["ChatSessionRecord", "MessageRecord", "TicketRecord"]
