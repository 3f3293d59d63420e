"""
Conversation store package.
Persistence for sessions, messages and tickets behind one interface.

Version: 1.0.0
"""
from .conversation_store import ConversationStore
from .errors import DuplicateTicketError, RecordNotFoundError, StoreError
from .in_memory_store import InMemoryConversationStore
from .locks import LockAcquisitionError, SessionLockManager
from .sql_store import SQLConversationStore


def create_conversation_store(
    store_type: str = "in_memory",
    **kwargs
) -> ConversationStore:
    """
    Factory function to create a conversation store.

    Args:
        store_type: Type of store ('in_memory' or 'sql')
        **kwargs: Store-specific configuration

    Returns:
        ConversationStore instance

    Examples:
        # In-memory store
        store = create_conversation_store('in_memory')

        # SQL store from a URL or an existing Database
        store = create_conversation_store('sql', url='sqlite:///./data/console.db')
        store = create_conversation_store('sql', database=database)
    """
    if store_type == "in_memory":
        return InMemoryConversationStore(**kwargs)

    elif store_type == "sql":
        from ..database import Database

        database = kwargs.pop("database", None)
        if database is None:
            settings = kwargs.pop("settings", None)
            url = kwargs.pop("url", None)
            if url is not None:
                database = Database(url)
            elif settings is not None:
                database = Database.from_settings(settings)
            else:
                raise ValueError("SQL store needs a database, url or settings")
        return SQLConversationStore(database, **kwargs)

    else:
        raise ValueError(f"Unknown store type: {store_type}")


__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "SQLConversationStore",
    "StoreError",
    "DuplicateTicketError",
    "RecordNotFoundError",
    "SessionLockManager",
    "LockAcquisitionError",
    "create_conversation_store",
]
