"""
Low-level store errors. Orchestrator components translate these.
"""


class StoreError(Exception):
    """Store unreachable or an operation against it failed."""
    pass


class DuplicateTicketError(StoreError):
    """A ticket already exists for the session."""

    def __init__(self, session_id: str, existing_ticket_id: str = None):
        self.session_id = session_id
        self.existing_ticket_id = existing_ticket_id
        super().__init__(f"Ticket already exists for session {session_id}")


class RecordNotFoundError(StoreError):
    """A referenced session or ticket does not exist."""
    pass


__all__ = ["StoreError", "DuplicateTicketError", "RecordNotFoundError"]
