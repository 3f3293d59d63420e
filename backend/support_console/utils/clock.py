"""
Time helpers.
"""
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """New opaque identifier."""
    return str(uuid.uuid4())


__all__ = ["utcnow", "new_id"]
