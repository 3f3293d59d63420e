"""
Interactive surface: what the presentation layer observes.
Only called from the event loop.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..schemas.domain import SenderRole

logger = logging.getLogger(__name__)


class InteractiveSurface(ABC):
    """Observer the console pushes display updates to."""

    @abstractmethod
    def set_busy(self, session_id: str, busy: bool) -> None:
        """Disable (busy) or re-enable submission for a session."""
        pass

    @abstractmethod
    def show_message(self, session_id: str, role: SenderRole, text: str) -> None:
        """Display a transcript line."""
        pass

    @abstractmethod
    def notify(self, session_id: str, text: str) -> None:
        """Display a status notice (not part of the transcript)."""
        pass


@dataclass
class SurfaceState(InteractiveSurface):
    """
    In-process surface for headless callers and tests.

    Records busy flags, displayed lines and notices per session, plus the
    history of busy toggles.
    """
    busy: Dict[str, bool] = field(default_factory=dict)
    transcript: Dict[str, List[Tuple[SenderRole, str]]] = field(default_factory=dict)
    notices: Dict[str, List[str]] = field(default_factory=dict)
    busy_history: Dict[str, List[bool]] = field(default_factory=dict)

    def set_busy(self, session_id: str, busy: bool) -> None:
        self.busy[session_id] = busy
        self.busy_history.setdefault(session_id, []).append(busy)

    def show_message(self, session_id: str, role: SenderRole, text: str) -> None:
        self.transcript.setdefault(session_id, []).append((role, text))

    def notify(self, session_id: str, text: str) -> None:
        self.notices.setdefault(session_id, []).append(text)

    def is_busy(self, session_id: str) -> bool:
        return self.busy.get(session_id, False)

    def lines(self, session_id: str, role: SenderRole = None) -> List[str]:
        return [text for r, text in self.transcript.get(session_id, []) if role is None or r == role]


class LoggingSurface(InteractiveSurface):
    """Surface that only logs; used when no presentation layer is attached."""

    def set_busy(self, session_id: str, busy: bool) -> None:
        logger.debug(f"Session {session_id} busy={busy}")

    def show_message(self, session_id: str, role: SenderRole, text: str) -> None:
        logger.info(f"[{session_id}] {role.value}: {text}")

    def notify(self, session_id: str, text: str) -> None:
        logger.info(f"[{session_id}] notice: {text}")


__all__ = ["InteractiveSurface", "SurfaceState", "LoggingSurface"]
