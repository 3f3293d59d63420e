"""
Handler selection policies for escalations.
"""
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..config import HandlerSelection, Settings
from ..schemas.domain import ChatSession

logger = logging.getLogger(__name__)

DEFAULT_HANDLER_ID = "2"


class HandlerSelector(ABC):
    """Chooses the human handler for a session being escalated."""

    @abstractmethod
    def select(self, session: ChatSession) -> Optional[str]:
        """Handler id, or None when nobody is available."""
        pass


class FixedHandlerSelector(HandlerSelector):
    """Always the same handler."""

    def __init__(self, handler_id: str = DEFAULT_HANDLER_ID):
        self.handler_id = handler_id

    def select(self, session: ChatSession) -> Optional[str]:
        return self.handler_id


class RoundRobinHandlerSelector(HandlerSelector):
    """Cycles through a pool of handlers. Thread-safe."""

    def __init__(self, handler_ids: Sequence[str]):
        if not handler_ids:
            raise ValueError("RoundRobinHandlerSelector needs at least one handler")
        self.handler_ids = tuple(handler_ids)
        self._cycle = itertools.cycle(self.handler_ids)
        self._lock = threading.Lock()

    def select(self, session: ChatSession) -> Optional[str]:
        with self._lock:
            return next(self._cycle)


def create_handler_selector(settings: Settings) -> HandlerSelector:
    """Selector configured by ``handler_selection`` and ``handler_pool``."""
    if settings.handler_selection == HandlerSelection.ROUND_ROBIN:
        logger.info(f"Round-robin handler selection over {len(settings.handler_pool)} handlers")
        return RoundRobinHandlerSelector(settings.handler_pool)
    return FixedHandlerSelector(settings.handler_pool[0])


__all__ = [
    "HandlerSelector",
    "FixedHandlerSelector",
    "RoundRobinHandlerSelector",
    "create_handler_selector",
    "DEFAULT_HANDLER_ID",
]
