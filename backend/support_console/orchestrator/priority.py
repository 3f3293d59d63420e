"""
Priority inference for escalation tickets.
Scans the most recent user messages for urgency vocabulary.

Version: 1.0.0
"""
import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..config.escalation_settings import (
    DEFAULT_ELEVATED_KEYWORDS,
    DEFAULT_URGENT_KEYWORDS,
    EscalationSettings,
)
from ..schemas.domain import Message, SenderRole, TicketPriority

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 5


def _user_texts(history: Iterable[Union[str, Message]]) -> List[str]:
    """Plain strings count as user texts; messages are filtered to USER."""
    texts = []
    for item in history:
        if isinstance(item, Message):
            if item.role == SenderRole.USER and item.content:
                texts.append(item.content)
        elif item:
            texts.append(str(item))
    return texts


def find_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Keywords contained (as substrings) in the lower-cased text."""
    lowered = text.lower()
    return [k for k in keywords if k in lowered]


class PriorityClassifier:
    """
    Maps recent user messages to a ticket priority.

    Any urgent keyword in the window gives HIGH; otherwise any elevated
    keyword gives MEDIUM; otherwise the default, which is MEDIUM.
    Deterministic and free of side effects.
    """

    def __init__(
        self,
        urgent_keywords: Sequence[str] = DEFAULT_URGENT_KEYWORDS,
        elevated_keywords: Sequence[str] = DEFAULT_ELEVATED_KEYWORDS,
        window_size: int = DEFAULT_WINDOW_SIZE,
        default_priority: TicketPriority = TicketPriority.MEDIUM,
    ):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.urgent_keywords: Tuple[str, ...] = tuple(k.lower() for k in urgent_keywords)
        self.elevated_keywords: Tuple[str, ...] = tuple(k.lower() for k in elevated_keywords)
        self.window_size = window_size
        self.default_priority = default_priority

    @classmethod
    def from_settings(cls, settings: Optional[EscalationSettings] = None) -> "PriorityClassifier":
        if settings is None:
            return cls()
        return cls(
            urgent_keywords=settings.urgent_keywords,
            elevated_keywords=settings.elevated_keywords,
            window_size=settings.window_size,
            default_priority=TicketPriority(settings.default_priority),
        )

    def window(self, history: Iterable[Union[str, Message]]) -> List[str]:
        """The last ``window_size`` user texts, oldest first."""
        return _user_texts(history)[-self.window_size:]

    def classify(self, history: Iterable[Union[str, Message]]) -> TicketPriority:
        """
        Classify a conversation.

        Args:
            history: User texts (or messages) in order, most recent last

        Returns:
            Ticket priority
        """
        window = self.window(history)

        for text in window:
            if find_keywords(text, self.urgent_keywords):
                return TicketPriority.HIGH

        for text in window:
            if find_keywords(text, self.elevated_keywords):
                return TicketPriority.MEDIUM

        return self.default_priority

    __call__ = classify


_default_classifier = PriorityClassifier()


def classify_priority(history: Iterable[Union[str, Message]]) -> TicketPriority:
    """Classify with the default vocabulary and window."""
    return _default_classifier.classify(history)


__all__ = ["PriorityClassifier", "classify_priority", "find_keywords", "DEFAULT_WINDOW_SIZE"]
