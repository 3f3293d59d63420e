"""
Assistant backend interface.

Version: 1.0.0
"""
from abc import ABC, abstractmethod
from typing import Sequence

from ..schemas.domain import Message


class AssistantBackendError(Exception):
    """The assistant call failed or returned an unusable response."""
    pass


class AssistantTimeoutError(AssistantBackendError):
    """The assistant call did not complete within its timeout."""
    pass


class AssistantBackend(ABC):
    """
    Request/response language-model backend.

    Both calls are blocking and single-shot: they either return non-empty
    text or raise ``AssistantBackendError``. They never retry on their own.
    """

    @property
    def is_ready(self) -> bool:
        return True

    @abstractmethod
    def complete(
        self,
        prompt: str,
        history: Sequence[Message],
        product_context: str,
        timeout: float,
    ) -> str:
        """
        Generate a reply to a text-only turn.

        Args:
            prompt: The user's new message
            history: Prior transcript, oldest first (the new message excluded)
            product_context: Rendered product block for the system prompt
            timeout: Seconds before the call is abandoned

        Returns:
            Reply text

        Raises:
            AssistantTimeoutError: On timeout
            AssistantBackendError: On any other failure
        """
        pass

    @abstractmethod
    def complete_with_image(
        self,
        prompt: str,
        image_bytes: bytes,
        history: Sequence[Message],
        product_context: str,
        timeout: float,
        mime_type: str = "image/png",
    ) -> str:
        """Generate a reply to a turn that carries an image."""
        pass


__all__ = ["AssistantBackend", "AssistantBackendError", "AssistantTimeoutError"]
