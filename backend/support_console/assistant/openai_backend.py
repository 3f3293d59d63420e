"""
OpenAI chat-completions backend.

Version: 1.0.0
"""
import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import APIConnectionError, APIError, APITimeoutError, OpenAI, OpenAIError

from ..schemas.domain import Message, SenderRole
from .base import AssistantBackend, AssistantBackendError, AssistantTimeoutError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful customer support assistant for {app_name}. "
    "You help users with technical support questions about their products. "
    "Be professional, friendly, and concise. "
    "If you don't know the answer, suggest escalating to a human agent.\n\n"
    "{product_context}"
)


class OpenAIAssistantBackend(AssistantBackend):
    """
    Assistant backend on the OpenAI SDK.

    Text turns go to ``model``; turns with an image go to ``vision_model``
    with the image inlined as a base64 data URL. SDK retries are disabled:
    a failed turn is reported, never retried here.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-3.5-turbo",
        vision_model: str = "gpt-4o-mini",
        max_tokens: int = 500,
        temperature: float = 0.7,
        base_url: Optional[str] = None,
        default_timeout: float = 60.0,
        app_name: str = "Support Console",
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize the backend.

        Args:
            api_key: OpenAI API key (None leaves the backend not ready)
            model: Model for text turns
            vision_model: Model for image turns
            max_tokens: Reply token limit
            temperature: Sampling temperature
            base_url: API base URL override
            default_timeout: Client-level timeout in seconds
            app_name: Name used in the system prompt
            client: Pre-built client (tests)
        """
        self.model = model
        self.vision_model = vision_model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.app_name = app_name

        if client is not None:
            self._client = client
        elif api_key:
            self._client = OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=default_timeout,
                max_retries=0,
            )
        else:
            self._client = None
            logger.warning("OpenAI API key not configured; assistant backend is not ready")

    @classmethod
    def from_settings(cls, settings) -> "OpenAIAssistantBackend":
        """Build the backend from application settings."""
        api_key = settings.openai_api_key.get_secret_value() if settings.assistant_configured else None
        return cls(
            api_key=api_key,
            model=settings.assistant_model,
            vision_model=settings.assistant_vision_model,
            max_tokens=settings.assistant_max_tokens,
            temperature=settings.assistant_temperature,
            base_url=settings.openai_base_url,
            default_timeout=settings.assistant_timeout_seconds,
            app_name=settings.app_name,
        )

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    # ===========================
    # Message building
    # ===========================

    def _system_message(self, product_context: str) -> Dict[str, Any]:
        return {
            "role": "system",
            "content": SYSTEM_PROMPT.format(app_name=self.app_name, product_context=product_context),
        }

    @staticmethod
    def _history_messages(history: Sequence[Message]) -> List[Dict[str, Any]]:
        messages = []
        for msg in history:
            if msg.role == SenderRole.SYSTEM or not msg.content:
                continue
            role = "user" if msg.role == SenderRole.USER else "assistant"
            messages.append({"role": role, "content": msg.content})
        return messages

    # ===========================
    # Calls
    # ===========================

    def complete(
        self,
        prompt: str,
        history: Sequence[Message],
        product_context: str,
        timeout: float,
    ) -> str:
        messages = [self._system_message(product_context)]
        messages.extend(self._history_messages(history))
        messages.append({"role": "user", "content": prompt})
        return self._create(self.model, messages, timeout)

    def complete_with_image(
        self,
        prompt: str,
        image_bytes: bytes,
        history: Sequence[Message],
        product_context: str,
        timeout: float,
        mime_type: str = "image/png",
    ) -> str:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        text = prompt or "Please describe this image and help me with any issue it shows."

        messages = [self._system_message(product_context)]
        messages.extend(self._history_messages(history))
        messages.append({
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
            ],
        })
        return self._create(self.vision_model, messages, timeout)

    def _create(self, model: str, messages: List[Dict[str, Any]], timeout: float) -> str:
        if self._client is None:
            raise AssistantBackendError("Assistant backend is not configured")

        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=timeout,
            )
        except APITimeoutError as e:
            logger.warning(f"Assistant call timed out after {timeout}s (model={model})")
            raise AssistantTimeoutError(f"Assistant call timed out after {timeout}s") from e
        except APIConnectionError as e:
            logger.error(f"Assistant connection error: {e}")
            raise AssistantBackendError(f"Connection error: {e}") from e
        except APIError as e:
            logger.error(f"Assistant API error: {e}")
            raise AssistantBackendError(f"API error: {e}") from e
        except OpenAIError as e:
            logger.error(f"Assistant client error: {e}")
            raise AssistantBackendError(str(e)) from e

        if not response.choices:
            raise AssistantBackendError("Assistant returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise AssistantBackendError("Assistant returned an empty reply")

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(f"✓ Assistant reply generated ({usage.total_tokens} tokens, model={model})")

        return content.strip()


__all__ = ["OpenAIAssistantBackend", "SYSTEM_PROMPT"]
