"""
Request validation for operations exposed to the presentation layer.
Requests are validated before any side effect happens.

Version: 1.0.0
"""
import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .domain import ImageAttachment

logger = logging.getLogger(__name__)

# ===========================
# Constants
# ===========================

MAX_MESSAGE_LENGTH = 5000
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB
ALLOWED_IMAGE_TYPES = frozenset({"image/png", "image/jpeg", "image/gif", "image/webp"})
ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,100}$")


# ===========================
# Utility Functions
# ===========================

def validate_id_format(value: str, field_name: str = "id") -> str:
    """
    Validate an identifier.

    Only alphanumeric characters, hyphens and underscores are allowed.

    Args:
        value: Identifier to validate
        field_name: Name used in the error message

    Returns:
        Validated identifier

    Raises:
        ValueError: If format is invalid
    """
    if not value:
        raise ValueError(f"{field_name} cannot be empty")

    if not ID_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must contain only alphanumeric characters, "
            "hyphens, and underscores (1-100 characters)"
        )
    return value


def sanitize_text(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Strip control characters and surrounding whitespace.

    An empty result is allowed here; callers decide whether text is required.

    Raises:
        ValueError: If the text is longer than max_length
    """
    text = text.replace("\x00", "")
    text = "".join(ch for ch in text if ch.isprintable() or ch in "\n\t")
    text = re.sub(r"\n{3,}", "\n\n", text).strip()

    if len(text) > max_length:
        raise ValueError(f"text exceeds maximum length: {len(text)} > {max_length}")
    return text


def describe_validation_error(exc: ValidationError) -> str:
    """First readable message of a pydantic validation error."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


# ===========================
# Requests
# ===========================

class ConsoleRequest(BaseModel):
    """Base class for validated console requests."""

    model_config = ConfigDict(extra="forbid")


class StartSessionRequest(ConsoleRequest):
    user_id: str = Field(..., description="Owning user")
    product_id: Optional[str] = Field(None, description="Product the session is about")

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        return validate_id_format(v, "user_id")

    @field_validator("product_id")
    @classmethod
    def validate_product_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_id_format(v, "product_id")


class SubmitTurnRequest(ConsoleRequest):
    """
    One user turn. Text may be empty only when an image is attached.
    """

    session_id: str = Field(..., min_length=1, max_length=36)
    text: str = Field(default="", description="User message text")
    image: Optional[ImageAttachment] = Field(None, description="Optional attached image")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return sanitize_text(v, MAX_MESSAGE_LENGTH)

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: Optional[ImageAttachment]) -> Optional[ImageAttachment]:
        if v is None:
            return v
        if not v.data:
            raise ValueError("image is empty")
        if len(v.data) > MAX_IMAGE_BYTES:
            raise ValueError(f"image exceeds maximum size: {len(v.data)} > {MAX_IMAGE_BYTES}")
        if v.mime_type not in ALLOWED_IMAGE_TYPES:
            raise ValueError(f"unsupported image type: {v.mime_type}")
        return v

    @model_validator(mode="after")
    def require_content(self) -> "SubmitTurnRequest":
        if not self.text and self.image is None:
            raise ValueError("a turn needs text or an image")
        return self


class HandlerReplyRequest(ConsoleRequest):
    """A human handler's reply on a ticket."""

    ticket_id: str = Field(..., min_length=1, max_length=36)
    handler_id: str = Field(..., min_length=1, max_length=100)
    text: str

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        text = sanitize_text(v, MAX_MESSAGE_LENGTH)
        if not text:
            raise ValueError("reply text cannot be empty")
        return text


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "MAX_IMAGE_BYTES",
    "ALLOWED_IMAGE_TYPES",
    "validate_id_format",
    "sanitize_text",
    "describe_validation_error",
    "StartSessionRequest",
    "SubmitTurnRequest",
    "HandlerReplyRequest",
]
