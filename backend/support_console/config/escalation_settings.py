"""
Escalation-specific configuration.
Holds the urgency vocabulary the priority classifier scans for.

Version: 1.0.0
"""
import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_URGENT_KEYWORDS = [
    "urgent",
    "critical",
    "emergency",
    "broken",
    "not working",
    "error",
    "crash",
]

DEFAULT_ELEVATED_KEYWORDS = [
    "important",
    "asap",
    "quickly",
    "problem",
    "issue",
    "bug",
]


class EscalationSettings(BaseSettings):
    """
    Keyword sets and window size for priority inference.

    Environment variables use the ``ESCALATION_`` prefix, e.g.
    ``ESCALATION_WINDOW_SIZE=3`` or
    ``ESCALATION_URGENT_KEYWORDS='["outage", "down"]'``.
    """

    model_config = SettingsConfigDict(
        env_prefix="ESCALATION_",
        extra="ignore",
        case_sensitive=False,
    )

    urgent_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_URGENT_KEYWORDS),
        description="Any match in the scanned window yields HIGH priority"
    )

    elevated_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ELEVATED_KEYWORDS),
        description="Any match (without an urgent match) yields MEDIUM priority"
    )

    window_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Number of most recent user messages scanned"
    )

    default_priority: str = Field(
        default="MEDIUM",
        description="Priority when no keyword matches"
    )

    @field_validator("urgent_keywords", "elevated_keywords")
    @classmethod
    def normalize_keywords(cls, v: List[str]) -> List[str]:
        """Keywords are matched against lower-cased text."""
        return [k.strip().lower() for k in v if k and k.strip()]

    @field_validator("default_priority")
    @classmethod
    def validate_default_priority(cls, v: str) -> str:
        value = v.strip().upper()
        if value not in {"LOW", "MEDIUM", "HIGH", "CRITICAL"}:
            raise ValueError(f"Invalid default priority: {v}")
        return value


@lru_cache()
def get_escalation_settings() -> EscalationSettings:
    """Cached escalation settings."""
    return EscalationSettings()


__all__ = [
    "EscalationSettings",
    "get_escalation_settings",
    "DEFAULT_URGENT_KEYWORDS",
    "DEFAULT_ELEVATED_KEYWORDS",
]
