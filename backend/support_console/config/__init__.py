"""
Application configuration.
Settings are read from the environment (and an optional .env file) via pydantic-settings.

Version: 1.0.0
"""
import logging
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .escalation_settings import EscalationSettings, get_escalation_settings

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class HandlerSelection(str, Enum):
    """Policy used to pick the human handler for an escalation."""
    FIXED = "fixed"
    ROUND_ROBIN = "round_robin"


class Settings(BaseSettings):
    """
    Support console settings.

    Every component receives its settings explicitly; nothing in the
    orchestrator reads this module at import time.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ===========================
    # Application
    # ===========================

    app_name: str = Field(
        default="Support Console",
        description="Application name shown in user-facing notices"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )

    log_file: Optional[str] = Field(
        default="logs/support_console.log",
        description="Log file used outside development (None disables it)"
    )

    # ===========================
    # Database
    # ===========================

    database_url: str = Field(
        default="sqlite:///./data/support_console.db",
        description="SQLAlchemy database URL"
    )

    database_echo: bool = Field(
        default=False,
        description="Echo SQL statements"
    )

    database_pool_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Connection pool size (PostgreSQL)"
    )

    database_pool_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Connection pool overflow (PostgreSQL)"
    )

    database_pool_timeout: int = Field(
        default=30,
        ge=1,
        description="Seconds to wait for a pooled connection"
    )

    database_pool_recycle: int = Field(
        default=3600,
        ge=60,
        description="Seconds before a pooled connection is recycled"
    )

    # ===========================
    # Assistant backend
    # ===========================

    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        description="OpenAI API key"
    )

    openai_base_url: Optional[str] = Field(
        default=None,
        description="Override for the OpenAI API base URL"
    )

    assistant_model: str = Field(
        default="gpt-3.5-turbo",
        description="Model used for text-only turns"
    )

    assistant_vision_model: str = Field(
        default="gpt-4o-mini",
        description="Vision-capable model used for turns with an attached image"
    )

    assistant_max_tokens: int = Field(
        default=500,
        ge=1,
        le=16000,
        description="Maximum tokens in an assistant reply"
    )

    assistant_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature"
    )

    assistant_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout applied to every assistant call"
    )

    backend_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive backend failures before the circuit opens"
    )

    backend_recovery_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds the circuit stays open before a trial call"
    )

    # ===========================
    # Concurrency
    # ===========================

    worker_pool_size: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Threads available for store and backend calls"
    )

    session_lock_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Maximum wait for a per-session write lock"
    )

    # ===========================
    # Escalation
    # ===========================

    ticket_create_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts at creating the escalation ticket before rolling back"
    )

    ticket_create_retry_wait_seconds: float = Field(
        default=0.2,
        ge=0.0,
        description="Wait between ticket creation attempts"
    )

    handler_selection: HandlerSelection = Field(
        default=HandlerSelection.FIXED,
        description="Handler selection policy"
    )

    handler_pool: List[str] = Field(
        default_factory=lambda: ["2"],
        description="Handler ids eligible for escalations"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("handler_pool")
    @classmethod
    def validate_handler_pool(cls, v: List[str]) -> List[str]:
        """Handler ids must be non-empty strings."""
        cleaned = [str(h).strip() for h in v if str(h).strip()]
        if not cleaned:
            raise ValueError("handler_pool must contain at least one handler id")
        return cleaned

    # ===========================
    # Derived properties
    # ===========================

    @property
    def database_is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def database_is_postgresql(self) -> bool:
        return self.database_url.startswith(("postgresql", "postgres"))

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def assistant_configured(self) -> bool:
        """True when an API key other than the placeholder is present."""
        if self.openai_api_key is None:
            return False
        key = self.openai_api_key.get_secret_value()
        return bool(key) and key != "YOUR_API_KEY_HERE"

    def get_safe_dict(self) -> dict:
        """Settings as a dict with secrets masked, for logging."""
        data = self.model_dump()
        if data.get("openai_api_key"):
            data["openai_api_key"] = "***"
        return data


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance for entry points."""
    return Settings()


__all__ = [
    "Settings",
    "Environment",
    "HandlerSelection",
    "EscalationSettings",
    "get_settings",
    "get_escalation_settings",
]
