"""
Tests for settings and logging configuration.
"""
import logging

import pytest
from pydantic import ValidationError

from support_console.config import Environment, EscalationSettings, Settings
from support_console.logging_config import configure_logging


@pytest.mark.unit
def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.app_name == "Support Console"
    assert settings.handler_pool == ["2"]
    assert settings.assistant_timeout_seconds == 60.0
    assert settings.ticket_create_max_attempts == 3
    assert settings.database_is_sqlite
    assert not settings.assistant_configured


@pytest.mark.unit
def test_environment_variables(monkeypatch):
    monkeypatch.setenv("ASSISTANT_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("HANDLER_POOL", '["7", "8"]')
    monkeypatch.setenv("ENVIRONMENT", "production")

    settings = Settings(_env_file=None)

    assert settings.assistant_timeout_seconds == 5.0
    assert settings.handler_pool == ["7", "8"]
    assert settings.is_production


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"log_level": "LOUD"},
        {"assistant_timeout_seconds": 0},
        {"handler_pool": ["  "]},
        {"worker_pool_size": 0},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


@pytest.mark.unit
def test_placeholder_key_is_not_configured():
    assert not Settings(_env_file=None, openai_api_key="YOUR_API_KEY_HERE").assistant_configured
    assert Settings(_env_file=None, openai_api_key="sk-live").assistant_configured


@pytest.mark.unit
def test_safe_dict_masks_key():
    settings = Settings(_env_file=None, openai_api_key="sk-secret")

    assert settings.get_safe_dict()["openai_api_key"] == "***"


@pytest.mark.unit
def test_postgres_url_detected():
    settings = Settings(_env_file=None, database_url="postgresql://user:pw@db/support")

    assert settings.database_is_postgresql
    assert not settings.database_is_sqlite


@pytest.mark.unit
def test_escalation_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ESCALATION_WINDOW_SIZE", "3")
    monkeypatch.setenv("ESCALATION_URGENT_KEYWORDS", '["Outage", " down "]')

    settings = EscalationSettings()

    assert settings.window_size == 3
    assert settings.urgent_keywords == ["outage", "down"]
    assert "asap" in settings.elevated_keywords
    assert settings.default_priority == "MEDIUM"


@pytest.mark.unit
def test_escalation_settings_reject_unknown_priority():
    with pytest.raises(ValidationError):
        EscalationSettings(default_priority="whenever")


@pytest.mark.unit
def test_configure_logging_levels(tmp_path):
    log_file = tmp_path / "logs" / "console.log"
    settings = Settings(
        _env_file=None,
        environment=Environment.PRODUCTION,
        log_level="warning",
        log_file=str(log_file),
    )

    try:
        configure_logging(settings)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert any(isinstance(h, logging.FileHandler) for h in root.handlers)
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert log_file.parent.exists()
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.basicConfig(level=logging.WARNING, force=True)


@pytest.mark.unit
def test_configure_logging_debug_in_development():
    settings = Settings(_env_file=None, environment=Environment.DEVELOPMENT, debug=True)

    try:
        configure_logging(settings)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)
    finally:
        logging.basicConfig(level=logging.WARNING, force=True)
