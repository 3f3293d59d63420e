"""
Logging setup for entry points.
Library modules only create module loggers; this is called once at startup.
"""
import logging
import os
from typing import List

from .config import Settings


def configure_logging(settings: Settings) -> None:
    """
    Configure root logging from settings.

    Args:
        settings: Application settings
    """
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level, logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file and settings.environment.value != "development":
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, mode="a"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    # Keep third-party chatter at WARNING+
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured (level={logging.getLevelName(level)}, "
        f"environment={settings.environment.value})"
    )


__all__ = ["configure_logging"]
