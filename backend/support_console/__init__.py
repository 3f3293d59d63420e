"""
Support Console backend.
Orchestrates AI-assisted support sessions and their escalation to human handlers.
"""

__version__ = "1.0.0"
__author__ = "Customer Support AI Team"

# Application metadata
APP_NAME = "Support Console"
APP_DESCRIPTION = "AI chatbot support sessions with idempotent escalation into handler tickets"

from .config import Settings, get_settings
from .orchestrator import SupportConsole, create_support_console

__all__ = [
    "Settings",
    "get_settings",
    "SupportConsole",
    "create_support_console",
    "APP_NAME",
    "APP_DESCRIPTION",
    "__version__",
]
