"""Core engine configuration and utilities."""

from medsafety.core.config import Settings, settings
from medsafety.core.logging_config import configure_logging

__all__ = [
    # Config
    "Settings",
    "settings",
    # Logging
    "configure_logging",
]
