"""Logging setup for command-line entry points."""

import logging

from medsafety.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for a script run.

    Library code only creates module loggers; handlers are installed here.
    """
    resolved = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
