"""
Logging setup for podlink, built on loguru.

Modules call ``get_logger(__name__)`` and log with f-strings; entry points
call ``setup_logging`` once to install the sinks.
"""

import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

logger.configure(extra={"name": "podlink"})


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Install the stderr sink and an optional rotating file sink.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional path for a file sink.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)

    if log_file:
        logger.add(
            log_file,
            level=level.upper(),
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=2,
        )


def get_logger(name: str):
    """Return the shared logger bound to a module name."""
    return logger.bind(name=name)
