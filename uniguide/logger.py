"""
Application logger
Shared rich-backed logger used across services, workers and listeners
"""

import logging
import os

from rich.logging import RichHandler

FORMAT = "%(message)s"

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format=FORMAT,
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)],
)

logger = logging.getLogger("uniguide")


def configure_logging(level: str) -> None:
    """Apply the configured level once settings (including .env) are loaded"""
    logger.setLevel(level.upper())
