"""
Loguru sink configuration.
"""

import sys

from loguru import logger

from justhigher.settings import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(settings: Settings) -> None:
    """Replace loguru's default sink with one at ``settings.log_level``."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        format=LOG_FORMAT,
        colorize=not settings.is_production,
        backtrace=not settings.is_production,
        diagnose=not settings.is_production,
    )
    logger.debug(f"Logging configured at {settings.log_level.upper()}")
