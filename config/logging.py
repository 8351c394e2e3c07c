"""Loguru sink configuration for the engine and CLI."""

import sys

from loguru import logger


def configure_logging(level: str = "INFO", serialize: bool = False):
    """
    Replace loguru's default sink with a single stderr sink.

    Args:
        level: Minimum level to emit
        serialize: Emit JSON records instead of formatted lines
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        serialize=serialize,
        backtrace=False,
        diagnose=False,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan> - <level>{message}</level>"
    )
