"""
Logging setup.

Configures the loguru logger: stderr sink plus an optional rotating file sink.
"""

import sys

from loguru import logger

from ib_network.config.settings import settings


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure logger sinks with file rotation.

    Args:
        level: Minimum level (defaults to settings.log_level)
        log_file: File sink path; None uses settings.log_file, "" disables it
    """
    level = level or settings.log_level
    log_file = log_file if log_file is not None else settings.log_file

    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level,
            encoding="utf-8",
        )

    logger.info(f"Logging configured (level={level})")
