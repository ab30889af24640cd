"""
Logging configuration.

Configures the loguru logger: stderr sink plus a rotating file sink.
"""

import sys

from loguru import logger

from referral_ledger.config.settings import settings


def setup_logging(
    level: str | None = None, log_file: str | None = None
) -> None:
    """Configure logger with file rotation."""
    level = level or settings.log_level
    log_file = log_file or settings.log_file

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        log_file,
        rotation="1 day",
        retention="7 days",
        level=level,
        encoding="utf-8",
    )

    logger.info(
        f"Logging configured (level={level}, file={log_file}, "
        f"environment={settings.environment})"
    )
