#!/usr/bin/env python3
"""Initialize database tables."""

import asyncio
import sys

from loguru import logger

from referral_ledger.config.database import create_engine_from_settings, init_models

# Configure logger for script
logger.remove()
logger.add(sys.stderr, level="INFO")


async def init_database() -> None:
    """Create all database tables."""
    logger.info("Connecting to database...")
    engine = create_engine_from_settings()

    try:
        logger.info("Creating tables (checkfirst=True)...")
        await init_models(engine)
    finally:
        await engine.dispose()

    logger.success("Database tables created successfully!")


if __name__ == "__main__":
    asyncio.run(init_database())
