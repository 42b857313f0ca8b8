#!/usr/bin/env python3
"""Initialize database tables and seed the IB program defaults."""

import asyncio
import sys

from loguru import logger

from ib_network.config.database import create_engine, create_session_maker
from ib_network.config.logging import setup_logging
from ib_network.models import Base
from ib_network.services.levels import LevelService
from ib_network.services.plans import PlanService
from ib_network.services.settings_service import IBSettingsService


async def init_database() -> None:
    """Create all tables, the default plan, the default ladder and settings."""
    logger.info("Connecting to database...")
    engine = create_engine(echo=False)

    async with engine.begin() as conn:
        logger.info("Creating tables (checkfirst=True)...")
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    session_maker = create_session_maker(engine)
    async with session_maker() as session:
        plan = await PlanService(session).ensure_default_plan()
        logger.info(f"Default commission plan: {plan.name} (id={plan.id})")

        levels = await LevelService(session).initialize_default_levels()
        if levels:
            logger.info(f"Created {len(levels)} default IB levels")
        else:
            logger.info("IB levels already present, ladder left unchanged")

        snapshot = await IBSettingsService(session).load_snapshot()
        logger.info(f"IB settings: {snapshot}")

    await engine.dispose()
    logger.success("Database initialized successfully!")


if __name__ == "__main__":
    setup_logging(log_file="")
    try:
        asyncio.run(init_database())
    except KeyboardInterrupt:
        sys.exit(130)
