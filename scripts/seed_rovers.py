"""Seed the rovers and cameras tables.

The API does this on startup when SEED_ON_STARTUP is set; this script is for
workers or fresh databases where the API has not run yet.

Usage:
    python -m scripts.seed_rovers
"""

import asyncio
import logging

from rover_ingest.models.base import Base, create_task_sessionmaker
from rover_ingest.services.seeder import seed_reference_data

logger = logging.getLogger("seed_rovers")


async def seed():
    task_engine, session_factory = create_task_sessionmaker()
    try:
        async with task_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with session_factory() as session:
            created = await seed_reference_data(session)
        logger.info(f"Created {created['rovers']} rovers and {created['cameras']} cameras")
    finally:
        await task_engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    asyncio.run(seed())
