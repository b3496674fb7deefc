#!/usr/bin/env python3
"""Backfill MER (Opportunity / Spirit) imagery from the PDS archive.

Streams each volume's edrindex.tab and inserts every photo not already
stored. Run this once per rover before enabling incremental scrapes, then
move the cursor to the final sol (PUT /api/v1/admin/scraper/state/{rover}
or --set-state) so incremental runs don't re-walk the archive sol by sol.

Usage:
    python -m scripts.scrape_archive opportunity
    python -m scripts.scrape_archive spirit --volume mer2po_0xxx
    python -m scripts.scrape_archive opportunity --set-state
"""

import argparse
import asyncio
import logging
import sys

import rover_ingest.scrapers  # noqa: F401 (registers scrapers)
from rover_ingest.models.base import create_task_sessionmaker
from rover_ingest.scrapers.http import create_nasa_client
from rover_ingest.scrapers.mer import MerArchiveScraper
from rover_ingest.scrapers.registry import build_scraper
from rover_ingest.services.scraper_state_repository import ScraperStateRepository

logger = logging.getLogger("scrape_archive")


async def run(rover: str, volume: str | None, set_state: bool) -> int:
    task_engine, session_factory = create_task_sessionmaker()
    try:
        async with session_factory() as session, create_nasa_client() as client:
            scraper = build_scraper(rover, session, client)
            if not isinstance(scraper, MerArchiveScraper):
                logger.error(f"{rover} is not an archival rover")
                return 2

            if volume:
                inserted = await scraper.scrape_volume(volume)
            else:
                inserted = await scraper.scrape_all()
            logger.info(f"{rover}: {inserted} photos inserted")

            if set_state:
                await ScraperStateRepository(session).reset(rover, scraper.final_sol)
    finally:
        await task_engine.dispose()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Backfill MER imagery from PDS index files")
    parser.add_argument("rover", choices=["opportunity", "spirit"])
    parser.add_argument("--volume", help="Only this volume, e.g. mer1po_0xxx")
    parser.add_argument(
        "--set-state",
        action="store_true",
        help="Move the incremental cursor to the mission's final sol afterwards",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    return asyncio.run(run(args.rover, args.volume, args.set_state))


if __name__ == "__main__":
    sys.exit(main())
