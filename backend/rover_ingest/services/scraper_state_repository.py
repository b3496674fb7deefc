"""Persistence for the per-rover incremental scrape cursor.

Every write reloads the row by rover name: a failed photo batch rolls back
and detaches everything in the shared session, state rows included.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.models import ScraperState

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_IN_PROGRESS = "in_progress"


class ScraperStateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, rover_name: str) -> ScraperState | None:
        result = await self.session.execute(
            select(ScraperState).where(ScraperState.rover_name == rover_name.lower())
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[ScraperState]:
        result = await self.session.execute(select(ScraperState).order_by(ScraperState.rover_name))
        return list(result.scalars().all())

    async def get_or_create(self, rover_name: str) -> ScraperState:
        state = await self.get(rover_name)
        if state is not None:
            return state

        state = ScraperState(
            rover_name=rover_name.lower(),
            last_scraped_sol=0,
            last_scrape_timestamp=datetime.now(timezone.utc),
            last_scrape_status=STATUS_SUCCESS,
            photos_added_last_run=0,
        )
        self.session.add(state)
        await self.session.commit()
        logger.info(f"Created scraper state for {rover_name}")
        return state

    async def mark_in_progress(self, rover_name: str) -> ScraperState:
        state = await self.get_or_create(rover_name)
        state.last_scrape_status = STATUS_IN_PROGRESS
        state.last_scrape_timestamp = datetime.now(timezone.utc)
        state.error_message = None
        await self.session.commit()
        return state

    async def record_run(
        self,
        rover_name: str,
        end_sol: int,
        photos_added: int,
        status: str,
        error_message: str | None = None,
    ) -> ScraperState:
        """Store a run's outcome. The cursor never moves backwards."""
        state = await self.get_or_create(rover_name)
        state.last_scraped_sol = max(state.last_scraped_sol or 0, end_sol)
        state.last_scrape_timestamp = datetime.now(timezone.utc)
        state.last_scrape_status = status
        state.photos_added_last_run = photos_added
        state.error_message = error_message
        await self.session.commit()
        return state

    async def mark_failed(self, rover_name: str, error_message: str) -> ScraperState:
        state = await self.get_or_create(rover_name)
        state.last_scrape_status = STATUS_FAILED
        state.last_scrape_timestamp = datetime.now(timezone.utc)
        state.error_message = error_message
        await self.session.commit()
        return state

    async def fail_stale_runs(self, older_than: timedelta) -> int:
        """Mark runs left `in_progress` by a crashed process as failed."""
        cutoff = datetime.now(timezone.utc) - older_than
        result = await self.session.execute(
            update(ScraperState)
            .where(
                ScraperState.last_scrape_status == STATUS_IN_PROGRESS,
                ScraperState.last_scrape_timestamp < cutoff,
            )
            .values(
                last_scrape_status=STATUS_FAILED,
                error_message="Run did not finish (process stopped)",
            )
        )
        await self.session.commit()
        if result.rowcount:
            logger.warning(f"Marked {result.rowcount} stale in-progress scraper states as failed")
        return result.rowcount

    async def reset(self, rover_name: str, sol: int) -> ScraperState:
        """Operator override: move the cursor to `sol`, in either direction."""
        state = await self.get_or_create(rover_name)
        state.last_scraped_sol = sol
        state.last_scrape_timestamp = datetime.now(timezone.utc)
        state.last_scrape_status = STATUS_SUCCESS
        state.error_message = None
        await self.session.commit()
        logger.info(f"Reset scraper state for {rover_name} to sol {sol}")
        return state
