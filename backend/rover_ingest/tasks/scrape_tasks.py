"""Scheduled scrape tasks."""

import asyncio
import logging

from rover_ingest.config import get_settings
from rover_ingest.models.base import create_task_sessionmaker
from rover_ingest.scrapers.http import create_nasa_client
from rover_ingest.services.incremental_scraper import IncrementalScraperService
from rover_ingest.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_incremental(rovers: list[str], lookback_sols: int | None) -> tuple[int, list[dict]]:
    task_engine, session_factory = create_task_sessionmaker()
    try:
        async with session_factory() as session, create_nasa_client() as client:
            service = IncrementalScraperService(session, client)
            history_id, results = await service.scrape_all_rovers_with_history(rovers, lookback_sols)
    finally:
        await task_engine.dispose()

    return history_id, [
        {
            "rover": r.rover_name,
            "start_sol": r.start_sol,
            "end_sol": r.end_sol,
            "photos_added": r.photos_added,
            "failed_sols": r.failed_sols,
            "success": r.success,
            "error_message": r.error_message,
        }
        for r in results
    ]


@celery_app.task(
    bind=True,
    name="rover_ingest.tasks.scrape_tasks.run_scheduled_incremental_scrape",
    max_retries=3,
)
def run_scheduled_incremental_scrape(self, rovers: list[str] | None = None, lookback_sols: int | None = None):
    """Daily incremental scrape of the active rovers.

    Each run is written to ScraperJobHistory. Per-sol failures are recorded
    in ScraperState and picked up by the next run's lookback. A run where no
    rover could even start is retried after a cooldown.
    """
    settings = get_settings()
    rovers = rovers or list(settings.active_rovers)
    logger.info(f"Scheduled incremental scrape starting for {', '.join(rovers)}")

    try:
        history_id, results = asyncio.run(_run_incremental(rovers, lookback_sols))
    except Exception as e:
        logger.error(f"Scheduled incremental scrape crashed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=settings.scheduled_retry_cooldown_seconds)

    total = sum(r["photos_added"] for r in results)
    logger.info(
        f"Scheduled incremental scrape done: {total} photos across {len(results)} rovers (history {history_id})"
    )

    if results and not any(r["success"] for r in results):
        errors = "; ".join(f"{r['rover']}: {r['error_message']}" for r in results)
        logger.warning(f"Every rover failed, retrying in {settings.scheduled_retry_cooldown_seconds}s")
        raise self.retry(exc=RuntimeError(errors), countdown=settings.scheduled_retry_cooldown_seconds)

    return {"history_id": history_id, "photos_added": total, "rovers": results}
