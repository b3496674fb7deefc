"""Durable history of multi-rover incremental runs and the metrics built on it.

A run gets its ScraperJobHistory row before the first rover starts, so a
crashed run is still visible as `in_progress` or `failed`. Writes reload the
row by id for the same reason ScraperStateRepository does.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rover_ingest.models import Photo, Rover, ScraperJobHistory, ScraperJobRoverDetails

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = "in_progress"
STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_PERIOD = "7d"


def rover_status(result) -> str:
    """Status of one rover's part of a run."""
    if result.failed_sols:
        return STATUS_PARTIAL
    return STATUS_SUCCESS if result.success else STATUS_FAILED


def run_status(results) -> str:
    if all(r.success for r in results):
        return STATUS_SUCCESS
    if any(r.success for r in results):
        return STATUS_PARTIAL
    return STATUS_FAILED


class JobHistoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, history_id: int) -> ScraperJobHistory | None:
        result = await self.session.execute(
            select(ScraperJobHistory)
            .options(selectinload(ScraperJobHistory.rover_details))
            .where(ScraperJobHistory.id == history_id)
        )
        return result.scalar_one_or_none()

    async def start(self, trigger: str, rovers_attempted: int) -> int:
        history = ScraperJobHistory(
            trigger=trigger,
            job_started_at=datetime.now(timezone.utc),
            total_rovers_attempted=rovers_attempted,
            status=STATUS_IN_PROGRESS,
        )
        self.session.add(history)
        await self.session.commit()
        logger.info(f"Started {trigger} job history {history.id} for {rovers_attempted} rovers")
        return history.id

    async def complete(self, history_id: int, results: list, duration_seconds: float) -> ScraperJobHistory:
        """Write the per-rover details and the run totals."""
        history = await self.get(history_id)
        if history is None:
            raise ValueError(f"Job history {history_id} not found")

        for result in results:
            history.rover_details.append(
                ScraperJobRoverDetails(
                    rover_name=result.rover_name,
                    start_sol=result.start_sol,
                    end_sol=result.end_sol,
                    sols_attempted=result.sols_completed + len(result.failed_sols),
                    sols_succeeded=result.sols_completed,
                    sols_failed=len(result.failed_sols),
                    photos_added=result.photos_added,
                    duration_seconds=int(result.duration_seconds),
                    status=rover_status(result),
                    error_message=result.error_message,
                    failed_sols=list(result.failed_sols),
                )
            )

        failed_rovers = [r.rover_name for r in results if not r.success]
        history.job_completed_at = datetime.now(timezone.utc)
        history.total_duration_seconds = int(duration_seconds)
        history.total_rovers_attempted = len(results)
        history.total_rovers_succeeded = len(results) - len(failed_rovers)
        history.total_photos_added = sum(r.photos_added for r in results)
        history.status = run_status(results)
        history.error_summary = f"Failed rovers: {', '.join(failed_rovers)}" if failed_rovers else None
        await self.session.commit()

        logger.info(
            f"Job history {history_id} {history.status}: {history.total_photos_added} photos, "
            f"{history.total_rovers_succeeded}/{history.total_rovers_attempted} rovers in {history.total_duration_seconds}s"
        )
        return history

    async def fail(self, history_id: int, error_message: str, duration_seconds: float) -> None:
        await self.session.rollback()
        history = await self.get(history_id)
        if history is None:
            return
        history.job_completed_at = datetime.now(timezone.utc)
        history.total_duration_seconds = int(duration_seconds)
        history.status = STATUS_FAILED
        history.error_summary = error_message[:2000]
        await self.session.commit()

    async def list_history(
        self,
        limit: int = 50,
        offset: int = 0,
        rover: str | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> tuple[int, list[ScraperJobHistory]]:
        """Runs newest first, with the total count before paging."""
        filters = []
        if start_date is not None:
            filters.append(ScraperJobHistory.job_started_at >= start_date)
        if end_date is not None:
            filters.append(ScraperJobHistory.job_started_at <= end_date)
        if status:
            filters.append(ScraperJobHistory.status == status.lower())
        if rover:
            filters.append(
                ScraperJobHistory.rover_details.any(
                    func.lower(ScraperJobRoverDetails.rover_name) == rover.lower()
                )
            )

        total = (
            await self.session.execute(select(func.count(ScraperJobHistory.id)).where(*filters))
        ).scalar_one()

        result = await self.session.execute(
            select(ScraperJobHistory)
            .options(selectinload(ScraperJobHistory.rover_details))
            .where(*filters)
            .order_by(ScraperJobHistory.job_started_at.desc(), ScraperJobHistory.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return total, list(result.scalars().all())

    async def metrics(self, period: str = DEFAULT_PERIOD) -> dict:
        """Aggregate run statistics over the last 24h, 7d or 30d."""
        if period not in PERIODS:
            period = DEFAULT_PERIOD
        cutoff = datetime.now(timezone.utc) - PERIODS[period]

        result = await self.session.execute(
            select(ScraperJobHistory)
            .options(selectinload(ScraperJobHistory.rover_details))
            .where(ScraperJobHistory.job_started_at >= cutoff)
        )
        jobs = list(result.scalars().all())

        total_jobs = len(jobs)
        successful = sum(1 for j in jobs if j.status == STATUS_SUCCESS)
        durations = [j.total_duration_seconds for j in jobs if j.total_duration_seconds is not None]

        details_by_rover: dict[str, list[ScraperJobRoverDetails]] = {}
        for job in jobs:
            for detail in job.rover_details:
                details_by_rover.setdefault(detail.rover_name, []).append(detail)

        breakdown = []
        for rover_name in sorted(details_by_rover):
            details = details_by_rover[rover_name]
            breakdown.append({
                "rover_name": rover_name,
                "total_photos": await self._count_photos(rover_name),
                "photos_added_period": sum(d.photos_added for d in details),
                "successful_runs": sum(1 for d in details if d.status == STATUS_SUCCESS),
                "failed_runs": sum(1 for d in details if d.status == STATUS_FAILED),
                "average_duration_seconds": int(sum(d.duration_seconds for d in details) / len(details)),
            })

        return {
            "period": period,
            "total_jobs": total_jobs,
            "successful_jobs": successful,
            "failed_jobs": sum(1 for j in jobs if j.status == STATUS_FAILED),
            "partial_jobs": sum(1 for j in jobs if j.status == STATUS_PARTIAL),
            "success_rate": round(successful / total_jobs * 100, 1) if total_jobs else 0.0,
            "total_photos_added": sum(j.total_photos_added for j in jobs),
            "average_duration_seconds": int(sum(durations) / len(durations)) if durations else 0,
            "rover_breakdown": breakdown,
        }

    async def _count_photos(self, rover_name: str) -> int:
        result = await self.session.execute(
            select(func.count(Photo.id))
            .join(Rover, Photo.rover_id == Rover.id)
            .where(func.lower(Rover.name) == rover_name.lower())
        )
        return result.scalar_one()
