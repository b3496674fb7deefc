"""Admin-triggered scrape jobs running as background asyncio tasks.

Each trigger registers a job with the tracker, spawns a task and returns the
job right away. Tasks open their own database session and HTTP client, so
they outlive the request that started them.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.config import Settings, get_settings
from rover_ingest.errors import UnknownRoverError, classify_error, concise_message
from rover_ingest.scrapers import registry
from rover_ingest.scrapers.base import BaseScraper
from rover_ingest.scrapers.http import create_nasa_client
from rover_ingest.services.cancellation import CancellationToken
from rover_ingest.services.incremental_scraper import IncrementalScraperService
from rover_ingest.services.job_history_repository import JobHistoryRepository
from rover_ingest.services.job_tracker import ScraperJob, ScraperJobTracker
from rover_ingest.services.scraper_state_repository import STATUS_SUCCESS, ScraperStateRepository

logger = logging.getLogger(__name__)

JobWork = Callable[[ScraperJob, AsyncSession, httpx.AsyncClient, CancellationToken], Awaitable[None]]


def _default_session_factory():
    from rover_ingest.models.base import AsyncSessionLocal
    return AsyncSessionLocal()


class AdminScraperTriggerService:

    def __init__(
        self,
        tracker: ScraperJobTracker | None = None,
        session_factory: Callable[[], AsyncSession] | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        settings: Settings | None = None,
    ):
        self.tracker = tracker or ScraperJobTracker()
        self.session_factory = session_factory or _default_session_factory
        self.client_factory = client_factory or create_nasa_client
        self.settings = settings or get_settings()
        self._shutdown_token = CancellationToken()
        self._tasks: set[asyncio.Task] = set()

    def trigger_incremental(self, lookback_sols: int | None = None) -> ScraperJob:
        job = self.tracker.start_job(
            "incremental", "all", lookback_sols=lookback_sols, parent_token=self._shutdown_token
        )
        self._spawn(job, self._run_incremental)
        return job

    def trigger_sol(self, rover: str, sol: int) -> ScraperJob:
        rover = self._validate_rover(rover)
        if sol < 0:
            raise ValueError("sol must be >= 0")
        job = self.tracker.start_job("sol", rover, sol, sol, parent_token=self._shutdown_token)

        async def work(job, session, client, token):
            scraper = registry.build_scraper(rover, session, client, self.settings)
            await self._scrape_sols(job, scraper, range(sol, sol + 1), 0, token)

        self._spawn(job, work)
        return job

    def trigger_range(self, rover: str, start_sol: int, end_sol: int, delay_seconds: float | None = None) -> ScraperJob:
        rover = self._validate_rover(rover)
        if start_sol < 0 or end_sol < start_sol:
            raise ValueError("Invalid sol range: need 0 <= start_sol <= end_sol")
        scraper_class = registry.get_scraper_class(rover)
        if not scraper_class.is_active and end_sol - start_sol + 1 > self.settings.archive_window_max_sols:
            raise ValueError(
                f"Archival ranges are limited to {self.settings.archive_window_max_sols} sols; "
                f"use a full scrape for {rover}"
            )
        delay = self.settings.sol_delay_seconds if delay_seconds is None else delay_seconds
        job = self.tracker.start_job("range", rover, start_sol, end_sol, parent_token=self._shutdown_token)

        async def work(job, session, client, token):
            scraper = registry.build_scraper(rover, session, client, self.settings)
            await self._scrape_sols(job, scraper, range(start_sol, end_sol + 1), delay, token)

        self._spawn(job, work)
        return job

    def trigger_full(self, rover: str) -> ScraperJob:
        rover = self._validate_rover(rover)
        scraper_class = registry.get_scraper_class(rover)

        if scraper_class.is_active:
            # End sol is looked up once the task runs
            job = self.tracker.start_job("full", rover, 0, None, parent_token=self._shutdown_token)
            self._spawn(job, self._run_full_active)
        else:
            job = self.tracker.start_job(
                "full", rover, 0, scraper_class.final_sol, parent_token=self._shutdown_token
            )
            self._spawn(job, self._run_full_archive)
        return job

    def get_job(self, job_id: str) -> ScraperJob | None:
        return self.tracker.get_job(job_id)

    def get_all_jobs(self) -> list[ScraperJob]:
        return self.tracker.get_all_jobs()

    def request_cancel(self, job_id: str) -> bool:
        return self.tracker.request_cancel(job_id)

    async def get_current_sol(self, rover: str) -> int:
        rover = self._validate_rover(rover)
        async with self.session_factory() as session, self.client_factory() as client:
            service = IncrementalScraperService(session, client, self.settings)
            return await service.get_current_sol(rover)

    async def wait_for_jobs(self, timeout: float | None = None) -> set[asyncio.Task]:
        """Wait for running job tasks. Returns the ones still pending."""
        if not self._tasks:
            return set()
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return pending

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Cancel every running job and wait for the tasks to wind down."""
        self._shutdown_token.cancel()
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} scraper jobs to stop")
        pending = await self.wait_for_jobs(timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _validate_rover(self, rover: str) -> str:
        rover = (rover or "").strip().lower()
        if registry.get_scraper_class(rover) is None:
            raise UnknownRoverError(rover)
        return rover

    def _spawn(self, job: ScraperJob, work: JobWork) -> None:
        task = asyncio.create_task(self._run_job(job, work), name=f"scraper-job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_job(self, job: ScraperJob, work: JobWork) -> None:
        token = self.tracker.get_token(job.id) or self._shutdown_token.child()
        try:
            async with self.session_factory() as session, self.client_factory() as client:
                await work(job, session, client, token)
        except asyncio.CancelledError:
            self.tracker.complete_job(
                job.id, job.photos_added, job.sols_completed, job.sols_failed,
                error_message="Interrupted by shutdown", cancelled=True,
            )
            raise
        except Exception as e:
            logger.error(f"Job {job.id} ({job.type} {job.rover}) crashed: {e}", exc_info=True)
            self.tracker.fail_job(job.id, concise_message(e))
        finally:
            token.detach()
            self.tracker.cleanup_old_jobs(self.settings.job_retention)

    async def _scrape_sols(
        self,
        job: ScraperJob,
        scraper: BaseScraper,
        sols: range,
        delay: float,
        token: CancellationToken,
    ) -> None:
        photos = 0
        completed = 0
        failed: list[int] = []
        cancelled = False

        await scraper.prepare_range(sols[0], sols[-1])
        for sol in sols:
            if token.is_cancelled:
                logger.info(f"Job {job.id}: cancelled before sol {sol}")
                cancelled = True
                break
            try:
                photos += await scraper.scrape_sol(sol)
                completed += 1
            except Exception as e:
                failed.append(sol)
                logger.warning(
                    f"Job {job.id}: [{scraper.rover_name}] sol {sol} failed - "
                    f"{classify_error(e)}: {concise_message(e)}"
                )
                await scraper.session.rollback()

            self.tracker.update_progress(job.id, sol, photos, completed, len(failed))
            if sol != sols[-1]:
                await token.sleep(delay)

        error_message = f"Failed sols: {', '.join(str(s) for s in failed)}" if failed else None
        self.tracker.complete_job(
            job.id, photos, completed, len(failed),
            error_message=error_message, cancelled=cancelled, failed_sols=failed,
        )

    async def _run_incremental(self, job, session, client, token) -> None:
        service = IncrementalScraperService(session, client, self.settings)
        rovers = list(self.settings.active_rovers)
        history = JobHistoryRepository(session)
        history_id = await history.start("admin", len(rovers))
        started = time.monotonic()
        results = []

        photos = 0
        completed = 0
        failed_count = 0
        failed_sols: list[int] = []
        errors: list[str] = []
        cancelled = False
        fatal = 0

        for index, rover in enumerate(rovers):
            if token.is_cancelled:
                cancelled = True
                break

            base = (photos, completed, failed_count)

            def progress(sol, added, done, failures, base=base):
                self.tracker.update_progress(job.id, sol, base[0] + added, base[1] + done, base[2] + failures)

            result = await service.scrape_incremental(rover, job.lookback_sols, token, progress)
            results.append(result)
            photos += result.photos_added
            completed += result.sols_completed
            failed_count += len(result.failed_sols)
            failed_sols.extend(result.failed_sols)
            cancelled = cancelled or result.cancelled
            if result.error_message:
                errors.append(f"{rover}: {result.error_message}")
            if not result.success and not result.cancelled:
                fatal += 1

            if index < len(rovers) - 1:
                await token.sleep(self.settings.rover_delay_seconds)

        await history.complete(history_id, results, time.monotonic() - started)

        if rovers and fatal == len(rovers):
            self.tracker.fail_job(job.id, "; ".join(errors))
            return
        self.tracker.complete_job(
            job.id, photos, completed, failed_count,
            error_message="; ".join(errors) or None, cancelled=cancelled, failed_sols=failed_sols,
        )

    async def _run_full_active(self, job, session, client, token) -> None:
        service = IncrementalScraperService(session, client, self.settings)
        current_sol = await service.get_current_sol(job.rover, token)
        self.tracker.set_total(job.id, 0, current_sol)

        scraper = registry.build_scraper(job.rover, session, client, self.settings)
        await self._scrape_sols(
            job, scraper, range(0, current_sol + 1), self.settings.full_scrape_sol_delay_seconds, token
        )

    async def _run_full_archive(self, job, session, client, token) -> None:
        scraper = registry.build_scraper(job.rover, session, client, self.settings)
        volumes = scraper.volumes
        # One progress unit per volume
        self.tracker.set_total(job.id, 0, scraper.final_sol, total_sols=len(volumes))

        photos = 0
        completed = 0
        failed: list[str] = []
        cancelled = False

        for volume in volumes:
            if token.is_cancelled:
                cancelled = True
                break
            try:
                photos += await scraper.scrape_volume(volume)
                completed += 1
            except Exception as e:
                failed.append(volume)
                logger.warning(
                    f"Job {job.id}: [{job.rover}/{volume}] failed - {classify_error(e)}: {concise_message(e)}"
                )
                await session.rollback()
            self.tracker.update_progress(job.id, None, photos, completed, len(failed))

        if not failed and not cancelled:
            # Incremental runs resume from the final sol
            await ScraperStateRepository(session).record_run(job.rover, scraper.final_sol, photos, STATUS_SUCCESS)

        error_message = f"Failed volumes: {', '.join(failed)}" if failed else None
        self.tracker.complete_job(
            job.id, photos, completed, len(failed),
            error_message=error_message, cancelled=cancelled, failed_volumes=failed,
        )
