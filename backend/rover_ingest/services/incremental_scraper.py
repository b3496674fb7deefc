"""Incremental scrape orchestration.

Each run re-scrapes a lookback window behind the stored cursor (NASA keeps
adding late-downlinked images to recent sols) up to the current mission sol,
then advances the cursor. Dedup in the scrapers makes re-scraping safe.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.config import Settings, get_settings
from rover_ingest.errors import (
    CurrentSolUnavailableError,
    UnknownRoverError,
    classify_error,
    concise_message,
)
from rover_ingest.scrapers import registry
from rover_ingest.scrapers.base import BaseScraper
from rover_ingest.services.cancellation import CancellationToken
from rover_ingest.services.job_history_repository import JobHistoryRepository
from rover_ingest.services.scraper_state_repository import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    ScraperStateRepository,
)

logger = logging.getLogger(__name__)

# (current_sol, photos_added, sols_completed, sols_failed)
ProgressCallback = Callable[[int, int, int, int], Awaitable[None] | None]


@dataclass
class IncrementalScrapeResult:
    rover_name: str
    start_sol: int = 0
    end_sol: int = 0
    total_sols: int = 0
    photos_added: int = 0
    successful_sols: int = 0
    skipped_sols: int = 0  # completed with no new photos
    failed_sols: list[int] = field(default_factory=list)
    duration_seconds: float = 0.0
    success: bool = False
    cancelled: bool = False
    error_message: str | None = None

    @property
    def sols_completed(self) -> int:
        return self.successful_sols + self.skipped_sols


async def _report(progress: ProgressCallback | None, *args) -> None:
    if progress is None:
        return
    outcome = progress(*args)
    if inspect.isawaitable(outcome):
        await outcome


async def _pause(token: CancellationToken | None, seconds: float) -> None:
    if token is not None:
        await token.sleep(seconds)
    elif seconds > 0:
        await asyncio.sleep(seconds)


class IncrementalScraperService:
    """Runs lookback-window scrapes and keeps ScraperState current."""

    def __init__(self, session: AsyncSession, client: httpx.AsyncClient, settings: Settings | None = None):
        self.session = session
        self.client = client
        self.settings = settings or get_settings()
        self.states = ScraperStateRepository(session)
        self.history = JobHistoryRepository(session)

    def _scraper(self, rover_name: str) -> BaseScraper:
        return registry.build_scraper(rover_name, self.session, self.client, self.settings)

    async def scrape_incremental(
        self,
        rover_name: str,
        lookback_sols: int | None = None,
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> IncrementalScrapeResult:
        rover_name = rover_name.lower()
        lookback = self.settings.lookback_sols if lookback_sols is None else lookback_sols
        started = time.monotonic()
        result = IncrementalScrapeResult(rover_name=rover_name)

        try:
            scraper = self._scraper(rover_name)
        except UnknownRoverError as e:
            logger.error(str(e))
            result.error_message = str(e)
            return result

        # Anything failing before the sol loop stops the run
        try:
            state = await self.states.mark_in_progress(rover_name)
            cursor = state.last_scraped_sol
            start_sol = max(0, cursor - lookback)
            end_sol = await self._resolve_end_sol(scraper, token)
            await scraper.prepare_range(start_sol, end_sol)
        except Exception as e:
            message = concise_message(e)
            logger.error(f"[{rover_name}] Incremental scrape could not start: {message}", exc_info=True)
            await self._mark_failed(rover_name, message)
            result.error_message = message
            result.duration_seconds = time.monotonic() - started
            return result

        result.start_sol = start_sol
        result.end_sol = end_sol
        result.total_sols = max(0, end_sol - start_sol + 1)
        logger.info(
            f"[{rover_name}] Incremental scrape: sols {start_sol}-{end_sol} "
            f"(cursor {cursor}, lookback {lookback})"
        )

        for sol in range(start_sol, end_sol + 1):
            if token is not None and token.is_cancelled:
                logger.info(f"[{rover_name}] Cancelled before sol {sol}")
                result.cancelled = True
                break

            try:
                added = await scraper.scrape_sol(sol)
                result.photos_added += added
                if added > 0:
                    result.successful_sols += 1
                else:
                    result.skipped_sols += 1
                logger.info(f"[{rover_name}] Sol {sol}: {added} new photos")
            except Exception as e:
                result.failed_sols.append(sol)
                logger.warning(f"[{rover_name}] Sol {sol}: FAILED - {classify_error(e)}: {concise_message(e)}")
                logger.debug(f"[{rover_name}] Sol {sol} traceback", exc_info=True)
                await self.session.rollback()

            await _report(progress, sol, result.photos_added, result.sols_completed, len(result.failed_sols))

            if sol < end_sol:
                await _pause(token, self.settings.sol_delay_seconds)

        error_message = None
        if result.failed_sols:
            error_message = f"Failed sols: {', '.join(str(s) for s in result.failed_sols)}"
        if result.cancelled:
            error_message = "Cancelled" + (f"; {error_message}" if error_message else "")

        status = STATUS_FAILED if result.cancelled else STATUS_SUCCESS
        try:
            await self.states.record_run(rover_name, end_sol, result.photos_added, status, error_message)
        except Exception as e:
            logger.error(f"[{rover_name}] Could not save scraper state: {e}", exc_info=True)
            await self.session.rollback()
            error_message = f"State update failed: {concise_message(e)}"
            result.error_message = error_message
            result.duration_seconds = time.monotonic() - started
            return result

        result.success = not result.cancelled
        result.error_message = error_message
        result.duration_seconds = time.monotonic() - started
        logger.info(
            f"[{rover_name}] Incremental scrape done: {result.photos_added} photos, "
            f"{result.successful_sols} sols with photos, {result.skipped_sols} empty, "
            f"{len(result.failed_sols)} failed in {result.duration_seconds:.1f}s"
        )
        return result

    async def scrape_all_rovers(
        self,
        rovers: list[str] | None = None,
        lookback_sols: int | None = None,
        token: CancellationToken | None = None,
    ) -> list[IncrementalScrapeResult]:
        """Incremental scrape of several rovers, one after another."""
        rovers = rovers or list(self.settings.active_rovers)
        results = []
        for index, rover_name in enumerate(rovers):
            if token is not None and token.is_cancelled:
                break
            results.append(await self.scrape_incremental(rover_name, lookback_sols, token))
            if index < len(rovers) - 1:
                await _pause(token, self.settings.rover_delay_seconds)
        return results

    async def scrape_all_rovers_with_history(
        self,
        rovers: list[str] | None = None,
        lookback_sols: int | None = None,
        token: CancellationToken | None = None,
        trigger: str = "scheduled",
    ) -> tuple[int, list[IncrementalScrapeResult]]:
        """scrape_all_rovers() recorded as one ScraperJobHistory run. Returns (history id, results)."""
        rovers = rovers or list(self.settings.active_rovers)
        started = time.monotonic()
        history_id = await self.history.start(trigger, len(rovers))
        try:
            results = await self.scrape_all_rovers(rovers, lookback_sols, token)
        except Exception as e:
            await self.history.fail(history_id, concise_message(e), time.monotonic() - started)
            raise
        await self.history.complete(history_id, results, time.monotonic() - started)
        return history_id, results

    async def get_current_sol(self, rover_name: str, token: CancellationToken | None = None) -> int:
        return await self._resolve_end_sol(self._scraper(rover_name), token)

    async def reset_state(self, rover_name: str, sol: int):
        if registry.get_scraper_class(rover_name) is None:
            raise UnknownRoverError(rover_name)
        if sol < 0:
            raise ValueError("sol must be >= 0")
        return await self.states.reset(rover_name, sol)

    async def _resolve_end_sol(self, scraper: BaseScraper, token: CancellationToken | None) -> int:
        if not scraper.is_active:
            return scraper.final_sol

        attempts = max(1, self.settings.current_sol_retries)
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                return await scraper.get_current_sol()
            except (httpx.HTTPError, ValueError, CurrentSolUnavailableError) as e:
                last_error = e
                logger.warning(
                    f"[{scraper.rover_name}] Current sol lookup failed "
                    f"(attempt {attempt + 1}/{attempts}): {concise_message(e)}"
                )
            if attempt < attempts - 1:
                await _pause(token, self.settings.current_sol_backoff_seconds * (2 ** attempt))

        if self.settings.current_sol_db_fallback:
            max_sol = await scraper.store.max_sol(await scraper.load_rover())
            if max_sol is not None:
                logger.warning(f"[{scraper.rover_name}] Using stored max sol {max_sol} + 1 as current sol")
                return max_sol + 1

        raise CurrentSolUnavailableError(
            f"Could not determine current sol for {scraper.rover_name}: {last_error}"
        )

    async def _mark_failed(self, rover_name: str, message: str) -> None:
        try:
            await self.session.rollback()
            await self.states.mark_failed(rover_name, message)
        except Exception as e:
            logger.error(f"[{rover_name}] Could not mark scraper state failed: {e}")
