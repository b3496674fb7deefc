"""Admin scraper API endpoints: trigger, observe and cancel scrape jobs, read run history."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.dependencies.auth import require_admin_key
from rover_ingest.errors import CurrentSolUnavailableError, UnknownRoverError
from rover_ingest.models.base import get_db
from rover_ingest.schemas.scraper_job import (
    CancelJobResponse,
    FullTriggerRequest,
    IncrementalTriggerRequest,
    RangeTriggerRequest,
    ScraperJobRead,
    SolTriggerRequest,
)
from rover_ingest.schemas.scraper_history import JobHistoryPage, JobHistoryRead, ScraperMetrics
from rover_ingest.schemas.scraper_state import CurrentSolResponse, ScraperStateRead, ScraperStateReset
from rover_ingest.scrapers import registry
from rover_ingest.services.job_history_repository import DEFAULT_PERIOD, JobHistoryRepository
from rover_ingest.services.scraper_state_repository import ScraperStateRepository
from rover_ingest.services.trigger_service import AdminScraperTriggerService

router = APIRouter(
    prefix="/admin/scraper",
    tags=["admin-scraper"],
    dependencies=[Depends(require_admin_key)],
)


def get_trigger_service(request: Request) -> AdminScraperTriggerService:
    return request.app.state.trigger_service


def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


@router.post("/incremental", response_model=ScraperJobRead, status_code=status.HTTP_202_ACCEPTED)
async def trigger_incremental(
    body: IncrementalTriggerRequest | None = None,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    """Incremental scrape of every active rover."""
    job = service.trigger_incremental(body.lookback_sols if body else None)
    return ScraperJobRead.model_validate(job)


@router.post("/sol", response_model=ScraperJobRead, status_code=status.HTTP_202_ACCEPTED)
async def trigger_sol(
    body: SolTriggerRequest,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    try:
        job = service.trigger_sol(body.rover, body.sol)
    except (UnknownRoverError, ValueError) as e:
        raise _bad_request(e)
    return ScraperJobRead.model_validate(job)


@router.post("/range", response_model=ScraperJobRead, status_code=status.HTTP_202_ACCEPTED)
async def trigger_range(
    body: RangeTriggerRequest,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    try:
        job = service.trigger_range(body.rover, body.start_sol, body.end_sol, body.delay_seconds)
    except (UnknownRoverError, ValueError) as e:
        raise _bad_request(e)
    return ScraperJobRead.model_validate(job)


@router.post("/full", response_model=ScraperJobRead, status_code=status.HTTP_202_ACCEPTED)
async def trigger_full(
    body: FullTriggerRequest,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    """Scrape a rover's whole mission. Archival rovers go volume by volume."""
    try:
        job = service.trigger_full(body.rover)
    except UnknownRoverError as e:
        raise _bad_request(e)
    return ScraperJobRead.model_validate(job)


@router.get("/jobs", response_model=list[ScraperJobRead])
async def list_jobs(
    active_only: bool = False,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    """List tracked jobs, newest first."""
    jobs = service.tracker.get_active_jobs() if active_only else service.get_all_jobs()
    return [ScraperJobRead.model_validate(job) for job in jobs]


@router.get("/jobs/{job_id}", response_model=ScraperJobRead)
async def get_job(
    job_id: str,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    job = service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return ScraperJobRead.model_validate(job)


@router.post("/jobs/{job_id}/cancel", response_model=CancelJobResponse)
async def cancel_job(
    job_id: str,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    job = service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if not service.request_cancel(job_id):
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")
    return CancelJobResponse(
        job_id=job_id,
        cancellation_requested=True,
        message="Cancellation requested; the job stops at the next sol boundary",
    )


@router.get("/state", response_model=list[ScraperStateRead])
async def list_states(db: AsyncSession = Depends(get_db)):
    """Incremental cursor for every rover that has been scraped."""
    states = await ScraperStateRepository(db).list_all()
    return [ScraperStateRead.model_validate(s) for s in states]


@router.put("/state/{rover}", response_model=ScraperStateRead)
async def reset_state(
    rover: str,
    body: ScraperStateReset,
    db: AsyncSession = Depends(get_db),
):
    """Move a rover's cursor, e.g. after an archival backfill."""
    if registry.get_scraper_class(rover) is None:
        raise _bad_request(UnknownRoverError(rover))
    state = await ScraperStateRepository(db).reset(rover, body.last_scraped_sol)
    return ScraperStateRead.model_validate(state)


@router.get("/current-sol/{rover}", response_model=CurrentSolResponse)
async def current_sol(
    rover: str,
    service: AdminScraperTriggerService = Depends(get_trigger_service),
):
    try:
        sol = await service.get_current_sol(rover)
    except UnknownRoverError as e:
        raise _bad_request(e)
    except CurrentSolUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return CurrentSolResponse(rover=rover.lower(), current_sol=sol)


@router.get("/history", response_model=JobHistoryPage)
async def list_history(
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=10, le=100),
    offset: int = Query(0, ge=0),
    rover: str | None = Query(None, description="Only runs that covered this rover"),
    status: str | None = Query(None, description="success, partial, failed or in_progress"),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
):
    """Recorded incremental runs, newest first."""
    total, jobs = await JobHistoryRepository(db).list_history(limit, offset, rover, status, start_date, end_date)
    return JobHistoryPage(
        jobs=[JobHistoryRead.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/metrics", response_model=ScraperMetrics)
async def scraper_metrics(
    period: str = Query(DEFAULT_PERIOD, description="24h, 7d or 30d; anything else means 7d"),
    db: AsyncSession = Depends(get_db),
):
    return ScraperMetrics(**await JobHistoryRepository(db).metrics(period))
