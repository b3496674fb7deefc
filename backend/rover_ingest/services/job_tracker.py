"""In-memory registry of admin-triggered scrape jobs.

Jobs live only as long as the API process; the durable record of what has
been scraped is ScraperState.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from rover_ingest.services.cancellation import CancellationToken

logger = logging.getLogger(__name__)

JOB_TYPES = ("incremental", "sol", "range", "full")

STATUS_STARTED = "started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_PARTIAL, STATUS_FAILED, STATUS_CANCELLED})


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScraperJob:
    id: str
    type: str
    rover: str
    start_sol: int | None = None
    end_sol: int | None = None
    lookback_sols: int | None = None
    status: str = STATUS_STARTED
    current_sol: int | None = None
    photos_added: int = 0
    sols_completed: int = 0
    sols_failed: int = 0
    failed_sols: list[int] = field(default_factory=list)
    failed_volumes: list[str] = field(default_factory=list)
    total_sols: int | None = None
    started_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None
    error_message: str | None = None
    cancellation_requested: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def progress_percent(self) -> float:
        if not self.total_sols:
            return 0.0
        return round(self.sols_completed / self.total_sols * 100, 1)

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at or _now()
        return (end - self.started_at).total_seconds()

    @property
    def estimated_seconds_remaining(self) -> float | None:
        if self.is_terminal or not self.total_sols or self.sols_completed <= 0:
            return None
        remaining = max(0, self.total_sols - self.sols_completed)
        return self.elapsed_seconds * remaining / self.sols_completed


class ScraperJobTracker:
    """Thread-safe job registry with per-job cancellation tokens."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, ScraperJob] = {}
        self._tokens: dict[str, CancellationToken] = {}

    def start_job(
        self,
        job_type: str,
        rover: str,
        start_sol: int | None = None,
        end_sol: int | None = None,
        lookback_sols: int | None = None,
        parent_token: CancellationToken | None = None,
    ) -> ScraperJob:
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type: {job_type}")

        total = None
        if start_sol is not None and end_sol is not None:
            total = end_sol - start_sol + 1

        job = ScraperJob(
            id=uuid.uuid4().hex[:12],
            type=job_type,
            rover=rover,
            start_sol=start_sol,
            end_sol=end_sol,
            lookback_sols=lookback_sols,
            total_sols=total,
        )
        token = parent_token.child() if parent_token is not None else CancellationToken()

        with self._lock:
            self._jobs[job.id] = job
            self._tokens[job.id] = token

        logger.info(f"Started {job_type} job {job.id} for {rover} (sols {start_sol}-{end_sol})")
        return job

    def get_job(self, job_id: str) -> ScraperJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def get_all_jobs(self) -> list[ScraperJob]:
        """All jobs, newest first."""
        with self._lock:
            return list(reversed(self._jobs.values()))

    def get_active_jobs(self) -> list[ScraperJob]:
        return [job for job in self.get_all_jobs() if not job.is_terminal]

    def get_token(self, job_id: str) -> CancellationToken | None:
        with self._lock:
            return self._tokens.get(job_id)

    def set_total(self, job_id: str, start_sol: int | None, end_sol: int | None, total_sols: int | None = None) -> None:
        """Fill in bounds that were unknown when the job started."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.start_sol = start_sol
            job.end_sol = end_sol
            if total_sols is not None:
                job.total_sols = total_sols
            elif start_sol is not None and end_sol is not None:
                job.total_sols = end_sol - start_sol + 1

    def update_progress(
        self,
        job_id: str,
        current_sol: int | None,
        photos_added: int,
        sols_completed: int,
        sols_failed: int,
    ) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return
            job.status = STATUS_IN_PROGRESS
            job.current_sol = current_sol
            job.photos_added = photos_added
            job.sols_completed = sols_completed
            job.sols_failed = sols_failed

    def complete_job(
        self,
        job_id: str,
        total_photos: int,
        sols_succeeded: int,
        sols_failed: int,
        error_message: str | None = None,
        cancelled: bool = False,
        failed_sols: list[int] | None = None,
        failed_volumes: list[str] | None = None,
    ) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            if cancelled:
                job.status = STATUS_CANCELLED
            elif sols_failed > 0:
                job.status = STATUS_PARTIAL
            else:
                job.status = STATUS_COMPLETED
            job.photos_added = total_photos
            job.sols_completed = sols_succeeded
            job.sols_failed = sols_failed
            job.failed_sols = list(failed_sols or [])
            job.failed_volumes = list(failed_volumes or [])
            job.error_message = error_message
            job.completed_at = _now()

        logger.info(
            f"Job {job_id} {job.status}: {total_photos} photos, "
            f"{sols_succeeded} sols ok, {sols_failed} failed"
        )

    def fail_job(self, job_id: str, error_message: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.status = STATUS_FAILED
            job.error_message = error_message
            job.completed_at = _now()
        logger.error(f"Job {job_id} failed: {error_message}")

    def request_cancel(self, job_id: str) -> bool:
        """Flag a running job for cancellation. False if unknown or already finished."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False
            job.cancellation_requested = True
            token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()
        logger.info(f"Cancellation requested for job {job_id}")
        return True

    def is_cancellation_requested(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            return bool(job and job.cancellation_requested)

    def cleanup_old_jobs(self, keep_count: int = 100) -> int:
        """Drop all but the newest `keep_count` finished jobs. Running jobs are kept."""
        with self._lock:
            # Insertion order is start order
            finished = [job for job in reversed(self._jobs.values()) if job.is_terminal]
            stale = finished[keep_count:]
            for job in stale:
                self._jobs.pop(job.id, None)
                token = self._tokens.pop(job.id, None)
                if token is not None:
                    token.detach()

        if stale:
            logger.debug(f"Removed {len(stale)} old jobs")
        return len(stale)
