"""Pydantic schemas for scrape run history and metrics."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RoverRunDetailRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rover_name: str
    start_sol: int
    end_sol: int
    sols_attempted: int
    sols_succeeded: int
    sols_failed: int
    photos_added: int
    duration_seconds: int
    status: str
    error_message: str | None = None
    failed_sols: list[int] = []


class JobHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    trigger: str
    job_started_at: datetime
    job_completed_at: datetime | None = None
    total_duration_seconds: int | None = None
    total_rovers_attempted: int
    total_rovers_succeeded: int
    total_photos_added: int
    status: str
    error_summary: str | None = None
    rover_details: list[RoverRunDetailRead] = []


class JobHistoryPage(BaseModel):
    jobs: list[JobHistoryRead]
    total: int
    limit: int
    offset: int


class RoverMetrics(BaseModel):
    rover_name: str
    total_photos: int
    photos_added_period: int
    successful_runs: int
    failed_runs: int
    average_duration_seconds: int


class ScraperMetrics(BaseModel):
    """Aggregates over the runs started within `period`."""

    period: str
    total_jobs: int
    successful_jobs: int
    failed_jobs: int
    partial_jobs: int
    success_rate: float
    total_photos_added: int
    average_duration_seconds: int
    rover_breakdown: list[RoverMetrics] = []
