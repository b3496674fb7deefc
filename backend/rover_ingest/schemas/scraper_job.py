"""Pydantic schemas for admin scrape jobs."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class IncrementalTriggerRequest(BaseModel):
    lookback_sols: int | None = Field(None, ge=0, le=1000)


class SolTriggerRequest(BaseModel):
    rover: str
    sol: int


class RangeTriggerRequest(BaseModel):
    rover: str
    start_sol: int
    end_sol: int
    delay_seconds: float | None = Field(None, ge=0)


class FullTriggerRequest(BaseModel):
    rover: str


class ScraperJobRead(BaseModel):
    """Job snapshot, including derived progress fields."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    rover: str
    status: str
    start_sol: int | None = None
    end_sol: int | None = None
    lookback_sols: int | None = None
    current_sol: int | None = None
    photos_added: int = 0
    sols_completed: int = 0
    sols_failed: int = 0
    failed_sols: list[int] = []
    failed_volumes: list[str] = []
    total_sols: int | None = None
    progress_percent: float = 0.0
    elapsed_seconds: float = 0.0
    estimated_seconds_remaining: float | None = None
    started_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    cancellation_requested: bool = False


class CancelJobResponse(BaseModel):
    job_id: str
    cancellation_requested: bool
    message: str
