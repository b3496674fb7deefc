"""Pydantic schemas package."""

from rover_ingest.schemas.scraper_history import (
    JobHistoryPage,
    JobHistoryRead,
    RoverMetrics,
    RoverRunDetailRead,
    ScraperMetrics,
)
from rover_ingest.schemas.scraper_job import (
    CancelJobResponse,
    FullTriggerRequest,
    IncrementalTriggerRequest,
    RangeTriggerRequest,
    ScraperJobRead,
    SolTriggerRequest,
)
from rover_ingest.schemas.scraper_state import (
    CurrentSolResponse,
    ScraperStateRead,
    ScraperStateReset,
)

__all__ = [
    "CancelJobResponse",
    "CurrentSolResponse",
    "FullTriggerRequest",
    "IncrementalTriggerRequest",
    "JobHistoryPage",
    "JobHistoryRead",
    "RangeTriggerRequest",
    "RoverMetrics",
    "RoverRunDetailRead",
    "ScraperJobRead",
    "ScraperMetrics",
    "ScraperStateRead",
    "ScraperStateReset",
    "SolTriggerRequest",
]
