"""Pydantic schemas for ScraperState model."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ScraperStateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rover_name: str
    last_scraped_sol: int
    last_scrape_timestamp: datetime | None = None
    last_scrape_status: str
    photos_added_last_run: int = 0
    error_message: str | None = None


class ScraperStateReset(BaseModel):
    """Operator cursor override."""

    last_scraped_sol: int = Field(..., ge=0)


class CurrentSolResponse(BaseModel):
    rover: str
    current_sol: int
