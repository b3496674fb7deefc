"""ORM models: import all so relationships resolve."""

from rover_ingest.models.base import Base
from rover_ingest.models.rover import Camera, Rover
from rover_ingest.models.photo import Photo
from rover_ingest.models.scraper_job_history import ScraperJobHistory, ScraperJobRoverDetails
from rover_ingest.models.scraper_state import ScraperState

__all__ = [
    "Base",
    "Camera",
    "Photo",
    "Rover",
    "ScraperJobHistory",
    "ScraperJobRoverDetails",
    "ScraperState",
]
