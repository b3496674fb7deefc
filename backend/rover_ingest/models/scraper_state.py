"""Scraper state model: durable per-rover incremental cursor."""

from sqlalchemy import Column, DateTime, Integer, String, Text

from rover_ingest.models.base import Base, TimestampMixin


class ScraperState(TimestampMixin, Base):
    __tablename__ = "scraper_states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rover_name = Column(String(50), nullable=False, unique=True, index=True)

    last_scraped_sol = Column(Integer, nullable=False, default=0)
    last_scrape_timestamp = Column(DateTime(timezone=True))
    last_scrape_status = Column(String(20), nullable=False, default="success")  # success, failed, in_progress
    photos_added_last_run = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
