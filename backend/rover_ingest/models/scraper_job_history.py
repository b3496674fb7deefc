"""Scraper job history models: audit log of multi-rover incremental runs."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from rover_ingest.models.base import Base, JSONType, TimestampMixin


class ScraperJobHistory(TimestampMixin, Base):
    __tablename__ = "scraper_job_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trigger = Column(String(20), nullable=False, default="scheduled")  # scheduled, admin

    job_started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    job_completed_at = Column(DateTime(timezone=True))
    total_duration_seconds = Column(Integer)
    total_rovers_attempted = Column(Integer, nullable=False, default=0)
    total_rovers_succeeded = Column(Integer, nullable=False, default=0)
    total_photos_added = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="in_progress")  # in_progress, success, partial, failed
    error_summary = Column(Text)

    rover_details = relationship(
        "ScraperJobRoverDetails",
        back_populates="job_history",
        cascade="all, delete-orphan",
        order_by="ScraperJobRoverDetails.id",
    )


class ScraperJobRoverDetails(TimestampMixin, Base):
    __tablename__ = "scraper_job_rover_details"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_history_id = Column(Integer, ForeignKey("scraper_job_history.id"), nullable=False, index=True)
    rover_name = Column(String(50), nullable=False, index=True)

    start_sol = Column(Integer, nullable=False, default=0)
    end_sol = Column(Integer, nullable=False, default=0)
    sols_attempted = Column(Integer, nullable=False, default=0)
    sols_succeeded = Column(Integer, nullable=False, default=0)
    sols_failed = Column(Integer, nullable=False, default=0)
    photos_added = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="success")  # success, partial, failed
    error_message = Column(Text)
    failed_sols = Column(JSONType, nullable=False, default=list)

    job_history = relationship("ScraperJobHistory", back_populates="rover_details")
