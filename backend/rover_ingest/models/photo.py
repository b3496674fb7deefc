"""Photo model: one ingested image's metadata (append-only)."""

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from rover_ingest.models.base import Base, JSONType, TimestampMixin


class Photo(TimestampMixin, Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Dedup - NASA's identifier for the image
    nasa_id = Column(String(255), unique=True, nullable=False, index=True)

    # Time
    sol = Column(Integer, nullable=False, index=True)
    earth_date = Column(Date, index=True)
    date_taken_utc = Column(DateTime(timezone=True))
    date_taken_mars = Column(String(64))  # "Sol-01646M15:18:15.866"
    date_received = Column(DateTime(timezone=True))

    # Image URLs (archival sources only provide img_src_full)
    img_src_small = Column(Text, nullable=False, default="")
    img_src_medium = Column(Text, nullable=False, default="")
    img_src_large = Column(Text, nullable=False, default="")
    img_src_full = Column(Text, nullable=False, default="")

    width = Column(Integer)
    height = Column(Integer)
    sample_type = Column(String(50), nullable=False, default="")

    # Location
    site = Column(Integer)
    drive = Column(Integer)
    xyz = Column(String(255))

    # Camera telemetry
    mast_az = Column(Float)
    mast_el = Column(Float)
    camera_vector = Column(String(255))
    camera_position = Column(String(255))
    camera_model_type = Column(String(50))
    attitude = Column(String(255))
    spacecraft_clock = Column(Float)
    filter_name = Column(String(100))

    title = Column(Text)
    caption = Column(Text)
    credit = Column(String(255))

    rover_id = Column(Integer, ForeignKey("rovers.id"), nullable=False, index=True)
    camera_id = Column(Integer, ForeignKey("cameras.id"), nullable=False, index=True)

    # Verbatim source payload
    raw_data = Column(JSONType)

    rover = relationship("Rover", back_populates="photos")
    camera = relationship("Camera", back_populates="photos")

    __table_args__ = (
        Index("idx_photo_rover_sol", "rover_id", "sol"),
        Index("idx_photo_rover_camera", "rover_id", "camera_id"),
    )
