"""Rover and camera models: static mission reference data."""

from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from rover_ingest.models.base import Base, TimestampMixin


class Rover(TimestampMixin, Base):
    __tablename__ = "rovers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    landing_date = Column(Date)
    launch_date = Column(Date)
    status = Column(String(20), nullable=False, default="active")  # active, complete

    cameras = relationship("Camera", back_populates="rover")
    photos = relationship("Photo", back_populates="rover")


class Camera(TimestampMixin, Base):
    __tablename__ = "cameras"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rover_id = Column(Integer, ForeignKey("rovers.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)  # FHAZ, NAVCAM, MAST
    full_name = Column(String(255), nullable=False, default="")

    rover = relationship("Rover", back_populates="cameras")
    photos = relationship("Photo", back_populates="camera")

    __table_args__ = (
        UniqueConstraint("rover_id", "name", name="uq_camera_rover_name"),
    )
