"""Reference data: the four rovers and their cameras. Safe to run repeatedly."""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.models import Camera, Rover

logger = logging.getLogger(__name__)

ROVERS = [
    {"name": "Perseverance", "landing_date": date(2021, 2, 18), "status": "active"},
    {"name": "Curiosity", "landing_date": date(2012, 8, 6), "status": "active"},
    {"name": "Opportunity", "landing_date": date(2004, 1, 25), "status": "complete"},
    {"name": "Spirit", "landing_date": date(2004, 1, 4), "status": "complete"},
]

_MER_CAMERAS = [
    ("FHAZ", "Front Hazard Avoidance Camera"),
    ("RHAZ", "Rear Hazard Avoidance Camera"),
    ("NAVCAM", "Navigation Camera"),
    ("PANCAM", "Panoramic Camera"),
    ("MINITES", "Miniature Thermal Emission Spectrometer (Mini-TES)"),
    ("ENTRY", "Entry, Descent, and Landing Camera"),
]

CAMERAS = {
    "Perseverance": [
        ("EDL_RUCAM", "Rover Up-Look Camera"),
        ("EDL_RDCAM", "Rover Down-Look Camera"),
        ("EDL_DDCAM", "Descent Stage Down-Look Camera"),
        ("EDL_PUCAM1", "Parachute Up-Look Camera A"),
        ("EDL_PUCAM2", "Parachute Up-Look Camera B"),
        ("NAVCAM_LEFT", "Navigation Camera - Left"),
        ("NAVCAM_RIGHT", "Navigation Camera - Right"),
        ("MCZ_RIGHT", "Mast Camera Zoom - Right"),
        ("MCZ_LEFT", "Mast Camera Zoom - Left"),
        ("FRONT_HAZCAM_LEFT_A", "Front Hazard Avoidance Camera - Left"),
        ("FRONT_HAZCAM_RIGHT_A", "Front Hazard Avoidance Camera - Right"),
        ("REAR_HAZCAM_LEFT", "Rear Hazard Avoidance Camera - Left"),
        ("REAR_HAZCAM_RIGHT", "Rear Hazard Avoidance Camera - Right"),
        ("SKYCAM", "MEDA Skycam"),
        ("SHERLOC_WATSON", "SHERLOC WATSON Camera"),
        ("SUPERCAM_RMI", "SuperCam Remote Micro Imager"),
        ("LCAM", "Lander Vision System Camera"),
    ],
    "Curiosity": [
        ("FHAZ", "Front Hazard Avoidance Camera"),
        ("RHAZ", "Rear Hazard Avoidance Camera"),
        ("MAST", "Mast Camera"),
        ("CHEMCAM", "Chemistry and Camera Complex"),
        ("MAHLI", "Mars Hand Lens Imager"),
        ("MARDI", "Mars Descent Imager"),
        ("NAVCAM", "Navigation Camera"),
    ],
    "Opportunity": _MER_CAMERAS,
    "Spirit": _MER_CAMERAS,
}


async def seed_reference_data(session: AsyncSession) -> dict[str, int]:
    """Insert missing rovers and cameras. Returns counts of rows created."""
    rovers_created = 0
    cameras_created = 0

    existing = {r.name: r for r in (await session.execute(select(Rover))).scalars().all()}
    for data in ROVERS:
        if data["name"] in existing:
            logger.debug(f"Rover {data['name']} already exists, skipping")
            continue
        rover = Rover(**data)
        session.add(rover)
        existing[rover.name] = rover
        rovers_created += 1
        logger.info(f"Seeding rover: {rover.name}")
    await session.flush()

    for rover_name, cameras in CAMERAS.items():
        rover = existing[rover_name]
        result = await session.execute(select(Camera.name).where(Camera.rover_id == rover.id))
        have = set(result.scalars().all())
        for name, full_name in cameras:
            if name in have:
                continue
            session.add(Camera(rover_id=rover.id, name=name, full_name=full_name))
            cameras_created += 1
            logger.info(f"Seeding camera: {name} for {rover_name}")

    await session.commit()
    return {"rovers": rovers_created, "cameras": cameras_created}
