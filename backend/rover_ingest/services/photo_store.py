"""Async store adapter for rovers, cameras and photos."""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.models import Camera, Photo, Rover

logger = logging.getLogger(__name__)

ID_LOOKUP_CHUNK = 500


class PhotoStore:
    """Thin query layer over an AsyncSession.

    Photos are only ever inserted here; dedup happens in the scrapers against
    the id sets returned by existing_ids() and stored_ids().
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_rover(self, name: str) -> Rover | None:
        result = await self.session.execute(
            select(Rover).where(func.lower(Rover.name) == name.lower())
        )
        return result.scalar_one_or_none()

    async def camera_ids(self, rover_id: int) -> dict[str, int]:
        """Camera name -> id for one rover."""
        result = await self.session.execute(
            select(Camera.name, Camera.id).where(Camera.rover_id == rover_id)
        )
        return {name: camera_id for name, camera_id in result.all()}

    async def camera_full_names(self, rover_id: int) -> dict[int, str]:
        result = await self.session.execute(
            select(Camera.id, Camera.full_name).where(Camera.rover_id == rover_id)
        )
        return {camera_id: full_name for camera_id, full_name in result.all()}

    async def get_or_create_camera(self, rover_id: int, name: str, full_name: str | None = None) -> int:
        """Return the camera id for (rover, name), inserting the row if needed."""
        existing = await self._camera_id(rover_id, name)
        if existing is not None:
            return existing

        self.session.add(Camera(rover_id=rover_id, name=name, full_name=full_name or name))
        try:
            await self.session.commit()
        except IntegrityError:
            # Another run created it first
            await self.session.rollback()
        camera_id = await self._camera_id(rover_id, name)
        if camera_id is None:
            raise RuntimeError(f"Camera {name} for rover {rover_id} could not be created")
        logger.info(f"Created camera {name} for rover {rover_id}")
        return camera_id

    async def _camera_id(self, rover_id: int, name: str) -> int | None:
        result = await self.session.execute(
            select(Camera.id).where(Camera.rover_id == rover_id, Camera.name == name)
        )
        return result.scalar_one_or_none()

    async def existing_ids(self, rover_id: int) -> set[str]:
        """Every NASA id already stored for a rover."""
        result = await self.session.execute(select(Photo.nasa_id).where(Photo.rover_id == rover_id))
        return set(result.scalars().all())

    async def stored_ids(self, nasa_ids) -> set[str]:
        """The subset of `nasa_ids` already stored, for any rover and sol."""
        nasa_ids = list(dict.fromkeys(nasa_ids))
        found: set[str] = set()
        for start in range(0, len(nasa_ids), ID_LOOKUP_CHUNK):
            chunk = nasa_ids[start:start + ID_LOOKUP_CHUNK]
            result = await self.session.execute(select(Photo.nasa_id).where(Photo.nasa_id.in_(chunk)))
            found.update(result.scalars().all())
        return found

    async def add_batch(self, photos: list[Photo]) -> None:
        """Insert and commit a batch. Raises on conflict; the caller rolls back."""
        self.session.add_all(photos)
        await self.session.commit()

    async def max_sol(self, rover_id: int) -> int | None:
        result = await self.session.execute(
            select(func.max(Photo.sol)).where(Photo.rover_id == rover_id)
        )
        return result.scalar_one_or_none()

    async def count_photos(self, rover_id: int | None = None) -> int:
        query = select(func.count(Photo.id))
        if rover_id is not None:
            query = query.where(Photo.rover_id == rover_id)
        result = await self.session.execute(query)
        return result.scalar_one()
