"""Base scraper abstract class and the shared batched photo writer."""

import logging
import re
from abc import ABC, abstractmethod
from datetime import date

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import make_transient

from rover_ingest.config import Settings, get_settings
from rover_ingest.errors import RoverNotSeededError
from rover_ingest.models import Photo
from rover_ingest.services.camera_mapper import is_plausible_instrument
from rover_ingest.services.photo_store import PhotoStore

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


class PhotoBatchWriter:
    """Buffers new photos and commits them `batch_size` at a time.

    Dedup is set membership against ids known to be stored plus ids staged in
    the pending batch. Callers seed the known set either up front or page by
    page through `load_stored()`. When a commit hits rows that another writer
    stored in the meantime, the batch is retried once without them; a batch
    that still fails is dropped and the writer carries on with the next one.
    """

    def __init__(self, store: PhotoStore, known_ids: set[str] | None, batch_size: int, log_prefix: str = ""):
        self.store = store
        self.known_ids = known_ids if known_ids is not None else set()
        self.batch_size = max(1, batch_size)
        self.log_prefix = log_prefix

        self.pending: list[Photo] = []
        self.pending_ids: set[str] = set()

        self.inserted = 0
        self.duplicates = 0
        self.batch_errors = 0
        self.dropped = 0

    def is_known(self, nasa_id: str) -> bool:
        return nasa_id in self.known_ids or nasa_id in self.pending_ids

    async def load_stored(self, nasa_ids) -> None:
        """Mark whichever of `nasa_ids` are already in the database as known."""
        candidates = [i for i in nasa_ids if i and not self.is_known(i)]
        if candidates:
            self.known_ids |= await self.store.stored_ids(candidates)

    async def add(self, photo: Photo) -> bool:
        """Stage a photo. Returns False if its id was already seen."""
        if self.is_known(photo.nasa_id):
            self.duplicates += 1
            return False

        self.pending.append(photo)
        self.pending_ids.add(photo.nasa_id)
        if len(self.pending) >= self.batch_size:
            await self.flush()
        return True

    async def flush(self) -> int:
        if not self.pending:
            return 0

        batch = self.pending
        self.pending, self.pending_ids = [], set()

        try:
            await self.store.add_batch(batch)
        except IntegrityError as e:
            await self._reset_session()
            logger.warning(f"{self.log_prefix} Batch of {len(batch)} photos hit stored ids, retrying without them: {e}")
            batch = await self._without_stored(batch)
            if not batch:
                return 0
            try:
                await self.store.add_batch(batch)
            except SQLAlchemyError as retry_error:
                return await self._drop(batch, retry_error)
        except SQLAlchemyError as e:
            return await self._drop(batch, e)

        self.known_ids.update(photo.nasa_id for photo in batch)
        self.inserted += len(batch)
        return len(batch)

    async def _without_stored(self, batch: list[Photo]) -> list[Photo]:
        stored = await self.store.stored_ids(photo.nasa_id for photo in batch)
        self.known_ids |= stored
        self.duplicates += sum(1 for photo in batch if photo.nasa_id in stored)

        remaining = []
        for photo in batch:
            if photo.nasa_id in stored:
                continue
            make_transient(photo)
            photo.id = None
            remaining.append(photo)
        return remaining

    async def _drop(self, batch: list[Photo], error: Exception) -> int:
        self.batch_errors += 1
        self.dropped += len(batch)
        logger.error(f"{self.log_prefix} Batch of {len(batch)} photos failed, dropping it: {error}")
        await self._reset_session()
        return 0

    async def _reset_session(self) -> None:
        await self.store.session.rollback()
        self.store.session.expunge_all()


class BaseScraper(ABC):
    """Abstract base class for all rover scrapers.

    Subclasses must implement:
        scrape_sol(sol) -> int: ingest one sol, return newly stored photos
        scrape_latest() -> int: ingest the most recent sol (0 for finished missions)
    """

    rover_name: str = ""
    is_active: bool = True

    def __init__(self, session: AsyncSession, client: httpx.AsyncClient, settings: Settings | None = None):
        self.session = session
        self.client = client
        self.settings = settings or get_settings()
        self.store = PhotoStore(session)

        # Plain values only; ORM instances expire when a failed batch rolls back
        self.rover_id: int | None = None
        self.landing_date: date | None = None
        self._camera_ids: dict[str, int] = {}

    @property
    def log_prefix(self) -> str:
        return f"[{self.rover_name}]"

    @abstractmethod
    async def scrape_sol(self, sol: int) -> int:
        ...

    @abstractmethod
    async def scrape_latest(self) -> int:
        ...

    async def prepare_range(self, start_sol: int, end_sol: int) -> None:
        """Hook called before a run of scrape_sol() over start_sol..end_sol."""
        return None

    async def load_rover(self) -> int:
        """Cache the rover id, landing date and camera ids. Idempotent."""
        if self.rover_id is not None:
            return self.rover_id

        rover = await self.store.get_rover(self.rover_name)
        if rover is None:
            raise RoverNotSeededError(self.rover_name)

        self.rover_id = rover.id
        self.landing_date = rover.landing_date
        self._camera_ids = await self.store.camera_ids(rover.id)
        return self.rover_id

    async def camera_id(self, name: str, create: bool = False, full_name: str | None = None) -> int | None:
        """Camera id by canonical name, refreshing the cache on a miss.

        With create=True an unknown but plausible name gets a new camera row.
        """
        if not name:
            return None
        if name in self._camera_ids:
            return self._camera_ids[name]

        rover_id = await self.load_rover()
        self._camera_ids = await self.store.camera_ids(rover_id)
        if name in self._camera_ids:
            return self._camera_ids[name]

        if not create or not is_plausible_instrument(name):
            return None

        camera_id = await self.store.get_or_create_camera(rover_id, name, full_name)
        self._camera_ids[name] = camera_id
        return camera_id

    def new_writer(self, known_ids: set[str] | None = None, log_prefix: str | None = None) -> PhotoBatchWriter:
        return PhotoBatchWriter(
            self.store,
            known_ids,
            self.settings.batch_size,
            log_prefix or self.log_prefix,
        )


class ActiveRoverScraper(BaseScraper):
    """Scraper for a rover whose live feed still publishes new sols."""

    is_active = True

    @abstractmethod
    async def get_current_sol(self) -> int:
        ...

    async def scrape_latest(self) -> int:
        return await self.scrape_sol(await self.get_current_sol())

    async def fetch_json(self, url: str, params: dict | None = None) -> dict:
        resp = await self.client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()


def parse_tuple(value) -> list[float]:
    """Numbers out of a feed tuple string such as '(1,1,1024,1024)'."""
    if value is None:
        return []
    return [float(n) for n in _NUMBER_RE.findall(str(value))]


def to_int(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def to_float(value) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_str(value) -> str | None:
    if value is None:
        return None
    return str(value)
