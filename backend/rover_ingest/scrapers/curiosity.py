"""Curiosity (MSL) scraper.

Uses the mars.nasa.gov raw_image_items API, 200 items per page. Page 0
reports `total`, which bounds the remaining pages.
"""

import logging
import math

import httpx

from rover_ingest.errors import CurrentSolUnavailableError
from rover_ingest.models import Photo
from rover_ingest.scrapers.base import ActiveRoverScraper, parse_tuple, to_float, to_int, to_str
from rover_ingest.scrapers.registry import register_scraper
from rover_ingest.services.camera_mapper import map_curiosity_instrument
from rover_ingest.services.pds_index_parser import parse_datetime

logger = logging.getLogger(__name__)

PAGE_SIZE = 200


def parse_current_sol(data: dict) -> int:
    """Current sol from an `order=sol desc&per_page=1` response."""
    items = data.get("items") if isinstance(data, dict) else None
    if not items:
        raise CurrentSolUnavailableError("Curiosity feed returned no items")
    sol = to_int(items[0].get("sol"))
    if sol is None:
        raise CurrentSolUnavailableError("Curiosity feed item has no sol")
    return sol


def is_thumbnail(sample_type: str | None) -> bool:
    return (sample_type or "").strip().lower() == "thumbnail"


@register_scraper("curiosity")
class CuriosityScraper(ActiveRoverScraper):

    def _page_url(self, params: str) -> str:
        # NASA expects the literal "sol desc" and colon-separated conditions
        return f"{self.settings.curiosity_feed_url}?{params}"

    async def get_current_sol(self) -> int:
        url = self._page_url("order=sol%20desc&per_page=1&condition_1=msl:mission")
        return parse_current_sol(await self.fetch_json(url))

    async def fetch_page(self, sol: int, page: int) -> dict:
        url = self._page_url(
            f"order=sol%20desc&per_page={PAGE_SIZE}&page={page}"
            f"&condition_1=msl:mission&condition_2={sol}:sol:in"
        )
        return await self.fetch_json(url)

    async def scrape_sol(self, sol: int) -> int:
        await self.load_rover()

        try:
            first = await self.fetch_page(sol, 0)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info(f"[{self.rover_name}/sol {sol}] No photos (404)")
                return 0
            raise

        total = to_int(first.get("total")) or 0
        pages = math.ceil(total / PAGE_SIZE) if total else 1

        writer = self.new_writer(log_prefix=f"[{self.rover_name}/sol {sol}]")
        fetched = 0
        skipped = 0

        for page in range(pages):
            data = first if page == 0 else await self.fetch_page(sol, page)
            items = data.get("items") or []
            fetched += len(items)
            await writer.load_stored(to_str(to_int(item.get("id"))) for item in items)

            for item in items:
                nasa_id = to_str(to_int(item.get("id")))
                if nasa_id and writer.is_known(nasa_id):
                    writer.duplicates += 1
                    continue
                try:
                    photo = await self.build_photo(item, sol)
                except Exception as e:
                    logger.warning(f"[{self.rover_name}/sol {sol}] Failed to process item {nasa_id}: {e}")
                    skipped += 1
                    continue
                if photo is None:
                    skipped += 1
                    continue
                await writer.add(photo)

            if not items:
                break

        await writer.flush()
        logger.info(
            f"[{self.rover_name}/sol {sol}] Fetched {fetched} of {total}, inserted {writer.inserted}, "
            f"duplicates {writer.duplicates}, skipped {skipped}, failed batches {writer.batch_errors}"
        )
        return writer.inserted

    async def build_photo(self, item: dict, sol: int) -> Photo | None:
        nasa_id = to_str(to_int(item.get("id")))
        if not nasa_id:
            logger.warning(f"[{self.rover_name}/sol {sol}] Item without id, skipping")
            return None

        extended = item.get("extended") or {}
        sample_type = extended.get("sample_type") or "unknown"
        if is_thumbnail(sample_type):
            return None

        date_taken = parse_datetime(item.get("date_taken"))
        if date_taken is None:
            logger.warning(f"[{self.rover_name}/sol {sol}] Item {nasa_id} has no valid date_taken, skipping")
            return None

        instrument = item.get("instrument") or ""
        camera_name = map_curiosity_instrument(instrument)
        camera_id = await self.camera_id(camera_name, create=True)
        if camera_id is None:
            logger.warning(
                f"[{self.rover_name}/sol {sol}] Camera not found for {instrument!r} "
                f"(mapped to {camera_name!r}), skipping {nasa_id}"
            )
            return None

        photo_sol = to_int(item.get("sol"))
        if photo_sol is None:
            photo_sol = sol

        # subframe_rect is "(x,y,width,height)"
        rect = parse_tuple(extended.get("subframe_rect") or item.get("subframe_rect"))
        width, height = (int(rect[2]), int(rect[3])) if len(rect) >= 4 else (None, None)

        return Photo(
            nasa_id=nasa_id,
            sol=photo_sol,
            earth_date=date_taken.date(),
            date_taken_utc=date_taken,
            date_taken_mars=to_str(extended.get("lmst") or item.get("lmst")),
            date_received=parse_datetime(item.get("date_received")),
            # One size per record for Curiosity
            img_src_full=item.get("https_url") or "",
            width=width,
            height=height,
            sample_type=sample_type,
            site=to_int(item.get("site")),
            drive=to_int(item.get("drive")),
            xyz=to_str(item.get("xyz")),
            mast_az=to_float(extended.get("mast_az")),
            mast_el=to_float(extended.get("mast_el")),
            camera_vector=to_str(item.get("camera_vector")),
            camera_position=to_str(item.get("camera_position")),
            camera_model_type=to_str(item.get("camera_model_type")),
            attitude=to_str(item.get("attitude")),
            spacecraft_clock=to_float(item.get("spacecraft_clock")),
            filter_name=to_str(extended.get("filter_name")),
            title=item.get("title"),
            caption=item.get("description"),
            credit=item.get("image_credit"),
            rover_id=self.rover_id,
            camera_id=camera_id,
            raw_data=item,
        )
