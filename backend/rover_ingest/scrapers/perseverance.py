"""Perseverance (Mars 2020) scraper.

The mars.nasa.gov raw image feed is paged JSON, 100 images per page.
Example: https://mars.nasa.gov/rss/api/?feed=raw_images&category=mars2020&feedtype=json&sol=100
"""

import logging
import math

from rover_ingest.errors import CurrentSolUnavailableError
from rover_ingest.models import Photo
from rover_ingest.scrapers.base import ActiveRoverScraper, parse_tuple, to_float, to_int, to_str
from rover_ingest.scrapers.registry import register_scraper
from rover_ingest.services.mars_time import calculate_earth_date
from rover_ingest.services.pds_index_parser import parse_datetime

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
# Upper bound when a response carries no total_results
MAX_PAGES = 200
FEED_PARAMS = {"feed": "raw_images", "category": "mars2020", "feedtype": "json"}


def parse_latest_sol(data: dict) -> int:
    """Current sol from a `latest=true` feed response."""
    latest = to_int(data.get("latest_sol")) if isinstance(data, dict) else None
    if latest is None:
        raise CurrentSolUnavailableError("Perseverance feed response has no latest_sol")
    return latest


def max_pages(data: dict) -> int:
    """Page count implied by `total_results`, capped at MAX_PAGES."""
    total = to_int(data.get("total_results"))
    if total is None:
        return MAX_PAGES
    return min(MAX_PAGES, max(1, math.ceil(total / PAGE_SIZE)))


@register_scraper("perseverance")
class PerseveranceScraper(ActiveRoverScraper):

    async def get_current_sol(self) -> int:
        data = await self.fetch_json(
            self.settings.perseverance_feed_url,
            params={**FEED_PARAMS, "latest": "true"},
        )
        return parse_latest_sol(data)

    async def scrape_sol(self, sol: int) -> int:
        await self.load_rover()
        writer = self.new_writer(log_prefix=f"[{self.rover_name}/sol {sol}]")

        fetched = 0
        skipped = 0
        page = 0
        while True:
            data = await self.fetch_json(
                self.settings.perseverance_feed_url,
                params={**FEED_PARAMS, "sol": sol, "num": PAGE_SIZE, "page": page},
            )
            images = data.get("images") or []
            fetched += len(images)
            await writer.load_stored(
                to_str(image.get("imageid")) for image in images if image.get("sample_type") == "Full"
            )

            for image in images:
                # Only full-resolution frames; thumbnails and subframes are noise
                if image.get("sample_type") != "Full":
                    skipped += 1
                    continue
                nasa_id = to_str(image.get("imageid"))
                if nasa_id and writer.is_known(nasa_id):
                    writer.duplicates += 1
                    continue

                try:
                    photo = await self.build_photo(image, sol)
                except Exception as e:
                    logger.warning(f"[{self.rover_name}/sol {sol}] Failed to process image {nasa_id}: {e}")
                    skipped += 1
                    continue
                if photo is None:
                    skipped += 1
                    continue
                await writer.add(photo)

            page += 1
            if len(images) < PAGE_SIZE or page >= max_pages(data):
                break

        await writer.flush()
        logger.info(
            f"[{self.rover_name}/sol {sol}] Fetched {fetched}, inserted {writer.inserted}, "
            f"duplicates {writer.duplicates}, skipped {skipped}, failed batches {writer.batch_errors}"
        )
        return writer.inserted

    async def build_photo(self, image: dict, sol: int) -> Photo | None:
        nasa_id = to_str(image.get("imageid"))
        if not nasa_id:
            logger.warning(f"[{self.rover_name}/sol {sol}] Image without imageid, skipping")
            return None

        date_taken = parse_datetime(image.get("date_taken_utc"))
        if date_taken is None:
            logger.warning(f"[{self.rover_name}/sol {sol}] Image {nasa_id} has no date_taken_utc, skipping")
            return None

        camera = image.get("camera") or {}
        instrument = (camera.get("instrument") or "").strip()
        camera_id = await self.camera_id(instrument, create=True)
        if camera_id is None:
            logger.warning(f"[{self.rover_name}/sol {sol}] Unknown instrument {instrument!r} for {nasa_id}, skipping")
            return None

        photo_sol = to_int(image.get("sol"))
        if photo_sol is None:
            photo_sol = sol

        if self.landing_date is not None:
            earth_date = calculate_earth_date(photo_sol, self.landing_date)
        else:
            earth_date = date_taken.date()

        extended = image.get("extended") or {}
        image_files = image.get("image_files") or {}
        dimension = parse_tuple(extended.get("dimension"))
        width, height = (int(dimension[0]), int(dimension[1])) if len(dimension) >= 2 else (None, None)

        return Photo(
            nasa_id=nasa_id,
            sol=photo_sol,
            earth_date=earth_date,
            date_taken_utc=date_taken,
            date_taken_mars=to_str(image.get("date_taken_mars")),
            date_received=parse_datetime(image.get("date_received")),
            img_src_small=image_files.get("small") or "",
            img_src_medium=image_files.get("medium") or "",
            img_src_large=image_files.get("large") or "",
            img_src_full=image_files.get("full_res") or "",
            width=width,
            height=height,
            sample_type=image.get("sample_type") or "",
            site=to_int(image.get("site")),
            drive=to_int(image.get("drive")),
            xyz=to_str(extended.get("xyz")),
            mast_az=to_float(extended.get("mastAz")),
            mast_el=to_float(extended.get("mastEl")),
            camera_vector=to_str(camera.get("camera_vector")),
            camera_position=to_str(camera.get("camera_position")),
            camera_model_type=to_str(camera.get("camera_model_type")),
            attitude=to_str(image.get("attitude")),
            spacecraft_clock=to_float(extended.get("sclk")),
            filter_name=to_str(camera.get("filter_name")),
            title=image.get("title"),
            caption=image.get("caption"),
            credit=image.get("credit"),
            rover_id=self.rover_id,
            camera_id=camera_id,
            raw_data=image,
        )
