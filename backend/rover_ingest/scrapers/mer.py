"""Opportunity and Spirit (MER) archival scrapers.

Both missions are over; their imagery lives in the PDS archive as one
edrindex.tab per camera volume (PANCAM, NAVCAM, HAZCAM, MI, DESCENT).
Index files are streamed line by line since the larger ones run to
hundreds of megabytes.
"""

import logging
from collections import defaultdict

from rover_ingest.models import Photo
from rover_ingest.scrapers.base import BaseScraper, PhotoBatchWriter
from rover_ingest.scrapers.registry import register_scraper
from rover_ingest.services.browse_url_builder import build_browse_url, build_index_url, volumes_for_rover
from rover_ingest.services.camera_mapper import map_to_db_name
from rover_ingest.services.cancellation import CancellationToken
from rover_ingest.services.pds_index_parser import ParseStats, PdsIndexRow, parse_stream

logger = logging.getLogger(__name__)

CREDIT = "NASA/JPL-Caltech"


def parse_sclk(value: str) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class MerArchiveScraper(BaseScraper):
    """Shared PDS index ingestion for the two MER rovers."""

    is_active = False
    final_sol: int = 0

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._window: tuple[int, int] | None = None
        self._rows_by_sol: dict[int, list[PdsIndexRow]] = {}

    @property
    def volumes(self) -> list[str]:
        return volumes_for_rover(self.rover_name)

    async def scrape_latest(self) -> int:
        logger.info(f"[{self.rover_name}] Mission complete, nothing new to scrape")
        return 0

    async def prepare_range(self, start_sol: int, end_sol: int) -> None:
        """Stream every volume once and keep the rows of sols start_sol..end_sol.

        Later scrape_sol() calls inside the range are served from memory, so a
        lookback window costs one pass over the indexes instead of one per sol.
        Wider ranges belong to scrape_all().
        """
        self._window = None
        self._rows_by_sol = {}
        if end_sol < start_sol:
            return
        limit = self.settings.archive_window_max_sols
        if end_sol - start_sol + 1 > limit:
            raise ValueError(
                f"Sols {start_sol}-{end_sol} span more than {limit} sols; "
                f"run a full archive scrape for {self.rover_name} instead"
            )

        rows_by_sol: dict[int, list[PdsIndexRow]] = defaultdict(list)
        for volume in self.volumes:
            for row in await self.fetch_rows(volume, start_sol, end_sol):
                rows_by_sol[row.sol].append(row)

        self._window = (start_sol, end_sol)
        self._rows_by_sol = dict(rows_by_sol)
        logger.info(
            f"[{self.rover_name}] Buffered {sum(len(r) for r in rows_by_sol.values())} rows "
            f"for sols {start_sol}-{end_sol}"
        )

    async def scrape_sol(self, sol: int) -> int:
        """Ingest one sol, from the prepared range when it covers `sol`."""
        if self._window is not None and self._window[0] <= sol <= self._window[1]:
            rows = self._rows_by_sol.get(sol, [])
        else:
            logger.warning(f"[{self.rover_name}/sol {sol}] No prepared range, streaming every volume")
            rows = []
            for volume in self.volumes:
                rows.extend(await self.fetch_rows(volume, sol, sol))
        return await self.ingest_rows(rows, f"[{self.rover_name}/sol {sol}]")

    async def scrape_all(self, token: CancellationToken | None = None) -> int:
        """Ingest every volume; a failed volume is logged and skipped."""
        total = 0
        for volume in self.volumes:
            if token is not None and token.is_cancelled:
                logger.info(f"[{self.rover_name}] Cancelled before volume {volume}")
                break
            try:
                inserted = await self.scrape_volume(volume)
                total += inserted
                logger.info(f"[{self.rover_name}/{volume}] Completed: {inserted} photos inserted")
            except Exception as e:
                logger.error(f"[{self.rover_name}/{volume}] Failed, continuing with next volume: {e}", exc_info=True)

        logger.info(f"[{self.rover_name}] All volumes done: {total} photos inserted")
        return total

    async def fetch_rows(self, volume: str, start_sol: int, end_sol: int) -> list[PdsIndexRow]:
        """Rows of one volume whose sol falls in start_sol..end_sol."""
        url = build_index_url(self.rover_name, volume, self.settings.pds_base_url)
        stats = ParseStats()
        rows = []
        async with self.client.stream("GET", url) as resp:
            resp.raise_for_status()
            async for row in parse_stream(resp.aiter_lines(), stats):
                if start_sol <= row.sol <= end_sol:
                    rows.append(row)
        logger.debug(f"[{self.rover_name}/{volume}] {len(rows)} rows in sols {start_sol}-{end_sol}")
        return rows

    async def ingest_rows(self, rows: list[PdsIndexRow], tag: str) -> int:
        rover_id = await self.load_rover()
        full_names = await self.store.camera_full_names(rover_id)
        writer = self.new_writer(log_prefix=tag)
        await writer.load_stored(row.product_id for row in rows)

        skipped = 0
        for row in rows:
            if not await self._stage(row, writer, full_names, tag):
                skipped += 1

        await writer.flush()
        logger.info(
            f"{tag} {len(rows)} rows, inserted {writer.inserted}, duplicates {writer.duplicates}, "
            f"skipped {skipped}, batch errors {writer.batch_errors}"
        )
        return writer.inserted

    async def scrape_volume(self, volume: str) -> int:
        """Stream one whole volume index into the store."""
        rover_id = await self.load_rover()
        tag = f"[{self.rover_name}/{volume}]"
        url = build_index_url(self.rover_name, volume, self.settings.pds_base_url)
        interval = self.settings.progress_log_interval

        logger.info(f"{tag} Loading existing photo ids")
        known_ids = await self.store.existing_ids(rover_id)
        full_names = await self.store.camera_full_names(rover_id)
        writer = self.new_writer(known_ids, tag)

        stats = ParseStats()
        processed = 0
        skipped = 0

        logger.info(f"{tag} Streaming {url}")
        async with self.client.stream("GET", url) as resp:
            resp.raise_for_status()
            async for row in parse_stream(resp.aiter_lines(), stats):
                processed += 1
                if not await self._stage(row, writer, full_names, tag):
                    skipped += 1

                if interval and processed % interval == 0:
                    logger.info(
                        f"{tag} Processed {processed} rows, inserted {writer.inserted}, "
                        f"skipped {skipped}, batch errors {writer.batch_errors}"
                    )

        await writer.flush()
        logger.info(
            f"{tag} Complete: processed {processed} rows, inserted {writer.inserted}, "
            f"duplicates {writer.duplicates}, skipped {skipped}, malformed {stats.rejected}, "
            f"batch errors {writer.batch_errors}"
        )
        return writer.inserted

    async def _stage(self, row: PdsIndexRow, writer: PhotoBatchWriter, full_names: dict[int, str], tag: str) -> bool:
        """Hand a row to the writer. False when the row was unusable."""
        if writer.is_known(row.product_id):
            writer.duplicates += 1
            return True
        try:
            photo = await self.build_photo(row, full_names)
        except Exception as e:
            logger.warning(f"{tag} Failed to process row {row.product_id}: {e}")
            return False
        if photo is None:
            return False
        await writer.add(photo)
        return True

    async def build_photo(self, row: PdsIndexRow, full_names: dict[int, str]) -> Photo | None:
        camera_name = map_to_db_name(row.instrument_id)
        camera_id = await self.camera_id(camera_name)
        if camera_id is None:
            logger.warning(
                f"[{self.rover_name}] Camera not found: {row.instrument_id} "
                f"(mapped to {camera_name}), skipping {row.product_id}"
            )
            return None

        # Descent imager rows carry no path/file name
        img_src = ""
        if row.path_name and row.file_name:
            img_src = build_browse_url(
                self.rover_name, row.path_name, row.file_name, row.sol, self.settings.pds_base_url
            )

        camera_full_name = full_names.get(camera_id) or camera_name
        return Photo(
            nasa_id=row.product_id,
            sol=row.sol,
            earth_date=row.start_time.date() if row.start_time else None,
            date_taken_utc=row.start_time,
            date_taken_mars=row.local_true_solar_time or None,
            date_received=row.earth_received_start,
            img_src_full=img_src,
            width=row.line_samples,
            height=row.lines,
            sample_type="full",
            mast_az=row.site_instrument_azimuth,
            mast_el=row.site_instrument_elevation,
            spacecraft_clock=parse_sclk(row.spacecraft_clock_start),
            filter_name=row.filter_name or None,
            title=f"Sol {row.sol} - {row.filter_name}",
            caption=f"{camera_full_name} image from sol {row.sol}",
            credit=CREDIT,
            rover_id=self.rover_id,
            camera_id=camera_id,
            raw_data=row.to_dict(),
        )


@register_scraper("opportunity")
class OpportunityScraper(MerArchiveScraper):
    final_sol = 5111


@register_scraper("spirit")
class SpiritScraper(MerArchiveScraper):
    final_sol = 2208
