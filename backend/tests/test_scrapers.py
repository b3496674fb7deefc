import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from rover_ingest.errors import CurrentSolUnavailableError, UnknownRoverError
from rover_ingest.models import Camera, Photo
from rover_ingest.scrapers.curiosity import CuriosityScraper, parse_current_sol
from rover_ingest.scrapers.mer import OpportunityScraper, SpiritScraper
from rover_ingest.scrapers.perseverance import PerseveranceScraper, parse_latest_sol
from rover_ingest.scrapers.registry import build_scraper, get_scraper_class, list_rovers

from factories import curiosity_item, pds_line, perseverance_image


async def _photos(session, **filters) -> list[Photo]:
    query = select(Photo).order_by(Photo.nasa_id)
    for column, value in filters.items():
        query = query.where(getattr(Photo, column) == value)
    return list((await session.execute(query)).scalars().all())


# Registry

def test_all_rovers_registered():
    assert set(list_rovers()) >= {"perseverance", "curiosity", "opportunity", "spirit"}
    assert get_scraper_class("Curiosity") is CuriosityScraper
    assert get_scraper_class("pathfinder") is None


async def test_build_scraper_unknown_rover(session, client):
    with pytest.raises(UnknownRoverError):
        build_scraper("pathfinder", session, client)


# Perseverance

async def test_perseverance_current_sol(session, client, nasa, settings):
    nasa.perseverance_latest = 1234
    scraper = PerseveranceScraper(session, client, settings)
    assert await scraper.get_current_sol() == 1234


def test_parse_latest_sol():
    assert parse_latest_sol({"latest_sol": "98"}) == 98
    with pytest.raises(CurrentSolUnavailableError):
        parse_latest_sol({"images": []})


async def test_perseverance_pages_until_short_page(session, client, nasa, settings):
    nasa.perseverance[100] = [perseverance_image(f"P{i:04d}") for i in range(150)]
    scraper = PerseveranceScraper(session, client, settings)

    inserted = await scraper.scrape_sol(100)

    assert inserted == 150
    pages = [r.url.params["page"] for r in nasa.requests if r.url.params.get("sol") == "100"]
    assert pages == ["0", "1"]
    assert len(await _photos(session, sol=100)) == 150


async def test_perseverance_keeps_only_full_frames(session, client, nasa, settings):
    nasa.perseverance[100] = [
        perseverance_image("FULL1"),
        perseverance_image("THUMB1", sample_type="Thumbnail"),
        perseverance_image("SUB1", sample_type="Subframe"),
    ]
    scraper = PerseveranceScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 1
    assert [p.nasa_id for p in await _photos(session)] == ["FULL1"]


async def test_perseverance_rescrape_is_idempotent(session, client, nasa, settings):
    nasa.perseverance[100] = [perseverance_image("A"), perseverance_image("B"), perseverance_image("A")]
    scraper = PerseveranceScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 2
    assert await scraper.scrape_sol(100) == 0
    assert len(await _photos(session)) == 2


async def test_perseverance_photo_fields(session, client, nasa, settings):
    nasa.perseverance[10] = [perseverance_image("NLF_0010", sol=10)]
    scraper = PerseveranceScraper(session, client, settings)

    await scraper.scrape_sol(10)

    photo = (await _photos(session))[0]
    assert photo.sol == 10
    assert photo.earth_date == date(2021, 2, 28)
    assert photo.img_src_small.endswith("NLF_0010_320.jpg")
    assert photo.img_src_full.endswith("NLF_0010.png")
    assert (photo.width, photo.height) == (1280, 960)
    assert photo.mast_az == 155.5
    assert photo.spacecraft_clock == 675000000.5
    assert photo.drive == 1250
    assert photo.raw_data["imageid"] == "NLF_0010"


async def test_perseverance_creates_unknown_plausible_camera(session, client, nasa, settings):
    image = perseverance_image("ACI1")
    image["camera"]["instrument"] = "SHERLOC_ACI"
    nasa.perseverance[100] = [image]
    scraper = PerseveranceScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 1

    camera = (await session.execute(select(Camera).where(Camera.name == "SHERLOC_ACI"))).scalar_one()
    assert camera.rover_id == scraper.rover_id
    assert (await _photos(session))[0].camera_id == camera.id


async def test_perseverance_skips_implausible_instrument(session, client, nasa, settings):
    image = perseverance_image("BAD1")
    image["camera"]["instrument"] = "not a camera"
    nasa.perseverance[100] = [image, perseverance_image("GOOD1")]
    scraper = PerseveranceScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 1
    assert [p.nasa_id for p in await _photos(session)] == ["GOOD1"]


async def test_perseverance_malformed_record_is_isolated(session, client, nasa, settings):
    images = [perseverance_image(f"OK{i:04d}") for i in range(999)]
    broken = perseverance_image("BROKEN", camera="not-a-dict")
    images.insert(500, broken)
    nasa.perseverance[100] = images
    scraper = PerseveranceScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 999


async def test_id_stored_under_another_sol_is_skipped(session, client, nasa, settings):
    scraper = PerseveranceScraper(session, client, settings)
    nasa.perseverance[5] = [perseverance_image("DUP", sol=5)]
    assert await scraper.scrape_sol(5) == 1

    # NASA re-reports an already stored image under a later sol
    nasa.perseverance[6] = [
        perseverance_image("DUP", sol=6),
        perseverance_image("NEW1", sol=6),
        perseverance_image("NEW2", sol=6),
    ]
    assert await scraper.scrape_sol(6) == 2
    assert await scraper.scrape_sol(6) == 0

    assert [p.nasa_id for p in await _photos(session)] == ["DUP", "NEW1", "NEW2"]
    assert (await _photos(session, nasa_id="DUP"))[0].sol == 5


async def test_batch_is_retried_without_ids_stored_meanwhile(session_factory, client, settings):
    async with session_factory() as first, session_factory() as second:
        early = PerseveranceScraper(first, client, settings)
        late = PerseveranceScraper(second, client, settings)
        await late.load_rover()

        # The late writer checked the store before the early one committed
        writer = late.new_writer()
        for nasa_id in ("SHARED", "ONLY_LATE"):
            await writer.add(await late.build_photo(perseverance_image(nasa_id, sol=6), 6))

        early_writer = early.new_writer()
        await early.load_rover()
        await early_writer.add(await early.build_photo(perseverance_image("SHARED", sol=6), 6))
        assert await early_writer.flush() == 1

        assert await writer.flush() == 1
        assert (writer.inserted, writer.duplicates, writer.batch_errors) == (1, 1, 0)

    async with session_factory() as session:
        assert [p.nasa_id for p in await _photos(session)] == ["ONLY_LATE", "SHARED"]


async def test_unstorable_batch_is_dropped_and_writer_continues(session, client, settings):
    settings.batch_size = 1
    scraper = PerseveranceScraper(session, client, settings)
    await scraper.load_rover()
    writer = scraper.new_writer()

    broken = await scraper.build_photo(perseverance_image("NOSOL"), 100)
    broken.sol = None
    await writer.add(broken)
    await writer.add(await scraper.build_photo(perseverance_image("GOOD"), 100))

    assert (writer.inserted, writer.batch_errors, writer.dropped) == (1, 1, 1)
    assert [p.nasa_id for p in await _photos(session)] == ["GOOD"]


async def test_overlapping_scrapes_in_parallel_store_each_id_once(session_factory, nasa, settings):
    nasa.perseverance[6] = [perseverance_image(i, sol=6) for i in ("A1", "A2", "S1", "S2")]
    nasa.perseverance[7] = [perseverance_image(i, sol=7) for i in ("S1", "S2", "B1")]

    async def scrape(sol):
        async with session_factory() as session, nasa.client() as client:
            return await PerseveranceScraper(session, client, settings).scrape_sol(sol)

    inserted = await asyncio.gather(scrape(6), scrape(7), scrape(6))

    assert sum(inserted) == 5
    async with session_factory() as session:
        ids = [p.nasa_id for p in await _photos(session)]
    assert ids == ["A1", "A2", "B1", "S1", "S2"]


async def test_paging_stops_at_total_results(session, client, nasa, settings):
    # A feed that ignores `page` keeps returning the first page
    nasa.perseverance_ignore_page = True
    nasa.perseverance[100] = [perseverance_image(f"P{i:03d}") for i in range(100)]
    scraper = PerseveranceScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 100
    assert len(nasa.requests) == 1


async def test_perseverance_http_error_propagates(session, client, nasa, settings):
    nasa.fail_sols.add(100)
    scraper = PerseveranceScraper(session, client, settings)
    with pytest.raises(Exception):
        await scraper.scrape_sol(100)


# Curiosity

def test_parse_current_sol():
    assert parse_current_sol({"items": [{"sol": 4100}]}) == 4100
    with pytest.raises(CurrentSolUnavailableError):
        parse_current_sol({"items": []})


async def test_curiosity_current_sol(session, client, nasa, settings):
    nasa.curiosity_current = 4100
    scraper = CuriosityScraper(session, client, settings)
    assert await scraper.get_current_sol() == 4100


async def test_curiosity_maps_instruments_and_skips_thumbnails(session, client, nasa, settings):
    thumb = curiosity_item(3)
    thumb["extended"]["sample_type"] = "thumbnail"
    nasa.curiosity[100] = [
        curiosity_item(1, instrument="NAV_RIGHT_B"),
        curiosity_item(2, instrument="MAST_LEFT"),
        thumb,
    ]
    scraper = CuriosityScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 2

    photos = await _photos(session)
    assert [p.nasa_id for p in photos] == ["1", "2"]
    cameras = dict((await session.execute(select(Camera.id, Camera.name))).all())
    assert [cameras[p.camera_id] for p in photos] == ["NAVCAM", "MAST"]


async def test_curiosity_photo_fields(session, client, nasa, settings):
    nasa.curiosity[100] = [curiosity_item(1001)]
    scraper = CuriosityScraper(session, client, settings)

    await scraper.scrape_sol(100)

    photo = (await _photos(session))[0]
    assert photo.earth_date == date(2023, 1, 10)
    assert photo.img_src_full == "https://mars.nasa.gov/msl-raw-images/1001.JPG"
    assert (photo.width, photo.height) == (1024, 1024)
    assert photo.date_taken_mars == "Sol-00100M10:00:00.000"
    assert photo.caption == "This image was taken by Right Navigation Camera."


async def test_curiosity_uses_total_for_paging(session, client, nasa, settings):
    nasa.curiosity[100] = [curiosity_item(i) for i in range(1, 451)]
    scraper = CuriosityScraper(session, client, settings)

    assert await scraper.scrape_sol(100) == 450
    pages = [r.url.params["page"] for r in nasa.requests if "condition_2" in r.url.params]
    assert pages == ["0", "1", "2"]


async def test_curiosity_404_means_no_photos(session, client, nasa, settings):
    scraper = CuriosityScraper(session, client, settings)
    assert await scraper.scrape_sol(3) == 0


# Opportunity / Spirit

async def test_mer_volume_ingest(session, client, nasa, settings):
    nasa.pds[("opportunity", "mer1po_0xxx")] = "\n".join([
        pds_line(product_id="1P1"),
        pds_line(product_id="1P2", sol=101, path_name="/mer1po_0xxx/data/sol0101/edr/", file_name="1P2"),
        "",
        "malformed\trow",
    ])
    scraper = OpportunityScraper(session, client, settings)

    assert await scraper.scrape_volume("mer1po_0xxx") == 2

    photos = await _photos(session)
    assert [p.nasa_id for p in photos] == ["1P1", "1P2"]
    first = photos[0]
    assert first.img_src_full == (
        "https://planetarydata.jpl.nasa.gov/img/data/mer/opportunity/"
        "mer1po_0xxx/browse/sol0100/edr/1P139000000EFF0000P2000L2M1.jpg"
    )
    assert first.earth_date == date(2004, 5, 5)
    assert (first.width, first.height) == (512, 1024)
    assert first.title == "Sol 100 - L2"
    assert first.caption == "Panoramic Camera image from sol 100"
    assert first.credit == "NASA/JPL-Caltech"
    assert first.spacecraft_clock == 137000000.123
    assert first.raw_data["product_id"] == "1P1"

    # Re-running the volume adds nothing
    assert await scraper.scrape_volume("mer1po_0xxx") == 0


async def test_mer_descent_row_has_no_browse_url(session, client, nasa, settings):
    nasa.pds[("spirit", "mer2do_0xxx")] = pds_line(
        short=True, instrument_id="DESCENT", instrument_host_id="MER2", product_id="2E1"
    )
    scraper = SpiritScraper(session, client, settings)

    assert await scraper.scrape_volume("mer2do_0xxx") == 1

    photo = (await _photos(session))[0]
    assert photo.img_src_full == ""
    camera = await session.get(Camera, photo.camera_id)
    assert camera.name == "ENTRY"


async def test_mer_unknown_camera_is_skipped(session, client, nasa, settings):
    nasa.pds[("opportunity", "mer1po_0xxx")] = "\n".join([
        pds_line(product_id="1X1", instrument_id="APXS"),
        pds_line(product_id="1P1"),
    ])
    scraper = OpportunityScraper(session, client, settings)

    assert await scraper.scrape_volume("mer1po_0xxx") == 1


async def test_mer_scrape_all_continues_after_failed_volume(session, client, nasa, settings):
    # Only the PANCAM volume exists; the rest return 404
    nasa.pds[("opportunity", "mer1po_0xxx")] = pds_line(product_id="1P1")
    nasa.pds[("opportunity", "mer1mo_0xxx")] = pds_line(
        product_id="1M1", instrument_id="MI", path_name="/mer1mo_0xxx/data/sol0100/edr/", file_name="1M1"
    )
    scraper = OpportunityScraper(session, client, settings)

    assert await scraper.scrape_all() == 2
    assert len([r for r in nasa.requests if r.url.path.endswith("edrindex.tab")]) == 5


async def test_mer_scrape_sol_filters_rows(session, client, nasa, settings):
    nasa.pds_default = ""
    nasa.pds[("opportunity", "mer1no_0xxx")] = "\n".join([
        pds_line(product_id="1N100", instrument_id="NAVCAM_LEFT"),
        pds_line(product_id="1N101", instrument_id="NAVCAM_LEFT", sol=101),
    ])
    scraper = OpportunityScraper(session, client, settings)

    assert await scraper.scrape_sol(101) == 1
    assert [p.nasa_id for p in await _photos(session)] == ["1N101"]


async def test_mer_prepared_range_reads_each_volume_once(session, client, nasa, settings):
    nasa.pds_default = ""
    nasa.pds[("opportunity", "mer1no_0xxx")] = "\n".join([
        pds_line(product_id="1N099", instrument_id="NAVCAM_LEFT", sol=99),
        pds_line(product_id="1N100", instrument_id="NAVCAM_LEFT"),
        pds_line(product_id="1N101", instrument_id="NAVCAM_LEFT", sol=101),
    ])
    scraper = OpportunityScraper(session, client, settings)

    await scraper.prepare_range(100, 102)
    inserted = [await scraper.scrape_sol(sol) for sol in (100, 101, 102)]

    assert inserted == [1, 1, 0]
    assert len(nasa.requests) == 5
    assert [p.nasa_id for p in await _photos(session)] == ["1N100", "1N101"]


async def test_mer_prepare_range_rejects_wide_windows(session, client, nasa, settings):
    scraper = OpportunityScraper(session, client, settings)
    with pytest.raises(ValueError, match="full archive scrape"):
        await scraper.prepare_range(0, scraper.final_sol)
    assert nasa.requests == []


async def test_mer_scrape_latest_is_noop(session, client, nasa, settings):
    scraper = SpiritScraper(session, client, settings)
    assert await scraper.scrape_latest() == 0
    assert nasa.requests == []
