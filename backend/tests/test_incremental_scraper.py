from datetime import timedelta

import pytest

from rover_ingest.errors import CurrentSolUnavailableError, UnknownRoverError
from rover_ingest.services.cancellation import CancellationToken
from rover_ingest.services.incremental_scraper import IncrementalScraperService
from rover_ingest.services.job_history_repository import JobHistoryRepository
from rover_ingest.services.scraper_state_repository import ScraperStateRepository

from factories import curiosity_item, pds_line, perseverance_image


@pytest.fixture
def service(session, client, settings):
    return IncrementalScraperService(session, client, settings)


async def test_lookback_window_with_failed_sol(service, session, nasa):
    await ScraperStateRepository(session).reset("perseverance", 100)
    nasa.perseverance_latest = 105
    nasa.perseverance[95] = [perseverance_image("P95A", sol=95), perseverance_image("P95B", sol=95)]
    nasa.perseverance[105] = [perseverance_image("P105", sol=105)]
    nasa.fail_sols.add(100)

    result = await service.scrape_incremental("perseverance", lookback_sols=7)

    assert nasa.sol_requests() == list(range(93, 106))
    assert (result.start_sol, result.end_sol, result.total_sols) == (93, 105, 13)
    assert result.failed_sols == [100]
    assert result.photos_added == 3
    assert result.successful_sols == 2
    assert result.skipped_sols == 10
    assert result.success

    state = await ScraperStateRepository(session).get("perseverance")
    assert state.last_scraped_sol == 105
    assert state.last_scrape_status == "success"
    assert state.photos_added_last_run == 3
    assert state.error_message == "Failed sols: 100"


async def test_second_run_adds_nothing(service, session, nasa):
    nasa.curiosity_current = 3
    nasa.curiosity[2] = [curiosity_item(20, sol=2), curiosity_item(21, sol=2)]

    first = await service.scrape_incremental("curiosity")
    second = await service.scrape_incremental("curiosity")

    assert first.photos_added == 2
    assert second.photos_added == 0
    assert second.failed_sols == []
    state = await ScraperStateRepository(session).get("curiosity")
    assert state.last_scraped_sol == 3


async def test_cursor_never_moves_backwards(service, session, nasa):
    await ScraperStateRepository(session).reset("perseverance", 200)
    nasa.perseverance_latest = 105

    result = await service.scrape_incremental("perseverance", lookback_sols=7)

    assert result.total_sols == 0
    assert nasa.sol_requests() == []
    state = await ScraperStateRepository(session).get("perseverance")
    assert state.last_scraped_sol == 200


async def test_current_sol_failure_stops_run(service, session, nasa):
    await ScraperStateRepository(session).reset("perseverance", 50)
    nasa.fail_current_sol = True

    result = await service.scrape_incremental("perseverance")

    assert not result.success
    assert "Could not determine current sol" in result.error_message
    assert nasa.sol_requests() == []
    # One lookup per configured retry
    assert len([r for r in nasa.requests if r.url.params.get("latest") == "true"]) == 2

    state = await ScraperStateRepository(session).get("perseverance")
    assert state.last_scrape_status == "failed"
    assert state.last_scraped_sol == 50


async def test_current_sol_falls_back_to_stored_max(session, client, nasa, settings):
    nasa.perseverance_latest = 40
    nasa.perseverance[40] = [perseverance_image("P40", sol=40)]
    await IncrementalScraperService(session, client, settings).scrape_incremental("perseverance", lookback_sols=0)

    nasa.fail_current_sol = True
    fallback = settings.model_copy(update={"current_sol_db_fallback": True})
    service = IncrementalScraperService(session, client, fallback)

    assert await service.get_current_sol("perseverance") == 41


async def test_current_sol_without_fallback_raises(service, nasa):
    nasa.fail_current_sol = True
    with pytest.raises(CurrentSolUnavailableError):
        await service.get_current_sol("curiosity")


async def test_archival_rover_current_sol_is_final_sol(service, nasa):
    assert await service.get_current_sol("opportunity") == 5111
    assert await service.get_current_sol("spirit") == 2208
    assert nasa.requests == []


async def test_cancellation_stops_at_sol_boundary(service, session, nasa):
    await ScraperStateRepository(session).reset("perseverance", 100)
    nasa.perseverance_latest = 105
    token = CancellationToken()
    seen = []

    def progress(sol, photos, completed, failed):
        seen.append(sol)
        if sol == 95:
            token.cancel()

    result = await service.scrape_incremental("perseverance", lookback_sols=7, token=token, progress=progress)

    assert result.cancelled
    assert not result.success
    assert seen == [93, 94, 95]
    assert nasa.sol_requests() == [93, 94, 95]

    state = await ScraperStateRepository(session).get("perseverance")
    assert state.last_scrape_status == "failed"
    assert state.error_message.startswith("Cancelled")


async def test_async_progress_callback(service, nasa):
    nasa.curiosity_current = 1
    calls = []

    async def progress(sol, photos, completed, failed):
        calls.append((sol, completed, failed))

    await service.scrape_incremental("curiosity", progress=progress)

    assert calls == [(0, 1, 0), (1, 2, 0)]


async def test_unknown_rover_touches_no_state(service, session, nasa):
    result = await service.scrape_incremental("pathfinder")

    assert not result.success
    assert "pathfinder" in result.error_message
    assert await ScraperStateRepository(session).list_all() == []
    assert nasa.requests == []


async def test_scrape_all_rovers(service, nasa):
    nasa.perseverance_latest = 2
    nasa.curiosity_current = 1
    nasa.perseverance[1] = [perseverance_image("P1", sol=1)]

    results = await service.scrape_all_rovers()

    assert [r.rover_name for r in results] == ["perseverance", "curiosity"]
    assert [r.photos_added for r in results] == [1, 0]
    assert all(r.success for r in results)


async def test_reset_state(service, session):
    state = await service.reset_state("Spirit", 2208)
    assert state.rover_name == "spirit"
    assert state.last_scraped_sol == 2208

    with pytest.raises(UnknownRoverError):
        await service.reset_state("pathfinder", 1)
    with pytest.raises(ValueError):
        await service.reset_state("spirit", -1)


async def test_stale_in_progress_runs_are_failed(session):
    states = ScraperStateRepository(session)
    await states.mark_in_progress("curiosity")

    assert await states.fail_stale_runs(timedelta(hours=6)) == 0
    assert await states.fail_stale_runs(timedelta(seconds=-60)) == 1

    session.expire_all()
    state = await states.get("curiosity")
    assert state.last_scrape_status == "failed"


async def test_archival_lookback_reads_each_volume_once(service, session, nasa):
    await ScraperStateRepository(session).reset("opportunity", 5111)
    nasa.pds_default = ""
    nasa.pds[("opportunity", "mer1po_0xxx")] = pds_line(product_id="1P5110", sol=5110)

    result = await service.scrape_incremental("opportunity", lookback_sols=7)

    assert (result.start_sol, result.end_sol) == (5104, 5111)
    assert result.photos_added == 1
    assert result.success
    assert len(nasa.requests) == 5


async def test_archival_rover_without_backfill_is_not_scraped_sol_by_sol(service, session, nasa):
    result = await service.scrape_incremental("spirit")

    assert not result.success
    assert "full archive scrape" in result.error_message
    assert nasa.requests == []
    state = await ScraperStateRepository(session).get("spirit")
    assert state.last_scrape_status == "failed"


async def test_scrape_all_rovers_with_history(service, session, nasa):
    nasa.perseverance_latest = 2
    nasa.perseverance[2] = [perseverance_image("P2", sol=2)]
    nasa.curiosity_current = 2
    nasa.fail_sols.add(1)

    history_id, results = await service.scrape_all_rovers_with_history(lookback_sols=2)

    assert [r.rover_name for r in results] == ["perseverance", "curiosity"]
    history = await JobHistoryRepository(session).get(history_id)
    assert history.trigger == "scheduled"
    assert history.status == "success"
    assert history.total_rovers_attempted == 2
    assert history.total_rovers_succeeded == 2
    assert history.total_photos_added == 1
    assert history.job_completed_at is not None

    details = {d.rover_name: d for d in history.rover_details}
    assert details["perseverance"].status == "partial"
    assert details["perseverance"].failed_sols == [1]
    assert (details["perseverance"].sols_attempted, details["perseverance"].sols_failed) == (3, 1)
    assert details["curiosity"].status == "partial"
