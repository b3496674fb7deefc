from datetime import datetime, timezone

from rover_ingest.services.pds_index_parser import (
    ParseStats,
    clean,
    layout_for,
    parse_datetime,
    parse_float,
    parse_int,
    parse_lines,
    parse_row,
    parse_stream,
    SHORT_LAYOUT,
    STANDARD_LAYOUT,
)

from factories import pds_line


def test_standard_row_maps_every_column():
    row = parse_row(pds_line(), 1)

    assert row is not None
    assert row.column_count == 59
    assert row.volume_id == "MER1PO_0XXX"
    assert row.instrument_id == "PANCAM_LEFT"
    assert row.path_name == "/mer1po_0xxx/data/sol0100/edr/"
    assert row.file_name == "1P139000000EFF0000P2000L2M1"
    assert row.product_id == "1P139000000EFF0000P2000L2M1"
    assert row.sol == 100
    assert row.start_time == datetime(2004, 5, 5, 10, 15, 30, 123000, tzinfo=timezone.utc)
    assert row.lines == 1024
    assert row.line_samples == 512
    assert row.inst_cmprs_ratio == 4.5
    assert row.filter_name == "L2"
    assert row.site_instrument_azimuth == 123.5
    assert row.rover_motion_counter == 42
    assert row.pixel_averaging_width == 1


def test_descent_row_uses_shifted_layout():
    row = parse_row(pds_line(short=True, instrument_id="DESCENT", product_id="2E1234"), 7)

    assert row is not None
    assert row.column_count == 52
    assert row.path_name == ""
    assert row.file_name == ""
    assert row.product_id == "2E1234"
    assert row.instrument_id == "DESCENT"
    assert row.sol == 100
    assert row.lines == 1024
    assert row.filter_name == "L2"
    assert row.rover_motion_counter == 42
    assert row.pixel_averaging_height == 1
    # Past the end of a 52-column row
    assert row.pixel_averaging_width is None


def test_layout_thresholds():
    assert layout_for(59) is STANDARD_LAYOUT
    assert layout_for(55) is STANDARD_LAYOUT
    assert layout_for(54) is SHORT_LAYOUT
    assert layout_for(49) is SHORT_LAYOUT
    assert layout_for(48) is None
    assert len(SHORT_LAYOUT) == len(STANDARD_LAYOUT) - 2


def test_blank_and_garbage_numerics_become_none():
    row = parse_row(pds_line(lines=None, exposure_duration=None, line_samples="abc", start_time=None))

    assert row.lines is None
    assert row.exposure_duration is None
    assert row.line_samples is None
    assert row.start_time is None


def test_missing_sol_defaults_to_zero():
    row = parse_row(pds_line(sol=None))
    assert row.sol == 0


def test_row_without_product_id_is_rejected():
    assert parse_row(pds_line(product_id="")) is None


def test_short_row_is_rejected():
    assert parse_row("\t".join(['"A"'] * 20), 3) is None


def test_clean_strips_quotes_and_padding():
    assert clean('  " PANCAM_LEFT "  ') == "PANCAM_LEFT"
    assert clean('"') == '"'
    assert clean("") == ""
    assert clean(None) == ""


def test_numeric_helpers():
    assert parse_int(' "42" ') == 42
    assert parse_int("4.5") is None
    assert parse_int("") is None
    assert parse_float('"-10.25"') == -10.25
    assert parse_float("n/a") is None


def test_parse_datetime_variants():
    assert parse_datetime('"2004-05-05T10:15:30Z"') == datetime(2004, 5, 5, 10, 15, 30, tzinfo=timezone.utc)
    assert parse_datetime("2004-126T10:15:30") == datetime(2004, 5, 5, 10, 15, 30, tzinfo=timezone.utc)
    assert parse_datetime("2004-05-05T10:15:30+02:00") == datetime(2004, 5, 5, 8, 15, 30, tzinfo=timezone.utc)
    assert parse_datetime("UNK") is None
    assert parse_datetime("") is None


def test_to_dict_is_json_safe():
    data = parse_row(pds_line()).to_dict()

    assert data["product_id"] == "1P139000000EFF0000P2000L2M1"
    assert data["start_time"] == "2004-05-05T10:15:30.123000+00:00"
    assert data["lines"] == 1024


def test_parse_lines_skips_blank_and_malformed():
    stats = ParseStats()
    lines = [
        pds_line(product_id="A1"),
        "",
        "too\tfew\tcolumns",
        pds_line(short=True, product_id="A2"),
    ]

    rows = list(parse_lines(lines, stats))

    assert [row.product_id for row in rows] == ["A1", "A2"]
    assert stats.lines == 4
    assert stats.rejected == 1


async def test_parse_stream_yields_rows_lazily():
    async def lines():
        for product_id in ("B1", "B2", "B3"):
            yield pds_line(product_id=product_id) + "\r\n"
        yield "broken"

    stats = ParseStats()
    rows = [row async for row in parse_stream(lines(), stats)]

    assert [row.product_id for row in rows] == ["B1", "B2", "B3"]
    assert stats.rejected == 1
