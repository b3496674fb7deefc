"""Parser for PDS (Planetary Data System) tab-delimited index files.

MER edrindex.tab files are hundreds of megabytes, so rows are parsed one line
at a time from a stream. Field values may be quoted and padded, and numeric or
time columns are often blank; those become None instead of errors.

Two layouts exist in the same file set:
    - PANCAM, NAVCAM, HAZCAM, MI volumes: ~59 columns
    - DESCENT volume: ~52 columns, without the PATH_NAME and FILE_NAME
      columns that follow INSTRUMENT_ID, so every later column sits two
      positions earlier.
"""

import logging
from dataclasses import asdict, dataclass, field as dc_field
from datetime import datetime, timezone
from typing import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator

logger = logging.getLogger(__name__)

# Rows with at least this many columns carry PATH_NAME/FILE_NAME
STANDARD_MIN_COLUMNS = 55
# Shorter rows must still reach ROVER_MOTION_COUNTER in the shifted layout
SHORT_MIN_COLUMNS = 49

_DATETIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%jT%H:%M:%S.%f",
    "%Y-%jT%H:%M:%S",
)


def clean(value: str | None) -> str:
    """Trim whitespace and surrounding double quotes."""
    if not value:
        return ""
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == '"' and trimmed[-1] == '"':
        trimmed = trimmed[1:-1]
    return trimmed.strip()


def parse_int(value: str | None) -> int | None:
    cleaned = clean(value)
    if not cleaned:
        return None
    try:
        return int(cleaned)
    except ValueError:
        return None


def parse_float(value: str | None) -> float | None:
    cleaned = clean(value)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, always as UTC."""
    cleaned = clean(value)
    if not cleaned:
        return None
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1]

    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        parsed = None
        for fmt in _DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(cleaned, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class PdsIndexRow:
    """One row of a MER edrindex.tab file."""

    # Core identification
    volume_id: str = ""
    data_set_id: str = ""
    instrument_host_id: str = ""  # MER1 or MER2
    instrument_id: str = ""  # PANCAM_LEFT, NAVCAM_RIGHT, ...
    path_name: str = ""
    file_name: str = ""
    release_id: str = ""
    product_id: str = ""  # unique NASA id
    product_creation_time: datetime | None = None

    target_name: str = ""
    mission_phase_name: str = ""

    # Time
    sol: int = 0  # PLANET_DAY_NUMBER
    start_time: datetime | None = None
    stop_time: datetime | None = None
    earth_received_start: datetime | None = None
    earth_received_stop: datetime | None = None
    spacecraft_clock_start: str = ""
    spacecraft_clock_stop: str = ""
    sequence_id: str = ""
    observation_id: str = ""
    local_true_solar_time: str = ""

    # Dimensions
    lines: int | None = None  # height
    line_samples: int | None = None  # width
    first_line: int | None = None
    first_line_sample: int | None = None

    # Instrument configuration
    instrument_serial_num: str = ""
    instrument_mode_id: str = ""
    inst_cmprs_ratio: float | None = None
    inst_cmprs_mode: str = ""
    inst_cmprs_filter: str = ""

    # Image metadata
    image_id: str = ""
    image_type: str = ""
    exposure_duration: float | None = None
    error_pixels: int | None = None
    filter_name: str = ""
    filter_number: int | None = None
    frame_id: str = ""
    frame_type: str = ""

    # Pointing
    azimuth_fov: float | None = None
    elevation_fov: float | None = None
    site_instrument_azimuth: float | None = None
    site_instrument_elevation: float | None = None
    rover_instrument_azimuth: float | None = None
    rover_instrument_elevation: float | None = None

    # Sun
    solar_azimuth: float | None = None
    solar_elevation: float | None = None
    solar_longitude: float | None = None

    # Processing
    application_process_id: str = ""
    reference_coord_system: str = ""
    telemetry_source_name: str = ""
    rover_motion_counter: int | None = None

    # Calibration
    flat_field_correction: str = ""
    shutter_effect_correction: str = ""
    pixel_averaging_height: int | None = None
    pixel_averaging_width: int | None = None

    column_count: int = dc_field(default=0, compare=False)

    def to_dict(self) -> dict:
        """JSON-safe copy of every field, for the raw payload column."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data


# Column order of the standard layout
STANDARD_LAYOUT: tuple[tuple[str, Callable[[str], object]], ...] = (
    ("volume_id", clean),
    ("data_set_id", clean),
    ("instrument_host_id", clean),
    ("instrument_id", clean),
    ("path_name", clean),
    ("file_name", clean),
    ("release_id", clean),
    ("product_id", clean),
    ("product_creation_time", parse_datetime),
    ("target_name", clean),
    ("mission_phase_name", clean),
    ("sol", parse_int),
    ("start_time", parse_datetime),
    ("stop_time", parse_datetime),
    ("earth_received_start", parse_datetime),
    ("earth_received_stop", parse_datetime),
    ("spacecraft_clock_start", clean),
    ("spacecraft_clock_stop", clean),
    ("sequence_id", clean),
    ("observation_id", clean),
    ("local_true_solar_time", clean),
    ("lines", parse_int),
    ("line_samples", parse_int),
    ("first_line", parse_int),
    ("first_line_sample", parse_int),
    ("instrument_serial_num", clean),
    ("instrument_mode_id", clean),
    ("inst_cmprs_ratio", parse_float),
    ("inst_cmprs_mode", clean),
    ("inst_cmprs_filter", clean),
    ("image_id", clean),
    ("image_type", clean),
    ("exposure_duration", parse_float),
    ("error_pixels", parse_int),
    ("filter_name", clean),
    ("filter_number", parse_int),
    ("frame_id", clean),
    ("frame_type", clean),
    ("azimuth_fov", parse_float),
    ("elevation_fov", parse_float),
    ("site_instrument_azimuth", parse_float),
    ("site_instrument_elevation", parse_float),
    ("rover_instrument_azimuth", parse_float),
    ("rover_instrument_elevation", parse_float),
    ("solar_azimuth", parse_float),
    ("solar_elevation", parse_float),
    ("solar_longitude", parse_float),
    ("application_process_id", clean),
    ("reference_coord_system", clean),
    ("telemetry_source_name", clean),
    ("rover_motion_counter", parse_int),
    ("flat_field_correction", clean),
    ("shutter_effect_correction", clean),
    ("pixel_averaging_height", parse_int),
    ("pixel_averaging_width", parse_int),
)

# Descent imager layout: same columns minus PATH_NAME/FILE_NAME (offset of 2)
SHORT_LAYOUT = tuple(
    column for column in STANDARD_LAYOUT if column[0] not in ("path_name", "file_name")
)


def layout_for(column_count: int):
    """Pick the column layout for a row, or None if it is too short."""
    if column_count >= STANDARD_MIN_COLUMNS:
        return STANDARD_LAYOUT
    if column_count >= SHORT_MIN_COLUMNS:
        return SHORT_LAYOUT
    return None


def parse_row(line: str, line_number: int = 0) -> PdsIndexRow | None:
    """Parse one tab-delimited index line. Returns None if the row is unusable."""
    try:
        fields = line.rstrip("\r\n").split("\t")
        layout = layout_for(len(fields))
        if layout is None:
            logger.warning(
                f"Malformed row at line {line_number}: expected at least "
                f"{SHORT_MIN_COLUMNS} fields, got {len(fields)}"
            )
            return None

        values = {}
        for index, (name, convert) in enumerate(layout):
            if index >= len(fields):
                break
            converted = convert(fields[index])
            if converted is not None:
                values[name] = converted

        if not values.get("product_id"):
            logger.warning(f"Row at line {line_number} has no PRODUCT_ID, skipping")
            return None

        return PdsIndexRow(column_count=len(fields), **values)
    except Exception as e:
        logger.error(f"Error parsing line {line_number}: {e}")
        return None


class ParseStats:
    """Line counters filled in while a stream is parsed."""

    def __init__(self):
        self.lines = 0
        self.rejected = 0


def parse_lines(lines: Iterable[str], stats: ParseStats | None = None) -> Iterator[PdsIndexRow]:
    """Parse a line iterable lazily, skipping blank and malformed lines."""
    stats = stats or ParseStats()
    for line in lines:
        stats.lines += 1
        if not line.strip():
            continue
        row = parse_row(line, stats.lines)
        if row is None:
            stats.rejected += 1
            continue
        yield row


async def parse_stream(
    lines: AsyncIterable[str], stats: ParseStats | None = None
) -> AsyncIterator[PdsIndexRow]:
    """Async variant of parse_lines for streamed HTTP bodies (httpx aiter_lines)."""
    stats = stats or ParseStats()
    async for line in lines:
        stats.lines += 1
        if not line.strip():
            continue
        row = parse_row(line, stats.lines)
        if row is None:
            stats.rejected += 1
            continue
        yield row
