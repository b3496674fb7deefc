"""Camera name normalization.

PDS index files use instrument ids (PANCAM_LEFT, FRONT_HAZCAM_RIGHT, ...)
while the cameras table stores one canonical name per physical camera.
The Curiosity feed has its own prefix-style instrument names.
"""

import re
from types import MappingProxyType

# Index instrument id -> canonical camera name
INSTRUMENT_TO_CAMERA = MappingProxyType({
    # Panoramic Camera
    "PANCAM_LEFT": "PANCAM",
    "PANCAM_RIGHT": "PANCAM",
    "PANCAM": "PANCAM",

    # Navigation Camera
    "NAVCAM_LEFT": "NAVCAM",
    "NAVCAM_RIGHT": "NAVCAM",
    "NAVCAM": "NAVCAM",

    # Front Hazard Avoidance Camera
    "FHAZ_LEFT": "FHAZ",
    "FHAZ_RIGHT": "FHAZ",
    "FHAZ": "FHAZ",
    "FRONT_HAZCAM_LEFT": "FHAZ",
    "FRONT_HAZCAM_RIGHT": "FHAZ",

    # Rear Hazard Avoidance Camera
    "RHAZ_LEFT": "RHAZ",
    "RHAZ_RIGHT": "RHAZ",
    "RHAZ": "RHAZ",
    "REAR_HAZCAM_LEFT": "RHAZ",
    "REAR_HAZCAM_RIGHT": "RHAZ",

    # Microscopic Imager (stored under the MINITES camera row)
    "MI": "MINITES",
    "MICROSCOPIC_IMAGER": "MINITES",

    # Entry, Descent and Landing
    "DESCENT": "ENTRY",
    "DESCENT_IMAGER": "ENTRY",
    "DESCAM": "ENTRY",
    "EDL": "ENTRY",
    "ENTRY": "ENTRY",
})

# Feed instrument names we are willing to create camera rows for
PLAUSIBLE_INSTRUMENT_RE = re.compile(r"^[A-Z0-9_]+$")


def map_to_db_name(instrument_id: str | None) -> str | None:
    """Canonical camera name for an instrument id; unmapped ids pass through trimmed."""
    if not instrument_id or not instrument_id.strip():
        return instrument_id
    trimmed = instrument_id.strip()
    return INSTRUMENT_TO_CAMERA.get(trimmed.upper(), trimmed)


def has_mapping(instrument_id: str | None) -> bool:
    if not instrument_id or not instrument_id.strip():
        return False
    return instrument_id.strip().upper() in INSTRUMENT_TO_CAMERA


def supported_instruments() -> list[str]:
    return list(INSTRUMENT_TO_CAMERA.keys())


def map_curiosity_instrument(instrument: str | None) -> str:
    """Normalize a Curiosity feed instrument (MAST_LEFT, NAV_RIGHT_B, ...)."""
    if not instrument:
        return ""
    name = instrument.strip().upper()

    if name.startswith("MAST_") or name == "MASTCAM":
        return "MAST"
    if name.startswith("NAV_"):
        return "NAVCAM"
    if name.startswith("FHAZ_"):
        return "FHAZ"
    if name.startswith("RHAZ_"):
        return "RHAZ"
    if name.startswith("CHEMCAM_"):
        return "CHEMCAM"
    if name.startswith("MAHLI"):
        return "MAHLI"
    if name.startswith("MARDI"):
        return "MARDI"
    return name


def is_plausible_instrument(name: str | None) -> bool:
    return bool(name) and bool(PLAUSIBLE_INSTRUMENT_RE.match(name))
