"""PDS browse-image URL construction for the MER archive."""

from rover_ingest.config import get_settings

# Volume names per MER rover: p=PANCAM, n=NAVCAM, h=HAZCAM, m=MI, d=DESCENT
MER_VOLUMES = {
    "opportunity": ["mer1po_0xxx", "mer1no_0xxx", "mer1ho_0xxx", "mer1mo_0xxx", "mer1do_0xxx"],
    "spirit": ["mer2po_0xxx", "mer2no_0xxx", "mer2ho_0xxx", "mer2mo_0xxx", "mer2do_0xxx"],
}


def _base_url(base_url: str | None) -> str:
    return (base_url or get_settings().pds_base_url).rstrip("/")


def build_browse_url(
    rover: str,
    path_name: str,
    file_name: str,
    sol: int,
    base_url: str | None = None,
) -> str:
    """Full-resolution browse JPG URL for an index row.

    Index:  /mer1po_0xxx/data/sol0001/edr/
    Browse: {base}/opportunity/mer1po_0xxx/browse/sol0001/edr/{file}.jpg
    """
    path = path_name.replace("/data/", "/browse/")

    padded = f"sol{sol:04d}"
    unpadded = f"sol{sol}"
    if unpadded in path and padded not in path:
        path = path.replace(unpadded, padded)

    path = path.lstrip("/")
    return f"{_base_url(base_url)}/{rover.lower()}/{path}{file_name}.jpg"


def extract_volume_name(path_name: str | None) -> str | None:
    """First path segment: '/mer1po_0xxx/data/...' -> 'mer1po_0xxx'."""
    if not path_name:
        return None
    parts = [part for part in path_name.split("/") if part]
    return parts[0] if parts else None


def build_index_url(rover: str, volume: str, base_url: str | None = None) -> str:
    return f"{_base_url(base_url)}/{rover.lower()}/{volume}/index/edrindex.tab"


def volumes_for_rover(rover: str) -> list[str]:
    return list(MER_VOLUMES.get(rover.lower(), []))


def camera_code_from_volume(volume: str) -> str | None:
    """'mer1po_0xxx' -> 'p'."""
    if not volume or len(volume) < 5:
        return None
    return volume[4]
