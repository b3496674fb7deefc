"""HTTP client factory for NASA endpoints."""

import httpx

from rover_ingest.config import get_settings


def create_nasa_client(timeout: float | None = None) -> httpx.AsyncClient:
    """New AsyncClient; the caller owns it and must close it."""
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=timeout or settings.http_timeout,
        follow_redirects=True,
        headers={
            "User-Agent": settings.http_user_agent,
            "Accept": "application/json, text/plain, */*",
        },
    )
