"""Authentication dependencies for FastAPI routes."""

import secrets

from fastapi import Header, HTTPException

from rover_ingest.config import get_settings


async def require_admin_key(x_admin_key: str | None = Header(None)) -> None:
    """Reject requests without a matching X-Admin-Key header."""
    expected = get_settings().admin_api_key
    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing admin key")
