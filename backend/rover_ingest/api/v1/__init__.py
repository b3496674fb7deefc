"""API v1 router aggregation."""

from fastapi import APIRouter

from rover_ingest.api.v1.scraper import router as scraper_router

router = APIRouter(prefix="/api/v1")

router.include_router(scraper_router)
