"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import redis
from fastapi import FastAPI
from sqlalchemy import text

from rover_ingest.config import get_settings
from rover_ingest.models.base import engine, AsyncSessionLocal, Base
from rover_ingest.api.v1 import router as api_v1_router
from rover_ingest.services.scraper_state_repository import ScraperStateRepository
from rover_ingest.services.seeder import seed_reference_data
from rover_ingest.services.trigger_service import AdminScraperTriggerService

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting %s...", settings.app_name)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified")

    async with AsyncSessionLocal() as session:
        if settings.seed_on_startup:
            created = await seed_reference_data(session)
            logger.info(f"Reference data seeded: {created}")
        await ScraperStateRepository(session).fail_stale_runs(timedelta(hours=settings.stale_state_hours))

    app.state.trigger_service = AdminScraperTriggerService(session_factory=AsyncSessionLocal)
    yield
    logger.info("Shutting down...")
    await app.state.trigger_service.shutdown()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Mars rover imagery ingestion: NASA live feeds and PDS archives",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_v1_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}


@app.get("/health/detailed")
async def detailed_health_check():
    checks = {}

    # Database
    try:
        async with AsyncSessionLocal() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            checks["database"] = {"ok": True}
    except Exception as e:
        checks["database"] = {"ok": False, "message": str(e)}

    # Redis
    try:
        r = redis.from_url(settings.redis_url, socket_timeout=5)
        r.ping()
        checks["redis"] = {"ok": True}
    except Exception as e:
        checks["redis"] = {"ok": False, "message": str(e)}

    # Celery workers
    try:
        from rover_ingest.tasks.celery_app import celery_app
        inspect = celery_app.control.inspect(timeout=5)
        active_workers = inspect.active()
        checks["celery_workers"] = {
            "ok": bool(active_workers),
            "workers": list(active_workers.keys()) if active_workers else [],
        }
    except Exception as e:
        checks["celery_workers"] = {"ok": False, "message": str(e)}

    # Scrape jobs running in this process
    service = getattr(app.state, "trigger_service", None)
    if service is not None:
        checks["scraper_jobs"] = {"ok": True, "active": len(service.tracker.get_active_jobs())}

    all_ok = all(check.get("ok", False) for check in checks.values())
    status = "healthy" if all_ok else "degraded"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
