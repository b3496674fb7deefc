"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from rover_ingest.config import get_settings

settings = get_settings()

celery_app = Celery(
    "rover_ingest",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["rover_ingest.tasks.scrape_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    task_track_started=True,
    task_time_limit=3 * 3600,
    task_soft_time_limit=3 * 3600 - 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {}

if settings.scheduled_scrape_enabled:
    celery_app.conf.beat_schedule["daily-incremental-scrape"] = {
        "task": "rover_ingest.tasks.scrape_tasks.run_scheduled_incremental_scrape",
        "schedule": crontab(minute=0, hour=settings.scheduled_scrape_hour_utc),
    }
