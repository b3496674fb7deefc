"""Shared fixtures: a seeded SQLite database per test and a fake NASA backend."""

import os

# Must be set before rover_ingest reads its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["SEED_ON_STARTUP"] = "false"

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import rover_ingest.scrapers  # noqa: F401 (registers scrapers)
from rover_ingest.config import Settings
from rover_ingest.models import Base
from rover_ingest.services.seeder import seed_reference_data

from factories import FakeNasa


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/rover_ingest.db",
        sol_delay_seconds=0,
        full_scrape_sol_delay_seconds=0,
        rover_delay_seconds=0,
        current_sol_retries=2,
        current_sol_backoff_seconds=0,
        job_retention=100,
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await seed_reference_data(session)
    return factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def nasa():
    return FakeNasa()


@pytest.fixture
async def client(nasa):
    async with nasa.client() as client:
        yield client
