"""Scraper registry: maps rover names to scraper classes."""

import logging
from typing import Type

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from rover_ingest.config import Settings
from rover_ingest.errors import UnknownRoverError
from rover_ingest.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

# Rover name -> scraper class mapping
_REGISTRY: dict[str, Type[BaseScraper]] = {}


def register_scraper(rover: str):
    """Decorator to register a scraper class for a rover."""
    def decorator(cls: Type[BaseScraper]):
        _REGISTRY[rover.lower()] = cls
        cls.rover_name = rover.lower()
        logger.debug(f"Registered scraper for rover: {rover}")
        return cls
    return decorator


def get_scraper_class(rover: str) -> Type[BaseScraper] | None:
    """Look up the scraper class for a rover (case-insensitive)."""
    return _REGISTRY.get(rover.lower())


def list_rovers() -> list[str]:
    """List all registered rovers."""
    return list(_REGISTRY.keys())


def build_scraper(
    rover: str,
    session: AsyncSession,
    client: httpx.AsyncClient,
    settings: Settings | None = None,
) -> BaseScraper:
    scraper_class = get_scraper_class(rover)
    if scraper_class is None:
        raise UnknownRoverError(rover)
    return scraper_class(session, client, settings)
