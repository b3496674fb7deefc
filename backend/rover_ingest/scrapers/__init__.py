"""Scraper package: import all scrapers to trigger @register_scraper decorators."""

from rover_ingest.scrapers.perseverance import PerseveranceScraper  # noqa: F401
from rover_ingest.scrapers.curiosity import CuriosityScraper  # noqa: F401
from rover_ingest.scrapers.mer import OpportunityScraper, SpiritScraper  # noqa: F401
