"""Pipeline exceptions and failed-sol error classification."""

import asyncio
import json

import httpx


class IngestError(Exception):
    """Base class for errors raised by the ingestion pipeline."""
    pass


class UnknownRoverError(IngestError):
    """Raised when no scraper is registered for a rover name."""

    def __init__(self, rover_name: str):
        super().__init__(f"No scraper found for rover: {rover_name}")
        self.rover_name = rover_name


class RoverNotSeededError(IngestError):
    """Raised when the rover's reference row is missing from the database."""

    def __init__(self, rover_name: str):
        super().__init__(f"Rover {rover_name} not found in database")
        self.rover_name = rover_name


class CurrentSolUnavailableError(IngestError):
    """Raised when the current mission sol cannot be determined."""
    pass


def classify_error(exc: BaseException) -> str:
    """Short label for a failed sol, used in logs and error summaries."""
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP_{exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "Timeout"
    if isinstance(exc, httpx.TransportError):
        return "NetworkError"
    if isinstance(exc, (json.JSONDecodeError, KeyError, TypeError)):
        return "ParseError"
    if isinstance(exc, asyncio.CancelledError):
        return "Cancelled"
    return "Unknown"


def concise_message(exc: BaseException, limit: int = 200) -> str:
    message = str(exc) or exc.__class__.__name__
    if len(message) > limit:
        message = message[:limit] + "..."
    return message
