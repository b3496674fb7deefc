"""Sol / Earth date conversion."""

from datetime import date, datetime, timedelta, timezone

SOL_SECONDS = 88775.244  # 24h 39m 35.244s


def calculate_earth_date(sol: int, landing_date: date) -> date:
    """Earth date of a sol, counting sol 0 as the landing day."""
    landed = datetime(landing_date.year, landing_date.month, landing_date.day, tzinfo=timezone.utc)
    return (landed + timedelta(seconds=sol * SOL_SECONDS)).date()
