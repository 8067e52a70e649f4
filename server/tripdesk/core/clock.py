"""Time helpers. All persisted timestamps are naive UTC."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from .config import settings


def utcnow() -> datetime:
    """Current time as naive UTC, matching what the database stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def departure_at(start_date: date) -> datetime:
    """Departure instant of a batch as naive UTC."""
    local = datetime.combine(
        start_date,
        time(hour=settings.departure_hour),
        tzinfo=ZoneInfo(settings.timezone),
    )
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_today() -> date:
    """Today's date in the operator's timezone."""
    return datetime.now(ZoneInfo(settings.timezone)).date()
