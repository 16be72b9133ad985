"""Wall clock for leave and gate rules. All instants are naive campus-local datetimes."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


class Clock:
    def __init__(self, timezone: str = settings.campus_timezone) -> None:
        self._tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._tz).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a frozen clock."""
    return _clock


def campus_now() -> datetime:
    """Column default for rows written outside the services."""
    return _clock.now()
