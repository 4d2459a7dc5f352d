from datetime import date, datetime
from zoneinfo import ZoneInfo

from backend.core import config


class Clock:
    """Source of "now" for every comparison against the current time."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Naive wall-clock time, in ``CLINIC_TIMEZONE`` when it is set."""

    def __init__(self, timezone_name: str | None = None):
        self.timezone_name = timezone_name

    def now(self) -> datetime:
        if self.timezone_name:
            return datetime.now(ZoneInfo(self.timezone_name)).replace(tzinfo=None)
        return datetime.now()


class FixedClock(Clock):
    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current


def get_clock() -> Clock:
    return SystemClock(config.CLINIC_TIMEZONE)
