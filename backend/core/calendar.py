"""Day-of-week, date range and time-of-day arithmetic.

All intervals of time are half-open, ``[start, end)``. Date ranges are
inclusive on both ends.
"""

import enum
from datetime import date, datetime, time

from backend.core.errors import ParseError

MINUTES_PER_DAY = 24 * 60


class DayOfWeek(str, enum.Enum):
    MONDAY = 'MONDAY'
    TUESDAY = 'TUESDAY'
    WEDNESDAY = 'WEDNESDAY'
    THURSDAY = 'THURSDAY'
    FRIDAY = 'FRIDAY'
    SATURDAY = 'SATURDAY'
    SUNDAY = 'SUNDAY'

    @property
    def number(self) -> int:
        """0 for Monday through 6 for Sunday, as ``date.weekday()``."""
        return _DAY_ORDER.index(self)

    @classmethod
    def from_number(cls, number: int) -> 'DayOfWeek':
        return _DAY_ORDER[number]


_DAY_ORDER = list(DayOfWeek)


def day_of_week(value: date) -> DayOfWeek:
    return DayOfWeek.from_number(value.weekday())


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ParseError(f'Invalid date {value!r}; expected YYYY-MM-DD.') from exc


def parse_time(value: str | time) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS``."""
    if isinstance(value, time):
        return value

    if not isinstance(value, str):
        raise ParseError(f'Invalid time {value!r}; expected HH:MM:SS.')

    parts = value.strip().split(':')
    if len(parts) not in (2, 3) or not all(part.isdigit() and len(part) == 2 for part in parts):
        raise ParseError(f'Invalid time {value!r}; expected HH:MM:SS.')

    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    try:
        return time(hour, minute, second)
    except ValueError as exc:
        raise ParseError(f'Invalid time {value!r}; expected HH:MM:SS.') from exc


def time_to_minutes(value: str | time) -> int:
    """Minutes since midnight. Seconds are truncated."""
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'{minutes} minutes is outside a single day.')
    return time(minutes // 60, minutes % 60)


def add_minutes(value: str | time, minutes: int) -> time:
    """Shift a time of day. The result must stay within the same day."""
    return minutes_to_time(time_to_minutes(value) + minutes)


def range_overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


def date_in_range(value: date, date_from: date, date_to: date | None = None) -> bool:
    if date_to is None:
        date_to = date_from
    return date_from <= value <= date_to


def combine(value: date, at: time) -> datetime:
    return datetime.combine(value, at)
