"""
UFree — Calendar-day helpers.

All schedule logic works on calendar days in the configured timezone.
"Today" is computed here and nowhere else, so the past-date guard, the
generated week and the remote range query agree on the day boundary.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from ufree.data.models import AvailabilityStatus, DayAvailability

WEEK_LENGTH = 7
_DATE_KEY_FORMAT = "%Y-%m-%d"


def today(tz_name: str | None = None) -> date:
    """Start of the current calendar day in `tz_name` (default: settings.TIMEZONE)."""
    if tz_name is None:
        from ufree.config import settings
        tz_name = settings.TIMEZONE
    return datetime.now(ZoneInfo(tz_name)).date()


def date_key(day: date) -> str:
    """Deterministic document key for a calendar day: YYYY-MM-DD."""
    return day.strftime(_DATE_KEY_FORMAT)


def parse_date_key(key: str) -> date:
    return datetime.strptime(key, _DATE_KEY_FORMAT).date()


def generate_week(start: date, length: int = WEEK_LENGTH) -> list[DayAvailability]:
    """Fresh UNKNOWN days for `length` consecutive days from `start`."""
    return [
        DayAvailability(date=start + timedelta(days=i), status=AvailabilityStatus.UNKNOWN)
        for i in range(length)
    ]


def fill_week(
    days: list[DayAvailability], start: date, length: int = WEEK_LENGTH,
) -> list[DayAvailability]:
    """Normalize `days` to a gapless window starting at `start`.

    Days outside the window are dropped; missing days become UNKNOWN.
    If two entries share a calendar day the later one wins.
    """
    by_date = {d.date: d for d in days}
    window: list[DayAvailability] = []
    for i in range(length):
        current = start + timedelta(days=i)
        window.append(
            by_date.get(current)
            or DayAvailability(date=current, status=AvailabilityStatus.UNKNOWN)
        )
    return window


_WEEKDAYS = {
    "mon": 0, "monday": 0,
    "tue": 1, "tues": 1, "tuesday": 1,
    "wed": 2, "wednesday": 2,
    "thu": 3, "thur": 3, "thurs": 3, "thursday": 3,
    "fri": 4, "friday": 4,
    "sat": 5, "saturday": 5,
    "sun": 6, "sunday": 6,
}


def parse_day(text: str, reference: date) -> date | None:
    """Parse a user-typed day relative to `reference`.

    Accepts "today", "tomorrow", a weekday name (next occurrence, today
    included) or an ISO date. Returns None if unparseable.
    """
    value = text.strip().lower()
    if not value:
        return None
    if value == "today":
        return reference
    if value == "tomorrow":
        return reference + timedelta(days=1)
    if value in _WEEKDAYS:
        delta = (_WEEKDAYS[value] - reference.weekday()) % 7
        return reference + timedelta(days=delta)
    try:
        return parse_date_key(value)
    except ValueError:
        return None
