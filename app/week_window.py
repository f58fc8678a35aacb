from __future__ import annotations

import datetime
from typing import List, Union


WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DayLike = Union[str, int]


def weekday_index(day: DayLike) -> int:
    """Return 0 (Monday) .. 6 (Sunday) for a weekday name, token or index."""
    if isinstance(day, bool):
        raise ValueError(f"Unknown weekday {day!r}.")
    if isinstance(day, int):
        if 0 <= day <= 6:
            return day
        raise ValueError(f"Weekday index must be 0-6, got {day}.")
    label = (day or "").strip().lower()
    for index, name in enumerate(WEEKDAY_NAMES):
        if label == name or label == name[:3]:
            return index
    raise ValueError(f"Unknown weekday {day!r}.")


def weekday_name(date_value: datetime.date) -> str:
    return WEEKDAY_NAMES[date_value.weekday()]


def _as_date(value: datetime.date | datetime.datetime) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    raise TypeError("Expected a date or datetime instance.")


def week_start(reference: datetime.date | datetime.datetime, start_day: DayLike = "monday") -> datetime.date:
    """Return the latest ``start_day`` on or before ``reference``."""
    date_value = _as_date(reference)
    offset = (date_value.weekday() - weekday_index(start_day)) % 7
    return date_value - datetime.timedelta(days=offset)


def week_end(start: datetime.date) -> datetime.date:
    return _as_date(start) + datetime.timedelta(days=6)


def days_of_week(start: datetime.date) -> List[datetime.date]:
    first = _as_date(start)
    return [first + datetime.timedelta(days=offset) for offset in range(7)]


def day_keys(start: datetime.date) -> List[str]:
    return [day.isoformat() for day in days_of_week(start)]


def shift_week(start: datetime.date, delta_weeks: int) -> datetime.date:
    return _as_date(start) + datetime.timedelta(days=7 * int(delta_weeks))


def in_week(date_value: datetime.date, start: datetime.date) -> bool:
    return _as_date(start) <= _as_date(date_value) <= week_end(start)


def week_label(start: datetime.date) -> str:
    first = _as_date(start)
    iso_year, iso_week, _ = first.isocalendar()
    end = week_end(first)
    start_str = first.strftime("%b %d")
    end_str = end.strftime("%b %d")
    if first.year != end.year:
        start_str = first.strftime("%b %d %Y")
        end_str = end.strftime("%b %d %Y")
    return f"{iso_year} W{iso_week:02d} ({start_str} - {end_str})"
