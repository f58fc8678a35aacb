from __future__ import annotations

import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from fractions import Fraction
from typing import Any, Optional, Union


MINUTES_PER_DAY = 24 * 60
CENTS = Decimal("0.01")
ZERO = Decimal("0")

# Hours and earnings derived from minutes stay exact; Decimal is for display and storage.
Exact = Union[Decimal, Fraction]


def parse_time_label(value: Optional[str]) -> Optional[int]:
    """Return minutes since midnight for an ``HH:MM`` label, or None.

    ``24:00`` is accepted as the end of the day so stores can close at
    midnight.
    """
    if value is None:
        return None
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    label = str(value).strip()
    if not label or ":" not in label:
        return None
    hour_str, minute_str = label.split(":", 1)
    if not (hour_str.isdigit() and minute_str.isdigit()) or len(minute_str) != 2:
        return None
    hours = int(hour_str)
    minutes = int(minute_str)
    if minutes > 59:
        return None
    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        return None
    return total


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def normalize_time_label(value: Any) -> str:
    """Canonical ``HH:MM`` for a label ("9:05" -> "09:05"); "" when invalid."""
    parsed = parse_time_label(value)
    if parsed is None:
        return ""
    return format_minutes(parsed)


def span_minutes(start: Optional[str], end: Optional[str]) -> Optional[int]:
    """Same-day wall-clock duration in minutes.

    Returns None when either side is unparsable or the range is empty or
    reversed; overnight ranges are not supported.
    """
    start_minutes = parse_time_label(start)
    end_minutes = parse_time_label(end)
    if start_minutes is None or end_minutes is None:
        return None
    if end_minutes <= start_minutes:
        return None
    return end_minutes - start_minutes


def minutes_to_hours(minutes: int) -> Fraction:
    return Fraction(int(minutes), 60)


def exact(value: Any) -> Fraction:
    if isinstance(value, Fraction):
        return value
    return Fraction(to_decimal(value))


def to_decimal(value: Any, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """Coerce host input (str/int/float/Decimal/Fraction) into a Decimal.

    Floats go through ``str`` so 0.1 stays 0.1; fractions are divided out at
    context precision. Empty values return ``default``; garbage raises
    ``ValueError``.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, Fraction):
        result = Decimal(value.numerator) / Decimal(value.denominator)
    elif isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def money(value: Any) -> Decimal:
    """Round to cents for display; internal sums keep full precision."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return datetime.date.fromisoformat(value.strip())
    raise ValueError(f"Not a date: {value!r}")
