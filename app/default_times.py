from __future__ import annotations

import datetime
from typing import Dict, Optional

from clock import normalize_time_label, span_minutes
from domain import Store
from week_window import weekday_name


def _blank() -> Dict[str, str]:
    return {"start_time": "", "end_time": ""}


def default_times_for(store: Optional[Store], weekday: str) -> Dict[str, str]:
    """Default start/end for a new shift from the store's published hours.

    Empty strings mean there is no default and the times must be entered by
    hand (store unknown, closed that day, or hours unusable).
    """
    if store is None or not isinstance(weekday, str):
        return _blank()
    entry = (store.hours or {}).get(weekday.strip().lower())
    if not entry:
        return _blank()
    open_label = entry.get("open") or ""
    close_label = entry.get("close") or ""
    if span_minutes(open_label, close_label) is None:
        return _blank()
    return {
        "start_time": normalize_time_label(open_label),
        "end_time": normalize_time_label(close_label),
    }


def default_times_for_date(store: Optional[Store], date_value: datetime.date) -> Dict[str, str]:
    return default_times_for(store, weekday_name(date_value))
