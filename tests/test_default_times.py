from __future__ import annotations

import datetime
import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from default_times import default_times_for, default_times_for_date  # noqa: E402
from domain import Store  # noqa: E402


BLANK = {"start_time": "", "end_time": ""}


def _store(hours):
    return Store.from_record({"id": "store-1", "name": "Main St", "hours": hours})


def test_uses_published_hours_for_the_weekday() -> None:
    store = _store({"monday": {"open": "08:00", "close": "16:00"}})

    assert default_times_for(store, "monday") == {"start_time": "08:00", "end_time": "16:00"}


def test_missing_day_means_no_default() -> None:
    store = _store({"monday": {"open": "08:00", "close": "16:00"}})

    assert default_times_for(store, "sunday") == BLANK


def test_closed_day_means_no_default() -> None:
    store = _store({"tuesday": {"open": "", "close": ""}})

    assert default_times_for(store, "tuesday") == BLANK
    assert not store.is_open_on("tuesday")


def test_weekday_lookup_ignores_case_and_padding() -> None:
    store = _store({"Friday": {"open": "9:30", "close": "21:00"}})

    assert default_times_for(store, " FRIDAY ") == {"start_time": "09:30", "end_time": "21:00"}


def test_unknown_store_means_no_default() -> None:
    assert default_times_for(None, "monday") == BLANK


def test_reversed_hours_are_treated_as_closed() -> None:
    store = _store({"saturday": {"open": "17:00", "close": "09:00"}})

    assert default_times_for(store, "saturday") == BLANK
    assert store.invalid_days == ("saturday",)


def test_hours_edited_after_loading_are_still_checked() -> None:
    store = Store(id="raw", name="Raw", hours={"monday": {"open": "nope", "close": "10:00"}})

    assert default_times_for(store, "monday") == BLANK


def test_lookup_by_date() -> None:
    store = _store({"wednesday": {"open": "07:00", "close": "15:00"}})

    assert default_times_for_date(store, datetime.date(2024, 4, 3)) == {
        "start_time": "07:00",
        "end_time": "15:00",
    }
