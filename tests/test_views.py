from __future__ import annotations

import datetime
import sys
from decimal import Decimal
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from domain import Store  # noqa: E402
from roster import RosterStore  # noqa: E402
from settings import Settings  # noqa: E402
from views import (  # noqa: E402
    ViewContext,
    compute_dashboard,
    compute_legend,
    compute_payroll_table,
    compute_tip_table,
    compute_week_view,
    legend_colors,
    payroll_totals,
    payroll_week_start,
)


MONDAY = datetime.date(2024, 4, 1)


def _shift(shift_id, person_id, store_id, day, start, end):
    return {
        "id": shift_id,
        "person_id": person_id,
        "store_id": store_id,
        "date": (MONDAY + datetime.timedelta(days=day)).isoformat(),
        "start_time": start,
        "end_time": end,
    }


@pytest.fixture()
def roster() -> RosterStore:
    return RosterStore().load(
        people={
            "employees": [
                {"id": "e1", "name": "Avery", "store_id": "a", "hourly_pay": 20},
                {"id": "e2", "name": "Blair", "store_id": "a", "hourly_pay": 15},
            ],
            "drivers": [{"id": "d1", "name": "Casey", "store_id": "b", "hourly_pay": 12}],
        },
        stores=[
            {"id": "b", "name": "Beta"},
            {"id": "a", "name": "Alpha", "hours": {"monday": {"open": "09:00", "close": "17:00"}}},
        ],
        shifts=[
            _shift("s1", "e1", "a", 0, "09:00", "17:00"),
            _shift("s2", "e2", "a", 1, "12:00", "16:00"),
            _shift("s3", "d1", "b", 0, "10:00", "14:00"),
            _shift("s4", "ghost", "a", 2, "08:00", "10:00"),
            _shift("s5", "e1", "a", 3, "18:00", "17:00"),
            _shift("s6", "e1", "a", 7, "09:00", "17:00"),
        ],
        tip_entries=[
            {"id": "t1", "driver_id": "d1", "date": "2024-04-01", "platforms": {"UberEats": "10", "DoorDash": "5"}},
            {"id": "t2", "driver_id": "d1", "date": "2024-04-02", "platforms": {"UberEats": "7.50"}},
            {"id": "t3", "driver_id": "d1", "date": "2024-04-09", "platforms": {"UberEats": "100"}},
        ],
        payroll_entries=[
            {
                "id": "pay-e1",
                "person_id": "e1",
                "store_id": "a",
                "week_start": "2024-04-01",
                "tips": "50",
                "deductibles": "10",
                "status": "ready",
            }
        ],
    )


class TestWeekView:
    def test_rows_cover_everyone_sorted_by_store_then_person(self, roster: RosterStore) -> None:
        view = compute_week_view(MONDAY, roster)

        assert [row.person_id for row in view.rows] == ["ghost", "e1", "e2", "d1"]
        assert len(view.days) == 7
        assert view.day_keys[0] == "2024-04-01"
        assert view.day_keys[-1] == "2024-04-07"

    def test_totals_skip_other_weeks_and_invalid_shifts(self, roster: RosterStore) -> None:
        view = compute_week_view(MONDAY, roster)
        avery = next(row for row in view.rows if row.person_id == "e1")

        assert avery.hours == Decimal(8)
        assert avery.earnings == Decimal(160)
        assert avery.totals.invalid_shift_ids == ("s5",)
        assert [issue["shift_id"] for issue in view.issues] == ["s5"]

    def test_cells_are_keyed_by_person_and_day(self, roster: RosterStore) -> None:
        view = compute_week_view(MONDAY, roster)
        avery = next(row for row in view.rows if row.person_id == "e1")

        assert [shift.id for shift in view.cell("e1", MONDAY)] == ["s1"]
        assert [shift.id for shift in view.cell("e1", "2024-04-04")] == ["s5"]
        assert view.cell("e2", MONDAY) == []
        assert list(avery.cells) == view.day_keys
        assert avery.cells["2024-04-02"] == []

    def test_unknown_person_gets_fallback_label(self, roster: RosterStore) -> None:
        view = compute_week_view(MONDAY, roster)
        ghost = view.rows[0]

        assert ghost.label == "Unknown"
        assert ghost.role is None
        assert ghost.hours == Decimal(2)
        assert ghost.earnings == 0

    def test_fallback_label_comes_from_context(self, roster: RosterStore) -> None:
        context = ViewContext(settings=Settings(unknown_label="(removed)"))

        view = compute_week_view(MONDAY, roster, context=context)

        assert view.rows[0].label == "(removed)"

    def test_any_day_snaps_to_the_configured_start_day(self, roster: RosterStore) -> None:
        view = compute_week_view(datetime.date(2024, 4, 4), roster)
        sunday_view = compute_week_view(MONDAY, roster, context=ViewContext(settings=Settings(week_start_day="sunday")))

        assert view.week_start == MONDAY
        assert view.label == "2024 W14 (Apr 01 - Apr 07)"
        assert sunday_view.week_start == datetime.date(2024, 3, 31)
        assert sunday_view.day_keys[-1] == "2024-04-06"
        # s5 is a Thursday shift, inside both windows
        assert [issue["shift_id"] for issue in sunday_view.issues] == ["s5"]

    def test_store_filter(self, roster: RosterStore) -> None:
        view = compute_week_view(MONDAY, roster, store_id="b")

        assert [row.person_id for row in view.rows] == ["d1"]
        assert [shift.id for shift in view.cell("d1", MONDAY)] == ["s3"]

    def test_role_filter(self, roster: RosterStore) -> None:
        view = compute_week_view(MONDAY, roster, role="driver")

        assert [row.person_id for row in view.rows] == ["d1"]

    def test_building_a_view_does_not_touch_the_roster(self, roster: RosterStore) -> None:
        before = roster.shifts

        compute_week_view(MONDAY, roster)
        compute_week_view(MONDAY, roster, store_id="a")

        assert roster.shifts == before


class TestPayrollTable:
    def test_rows_merge_stored_adjustments(self, roster: RosterStore) -> None:
        rows = compute_payroll_table("a", MONDAY, roster)

        assert [row.person_id for row in rows] == ["e1", "e2"]
        avery, blair = rows
        assert avery.id == "pay-e1"
        assert avery.total_earnings == Decimal(160)
        assert avery.final_earnings == Decimal(200)
        assert avery.is_ready
        assert blair.total_hours == Decimal(4)
        assert blair.final_earnings == Decimal(60)
        assert not blair.is_ready

    def test_mid_week_reference_is_normalized_to_monday(self, roster: RosterStore) -> None:
        rows = compute_payroll_table("a", datetime.date(2024, 4, 3), roster)

        assert {row.week_start for row in rows} == {MONDAY}
        assert payroll_week_start(datetime.date(2024, 4, 7)) == MONDAY

    def test_empty_store_means_everyone(self, roster: RosterStore) -> None:
        rows = compute_payroll_table("", MONDAY, roster)

        assert [row.person_id for row in rows] == ["e1", "e2", "d1"]
        assert all(row.store_id == "" for row in rows)
        # the stored entry is keyed on store "a", not the all-stores table
        assert rows[0].tips == 0
        assert rows[2].total_earnings == Decimal(48)

    def test_summary(self, roster: RosterStore) -> None:
        summary = payroll_totals(compute_payroll_table("a", MONDAY, roster))

        assert summary["total_hours"] == Decimal(12)
        assert summary["final_earnings"] == Decimal(260)
        assert summary["ready"] == 1
        assert summary["rows"] == 2
        assert summary["all_ready"] is False


class TestLegend:
    def test_indices_follow_sorted_store_ids(self) -> None:
        stores = [Store(id="b", name="Beta"), {"id": "a", "name": "Alpha"}, "c"]

        assert compute_legend(stores) == {"a": 0, "b": 1, "c": 2}
        assert compute_legend(list(reversed(stores))) == compute_legend(stores)

    def test_duplicates_and_blanks_are_ignored(self) -> None:
        assert compute_legend(["b", "b", "", "a"]) == {"a": 0, "b": 1}

    def test_colors_cycle_through_the_palette(self) -> None:
        assert legend_colors(["x", "y", "z"], palette=["red", "blue"]) == {"x": "red", "y": "blue", "z": "red"}

    def test_default_palette(self) -> None:
        colors = legend_colors([str(index) for index in range(11)])

        assert colors["0"] == colors["9"] != colors["1"]
        assert len(set(colors.values())) == 10


def test_dashboard_counts(roster: RosterStore) -> None:
    dashboard = compute_dashboard(MONDAY, roster)

    assert dashboard["week_label"] == "2024 W14 (Apr 01 - Apr 07)"
    assert dashboard["employees"] == 2
    assert dashboard["drivers"] == 1
    assert dashboard["managers"] == 0
    assert dashboard["stores"] == 2
    assert dashboard["shifts"] == 5
    assert dashboard["scheduled_hours"] == Decimal(18)
    assert dashboard["average_hourly_rate"] == Decimal("17.5")
    assert dashboard["invalid_shifts"] == 1


def test_dashboard_snaps_to_the_configured_week(roster: RosterStore) -> None:
    dashboard = compute_dashboard(datetime.date(2024, 4, 3), roster)
    sunday = compute_dashboard(MONDAY, roster, context=ViewContext(settings=Settings(week_start_day="sunday")))

    assert dashboard["week_start"] == "2024-04-01"
    assert dashboard["scheduled_hours"] == Decimal(18)
    assert dashboard["shifts"] == 5
    assert sunday["week_start"] == "2024-03-31"
    # the Sunday window ends on Apr 06 and still holds s1..s5
    assert sunday["shifts"] == 5


def test_tip_table_groups_platforms_per_driver(roster: RosterStore) -> None:
    table = compute_tip_table(roster, MONDAY, MONDAY + datetime.timedelta(days=6))

    assert len(table) == 1
    row = table[0]
    assert row["driver_name"] == "Casey"
    assert row["platforms"] == {"UberEats": [Decimal("10"), Decimal("7.50")], "DoorDash": [Decimal("5")]}
    assert row["tip_ids"] == ["t1", "t2"]
    assert row["total"] == Decimal("22.50")
    assert row["adjusted_total"] == Decimal("20.25")


def test_tip_table_defaults_to_a_single_day(roster: RosterStore) -> None:
    table = compute_tip_table(roster, datetime.date(2024, 4, 2))

    assert [row["total"] for row in table] == [Decimal("7.50")]
