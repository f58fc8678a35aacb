from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from aggregation import Totals, hours_and_earnings, payroll_row, shift_issues, weekly_tip_total
from clock import ZERO, exact, minutes_to_hours
from domain import PayrollEntry, Shift, Store
from roles import Role, role_from_label
from roster import RosterStore
from settings import DEFAULT_SETTINGS, Settings
from week_window import day_keys, days_of_week, week_end, week_label, week_start as normalize_week_start


@dataclass(frozen=True)
class ViewContext:
    """Resolved settings handed to the view builders instead of module globals."""

    settings: Settings = DEFAULT_SETTINGS


DEFAULT_CONTEXT = ViewContext()


@dataclass
class WeekRow:
    person_id: str
    label: str
    role: Optional[Role]
    store_id: Optional[str]
    totals: Totals
    cells: Dict[str, List[Shift]] = field(default_factory=dict)

    @property
    def hours(self) -> Fraction:
        return self.totals.hours

    @property
    def earnings(self) -> Fraction:
        return self.totals.earnings


@dataclass
class WeekView:
    week_start: datetime.date
    days: List[datetime.date]
    rows: List[WeekRow]
    cells_by_person_and_day: Dict[Tuple[str, str], List[Shift]]
    issues: List[Dict[str, Any]]

    @property
    def day_keys(self) -> List[str]:
        return [day.isoformat() for day in self.days]

    @property
    def label(self) -> str:
        return week_label(self.week_start)

    def cell(self, person_id: str, day: datetime.date | str) -> List[Shift]:
        key = day.isoformat() if isinstance(day, datetime.date) else day
        return self.cells_by_person_and_day.get((person_id, key), [])


def _row_sort_key(store_id: Optional[str], person_id: str) -> Tuple[str, str]:
    return (store_id or "", person_id)


def compute_week_view(
    week_start: datetime.date,
    roster: RosterStore,
    *,
    store_id: Optional[str] = None,
    role: Optional[Role | str] = None,
    context: Optional[ViewContext] = None,
) -> WeekView:
    """Calendar grid for the week containing ``week_start``.

    The date is snapped back to the configured start day first, so any day
    of the week can be passed in.

    With ``store_id`` the grid keeps that store's shifts and the people who
    either belong to the store or worked there this week. ``role`` narrows
    rows to one kind of person (employees, drivers, ...). Shifts whose
    person is no longer on the roster still get a row, labelled with the
    fallback label.
    """
    context = context or DEFAULT_CONTEXT
    wanted_role = role_from_label(role, default=None) if role is not None else None
    first = normalize_week_start(week_start, context.settings.week_start_day)
    days = days_of_week(first)
    keys = day_keys(first)
    shifts = roster.shifts_in_range(days[0], days[-1])
    if store_id:
        shifts = [shift for shift in shifts if shift.store_id == store_id]
    if wanted_role is not None:
        shifts = [shift for shift in shifts if _shift_role(roster, shift) is wanted_role]

    person_ids = {shift.person_id for shift in shifts}
    for person in roster.people:
        if wanted_role is not None and person.role is not wanted_role:
            continue
        if store_id and person.store_id != store_id:
            continue
        person_ids.add(person.id)

    cells: Dict[Tuple[str, str], List[Shift]] = defaultdict(list)
    for shift in shifts:
        cells[(shift.person_id, shift.date.isoformat())].append(shift)

    rows: List[WeekRow] = []
    for person_id in person_ids:
        person = roster.person(person_id)
        rate = person.hourly_pay if person else ZERO
        rows.append(
            WeekRow(
                person_id=person_id,
                label=person.name if person else context.settings.unknown_label,
                role=person.role if person else None,
                store_id=person.store_id if person else None,
                totals=hours_and_earnings(person_id, shifts, rate),
                cells={key: list(cells.get((person_id, key), [])) for key in keys},
            )
        )
    rows.sort(key=lambda row: _row_sort_key(row.store_id, row.person_id))
    return WeekView(
        week_start=days[0],
        days=days,
        rows=rows,
        cells_by_person_and_day=dict(cells),
        issues=shift_issues(shifts),
    )


def _shift_role(roster: RosterStore, shift: Shift) -> Role:
    person = roster.person(shift.person_id)
    return person.role if person else shift.kind


def payroll_week_start(reference: datetime.date) -> datetime.date:
    """Payroll rows are keyed on the Monday of the ISO week."""
    return normalize_week_start(reference, "monday")


def compute_payroll_table(
    store_id: Optional[str],
    week_start: datetime.date,
    roster: RosterStore,
) -> List[PayrollEntry]:
    """Payroll rows for everyone attached to ``store_id`` (all people when empty).

    Stored tips, deductibles and status are merged in from the roster's
    payroll entries; hours and earnings always come from the week's shifts.
    """
    week = payroll_week_start(week_start)
    store_key = store_id or ""
    shifts = roster.shifts_in_range(week, week_end(week))
    if store_key:
        people = roster.people_by_store(store_key)
        shifts = [shift for shift in shifts if shift.store_id == store_key]
    else:
        people = roster.people
    rows = [
        payroll_row(
            person,
            shifts,
            roster.payroll_entry(person.id, week, store_key),
            week_start=week,
            store_id=store_key,
        )
        for person in people
    ]
    rows.sort(key=lambda row: _row_sort_key(roster.person(row.person_id).store_id, row.person_id))
    return rows


def payroll_totals(rows: Iterable[PayrollEntry]) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "total_hours": Fraction(0),
        "total_earnings": Fraction(0),
        "tips": Fraction(0),
        "deductibles": Fraction(0),
        "final_earnings": Fraction(0),
        "ready": 0,
        "rows": 0,
    }
    for row in rows:
        summary["total_hours"] += exact(row.total_hours)
        summary["total_earnings"] += exact(row.total_earnings)
        summary["tips"] += exact(row.tips)
        summary["deductibles"] += exact(row.deductibles)
        summary["final_earnings"] += row.final_earnings
        summary["ready"] += 1 if row.is_ready else 0
        summary["rows"] += 1
    summary["all_ready"] = summary["rows"] > 0 and summary["ready"] == summary["rows"]
    return summary


def _store_ids(stores: Iterable[Any]) -> List[str]:
    ids = set()
    for store in stores:
        if isinstance(store, Store):
            ids.add(store.id)
        elif isinstance(store, dict) and store.get("id"):
            ids.add(str(store["id"]))
        elif isinstance(store, str) and store:
            ids.add(store)
    return sorted(ids)


def compute_legend(stores: Iterable[Any]) -> Dict[str, int]:
    """Stable display index per store, assigned over the ids in sorted order."""
    return {store_id: index for index, store_id in enumerate(_store_ids(stores))}


def legend_colors(stores: Iterable[Any], palette: Optional[Sequence[str]] = None) -> Dict[str, str]:
    colors = tuple(palette or DEFAULT_SETTINGS.legend_palette)
    return {store_id: colors[index % len(colors)] for store_id, index in compute_legend(stores).items()}


def compute_dashboard(
    week_start: datetime.date,
    roster: RosterStore,
    *,
    context: Optional[ViewContext] = None,
) -> Dict[str, Any]:
    """Head counts plus the week's scheduled hours and average employee rate."""
    context = context or DEFAULT_CONTEXT
    week = normalize_week_start(week_start, context.settings.week_start_day)
    shifts = roster.shifts_in_range(week, week_end(week))
    minutes = sum(shift.minutes or 0 for shift in shifts)
    employees = roster.people_with_role(Role.EMPLOYEE)
    average_rate = ZERO
    if employees:
        average_rate = sum((person.hourly_pay for person in employees), ZERO) / Decimal(len(employees))
    return {
        "week_start": week.isoformat(),
        "week_label": week_label(week),
        "employees": len(employees),
        "drivers": len(roster.people_with_role(Role.DRIVER)),
        "managers": len(roster.people_with_role(Role.MANAGER)),
        "stores": len(roster.stores),
        "shifts": len(shifts),
        "scheduled_hours": minutes_to_hours(minutes),
        "average_hourly_rate": average_rate,
        "invalid_shifts": sum(1 for shift in shifts if not shift.has_valid_range),
    }


def compute_tip_table(
    roster: RosterStore,
    start: datetime.date,
    end: Optional[datetime.date] = None,
) -> List[Dict[str, Any]]:
    """Per-driver platform breakdown of tips dated ``start``..``end`` (one day by default)."""
    last = end or start
    by_driver: Dict[str, List[Any]] = defaultdict(list)
    for tip in roster.tips_in_range(start, last):
        by_driver[tip.driver_id].append(tip)
    table: List[Dict[str, Any]] = []
    for driver_id in sorted(by_driver):
        entries = by_driver[driver_id]
        platforms: Dict[str, List[Decimal]] = {}
        for tip in entries:
            for name, amount in tip.platforms:
                platforms.setdefault(name, []).append(amount)
        totals = weekly_tip_total(entries)
        table.append(
            {
                "driver_id": driver_id,
                "driver_name": roster.person_label(driver_id),
                "platforms": platforms,
                "tip_ids": [tip.id for tip in entries],
                "total": totals.total,
                "adjusted_total": totals.adjusted_total,
            }
        )
    return table
