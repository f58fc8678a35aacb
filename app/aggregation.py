"""Hours, earnings, tip and payroll arithmetic over roster snapshots.

All functions are pure: they read the shifts/entries handed to them and
return new values. Durations are summed as whole minutes, so hours and
earnings derived from them are exact ``Fraction`` values; tip amounts stay
``Decimal``. Rounding happens only in ``clock.money`` for display.
"""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Tuple

from clock import ZERO, exact, minutes_to_hours, to_decimal
from domain import INVALID_TIME_RANGE, PayrollEntry, PayrollStatus, Person, Shift, TipEntry, make_issue


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Totals:
    minutes: int = 0
    hourly_rate: Decimal = ZERO
    invalid_shift_ids: Tuple[str, ...] = ()

    @property
    def hours(self) -> Fraction:
        return minutes_to_hours(self.minutes)

    @property
    def earnings(self) -> Fraction:
        return Fraction(self.minutes) * exact(self.hourly_rate) / 60

    @property
    def has_invalid_shifts(self) -> bool:
        return bool(self.invalid_shift_ids)


@dataclass(frozen=True)
class TipTotals:
    total: Decimal = ZERO
    adjusted_total: Decimal = ZERO
    entries: int = 0


def hours_and_earnings(person_id: str, shifts: Iterable[Shift], hourly_rate: Any) -> Totals:
    """Sum worked time for ``person_id`` and price it at ``hourly_rate``.

    The caller pre-filters ``shifts`` to the week it cares about. Shifts whose
    end is not after their start add nothing and are listed in
    ``invalid_shift_ids``.
    """
    rate = to_decimal(hourly_rate)
    if rate < 0:
        raise ValueError("hourly_rate must not be negative.")
    minutes = 0
    invalid: List[str] = []
    for shift in shifts:
        if shift.person_id != person_id:
            continue
        worked = shift.minutes
        if worked is None:
            invalid.append(shift.id)
            continue
        minutes += worked
    if invalid:
        logger.debug("Ignoring %d shift(s) with an invalid time range for %s", len(invalid), person_id)
    return Totals(minutes=minutes, hourly_rate=rate, invalid_shift_ids=tuple(sorted(invalid)))


def group_by_store(shifts: Iterable[Shift]) -> Dict[str, List[Shift]]:
    """Shifts keyed by store id, keys ascending, each list ordered by person then time."""
    groups: Dict[str, List[Shift]] = defaultdict(list)
    for shift in shifts:
        groups[shift.store_id].append(shift)
    return {
        store_id: sorted(groups[store_id], key=lambda shift: (shift.person_id,) + shift.sort_key)
        for store_id in sorted(groups)
    }


def payroll_row(
    person: Person,
    shifts: Iterable[Shift],
    payroll_entry: Optional[PayrollEntry] = None,
    *,
    week_start: Optional[datetime.date] = None,
    store_id: Optional[str] = None,
) -> PayrollEntry:
    """Build the payroll row for one person without persisting it.

    Hours and earnings are always recomputed from ``shifts``; tips,
    deductibles, status and id are carried over from ``payroll_entry``.
    """
    if payroll_entry is not None:
        week = payroll_entry.week_start
        store = payroll_entry.store_id if store_id is None else store_id
    else:
        week = week_start
        store = store_id
    if week is None:
        raise ValueError("week_start is required when no payroll entry exists.")
    totals = hours_and_earnings(person.id, shifts, person.hourly_pay)
    return PayrollEntry(
        id=payroll_entry.id if payroll_entry else None,
        person_id=person.id,
        store_id=store or "",
        week_start=week,
        total_hours=totals.hours,
        total_earnings=totals.earnings,
        tips=payroll_entry.tips if payroll_entry else ZERO,
        deductibles=payroll_entry.deductibles if payroll_entry else ZERO,
        status=payroll_entry.status if payroll_entry else PayrollStatus.NOT_READY,
    )


def weekly_tip_total(tip_entries: Iterable[TipEntry], fee_rate: Optional[Decimal] = None) -> TipTotals:
    """Sum a driver's tip entries; the adjusted total is re-derived per entry."""
    total = ZERO
    adjusted = ZERO
    count = 0
    for entry in tip_entries:
        rate = entry.fee_rate if fee_rate is None else to_decimal(fee_rate)
        entry_total = entry.total
        total += entry_total
        adjusted += entry_total * (Decimal("1") - rate)
        count += 1
    return TipTotals(total=total, adjusted_total=adjusted, entries=count)


def hours_by_day(shifts: Iterable[Shift], person_id: Optional[str] = None) -> Dict[datetime.date, Fraction]:
    minutes: Dict[datetime.date, int] = defaultdict(int)
    for shift in shifts:
        if person_id is not None and shift.person_id != person_id:
            continue
        minutes[shift.date] += shift.minutes or 0
    return {day: minutes_to_hours(minutes[day]) for day in sorted(minutes)}


def shift_issues(shifts: Iterable[Shift]) -> List[Dict[str, Any]]:
    """Data-quality findings for shifts whose end is not after their start."""
    issues: List[Dict[str, Any]] = []
    for shift in sorted(shifts, key=lambda item: item.sort_key):
        if shift.has_valid_range:
            continue
        issues.append(
            make_issue(
                INVALID_TIME_RANGE,
                f"Shift on {shift.date.isoformat()} ends at {shift.end_time}, "
                f"not after its {shift.start_time} start; counted as zero hours.",
                shift_id=shift.id,
                person_id=shift.person_id,
                store_id=shift.store_id,
                date=shift.date.isoformat(),
            )
        )
    return issues
