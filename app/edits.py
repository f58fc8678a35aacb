from __future__ import annotations

import datetime
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from clock import normalize_time_label, span_minutes, to_decimal
from default_times import default_times_for_date
from domain import (
    DEFAULT_TIP_FEE_RATE,
    PayrollEntry,
    PayrollStatus,
    PendingEdit,
    Shift,
    TipEntry,
    parse_platforms,
)
from roles import Role
from roster import RosterStore
from week_window import week_end


SHIFTS = "shifts"
PAYROLL = "payroll_entries"
TIPS = "tip_entries"


def new_id() -> str:
    return uuid.uuid4().hex


def draft_shift_for_cell(
    roster: RosterStore,
    person_id: str,
    day: datetime.date,
    *,
    store_id: Optional[str] = None,
) -> Dict[str, Any]:
    """What the shift editor should open with when a grid cell is clicked.

    An existing shift for that person and day is returned as-is. Otherwise a
    draft without an id is prefilled from the store's hours for that weekday;
    blank times mean the user has to type them.
    """
    existing = roster.shift_for_person_on(person_id, day, store_id=store_id)
    if existing is not None:
        return existing.to_record()
    person = roster.person(person_id)
    target_store = store_id or (person.store_id if person else None) or ""
    defaults = default_times_for_date(roster.store(target_store), day)
    return {
        "id": None,
        "person_id": person_id,
        "person_name": roster.person_label(person_id),
        "store_id": target_store,
        "date": day.isoformat(),
        "start_time": defaults["start_time"],
        "end_time": defaults["end_time"],
        "kind": (person.role if person else Role.EMPLOYEE).value,
    }


def build_shift(payload: Mapping[str, Any], *, id_factory: Callable[[], str] = new_id) -> Shift:
    """Validate editor input and turn it into a Shift.

    Unlike snapshot loading this rejects bad input: the user is still in the
    editor and can fix it. Overnight shifts are not supported.
    """
    data = dict(payload)
    if not data.get("id"):
        data["id"] = id_factory()
    start = normalize_time_label(data.get("start_time"))
    end = normalize_time_label(data.get("end_time"))
    if not start or not end:
        raise ValueError("Shift start and end must be HH:MM times.")
    if span_minutes(start, end) is None:
        raise ValueError("Shift end time must be after start time; overnight shifts are not supported.")
    return Shift.from_record(data)


def shift_upsert(shift: Shift | Mapping[str, Any]) -> PendingEdit:
    record = shift if isinstance(shift, Shift) else build_shift(shift)
    if not record.has_valid_range:
        raise ValueError("Shift end time must be after start time; overnight shifts are not supported.")
    return PendingEdit(PendingEdit.UPSERT, SHIFTS, record.id, record.to_record())


def shift_delete(shift_id: str) -> PendingEdit:
    if not shift_id:
        raise ValueError("shift_id is required.")
    return PendingEdit(PendingEdit.DELETE, SHIFTS, shift_id)


def copy_week_forward(
    shifts: Iterable[Shift],
    *,
    id_factory: Callable[[], str] = new_id,
) -> List[Shift]:
    """Clone shifts seven days later with fresh ids; everything else is kept."""
    clones = []
    for shift in sorted(shifts, key=lambda item: item.sort_key):
        clone_id = id_factory()
        while clone_id == shift.id:
            clone_id = id_factory()
        clones.append(replace(shift, id=clone_id, date=shift.date + datetime.timedelta(days=7)))
    return clones


def copy_week_edits(
    roster: RosterStore,
    week_start: datetime.date,
    *,
    store_id: Optional[str] = None,
    id_factory: Callable[[], str] = new_id,
) -> List[PendingEdit]:
    """Upserts that copy the week starting ``week_start`` into the next week."""
    shifts = roster.shifts_in_range(week_start, week_end(week_start))
    if store_id:
        shifts = [shift for shift in shifts if shift.store_id == store_id]
    return [
        PendingEdit(PendingEdit.UPSERT, SHIFTS, clone.id, clone.to_record())
        for clone in copy_week_forward(shifts, id_factory=id_factory)
    ]


def clear_week(
    roster: RosterStore,
    week_start: datetime.date,
    *,
    store_id: Optional[str] = None,
    person_id: Optional[str] = None,
) -> List[PendingEdit]:
    """Deletes for every shift in the week, optionally limited to a store or person."""
    shifts = roster.shifts_in_range(week_start, week_end(week_start))
    return [
        shift_delete(shift.id)
        for shift in shifts
        if (not store_id or shift.store_id == store_id) and (not person_id or shift.person_id == person_id)
    ]


def _non_negative(value: Any, label: str) -> Decimal:
    amount = to_decimal(value)
    if amount < 0:
        raise ValueError(f"{label} must not be negative.")
    return amount


def payroll_edit(
    row: PayrollEntry,
    *,
    tips: Any = None,
    deductibles: Any = None,
    status: Any = None,
) -> Tuple[PayrollEntry, PendingEdit]:
    """Apply a tips/deductibles/status change and describe the upsert.

    The edit is keyed on (person, week, store) so the host keeps at most
    one stored entry per triple.
    """
    changes: Dict[str, Any] = {}
    if tips is not None:
        changes["tips"] = _non_negative(tips, "Tips")
    if deductibles is not None:
        changes["deductibles"] = _non_negative(deductibles, "Deductibles")
    if status is not None:
        changes["status"] = PayrollStatus.from_value(status)
    updated = replace(row, **changes)
    return updated, PendingEdit(PendingEdit.UPSERT, PAYROLL, updated.key, updated.to_record())


def toggle_payroll_status(row: PayrollEntry) -> Tuple[PayrollEntry, PendingEdit]:
    target = PayrollStatus.NOT_READY if row.is_ready else PayrollStatus.READY
    return payroll_edit(row, status=target)


def tip_entry_edit(
    driver_id: str,
    date_value: datetime.date,
    platforms: Any,
    *,
    tip_id: Optional[str] = None,
    fee_rate: Decimal = DEFAULT_TIP_FEE_RATE,
    id_factory: Callable[[], str] = new_id,
) -> Tuple[TipEntry, PendingEdit]:
    """Build (or rebuild) a driver's tip entry; totals are always re-derived."""
    if not driver_id:
        raise ValueError("driver_id is required.")
    entry_id = tip_id or id_factory()
    entry = TipEntry(
        id=entry_id,
        driver_id=driver_id,
        date=date_value,
        platforms=parse_platforms(entry_id, platforms),
        fee_rate=fee_rate,
    )
    return entry, PendingEdit(PendingEdit.UPSERT, TIPS, entry.id, entry.to_record())


def tip_entry_delete(tip_id: str) -> PendingEdit:
    if not tip_id:
        raise ValueError("tip_id is required.")
    return PendingEdit(PendingEdit.DELETE, TIPS, tip_id)
