from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field, replace
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from clock import ZERO, Exact, exact, normalize_time_label, parse_date, parse_time_label, span_minutes, to_decimal
from roles import Role, role_from_label, shift_person_ref
from week_window import WEEKDAY_NAMES


DEFAULT_TIP_FEE_RATE = Decimal("0.10")
CLOSED_HOURS = {"open": "", "close": ""}


class MalformedRecord(ValueError):
    """A host record is missing a required field or carries an unusable value."""

    def __init__(self, record_type: str, record_id: Any, reason: str) -> None:
        self.record_type = record_type
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"{record_type} {record_id or '<no id>'}: {reason}")


class PayrollStatus(str, enum.Enum):
    READY = "ready"
    NOT_READY = "not_ready"

    @classmethod
    def from_value(cls, value: Any) -> "PayrollStatus":
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.READY if value else cls.NOT_READY
        label = str(value or "").strip().lower().replace(" ", "").replace("_", "").replace("-", "")
        return cls.READY if label == "ready" else cls.NOT_READY


def _text(record: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = record.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _amount(record_type: str, record_id: Any, value: Any, label: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError:
        raise MalformedRecord(record_type, record_id, f"{label} is not a number") from None
    if amount < 0:
        raise MalformedRecord(record_type, record_id, f"{label} must not be negative")
    return amount


@dataclass(frozen=True)
class Person:
    id: str
    name: str
    role: Role = Role.EMPLOYEE
    store_id: Optional[str] = None
    hourly_pay: Decimal = ZERO
    email: str = ""
    claimed: bool = False

    @classmethod
    def from_record(cls, record: Any, role: Optional[Role] = None) -> "Person":
        if isinstance(record, Person):
            return record
        if not isinstance(record, Mapping):
            raise MalformedRecord("person", None, "record is not a mapping")
        person_id = _text(record, "id")
        if not person_id:
            raise MalformedRecord("person", None, "missing id")
        name = _text(record, "name", "full_name")
        if not name:
            raise MalformedRecord("person", person_id, "missing name")
        pay_value = record.get("hourly_pay", record.get("pay"))
        return cls(
            id=person_id,
            name=name,
            role=role or role_from_label(record.get("role")),
            store_id=_text(record, "store_id") or None,
            hourly_pay=_amount("person", person_id, pay_value, "hourly pay"),
            email=_text(record, "email"),
            claimed=bool(record.get("claimed", False)),
        )

    def claim(self) -> "Person":
        """Return the activated copy; a person can only be claimed once."""
        if self.claimed:
            raise ValueError(f"Person {self.id} has already claimed their account.")
        return replace(self, claimed=True)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "store_id": self.store_id,
            "hourly_pay": self.hourly_pay,
            "email": self.email,
            "claimed": self.claimed,
        }


def parse_store_hours(raw: Any) -> Tuple[Dict[str, Dict[str, str]], List[str]]:
    """Normalize a weekday -> {open, close} mapping.

    Returns the cleaned mapping and the weekdays whose entries were unusable;
    those days are stored as closed.
    """
    hours: Dict[str, Dict[str, str]] = {}
    invalid: List[str] = []
    if not isinstance(raw, Mapping):
        return hours, invalid
    for key, entry in raw.items():
        day = str(key or "").strip().lower()
        if day not in WEEKDAY_NAMES:
            invalid.append(str(key))
            continue
        if not isinstance(entry, Mapping):
            hours[day] = dict(CLOSED_HOURS)
            if entry:
                invalid.append(day)
            continue
        open_label = str(entry.get("open") or "").strip()
        close_label = str(entry.get("close") or "").strip()
        if not open_label and not close_label:
            hours[day] = dict(CLOSED_HOURS)
            continue
        if span_minutes(open_label, close_label) is None:
            hours[day] = dict(CLOSED_HOURS)
            invalid.append(day)
            continue
        hours[day] = {"open": normalize_time_label(open_label), "close": normalize_time_label(close_label)}
    return hours, invalid


@dataclass(frozen=True)
class Store:
    id: str
    name: str
    location: str = ""
    hours: Dict[str, Dict[str, str]] = field(default_factory=dict)
    invalid_days: Tuple[str, ...] = field(default=(), compare=False)

    @classmethod
    def from_record(cls, record: Any) -> "Store":
        if isinstance(record, Store):
            return record
        if not isinstance(record, Mapping):
            raise MalformedRecord("store", None, "record is not a mapping")
        store_id = _text(record, "id")
        if not store_id:
            raise MalformedRecord("store", None, "missing id")
        hours, invalid = parse_store_hours(record.get("hours"))
        return cls(
            id=store_id,
            name=_text(record, "name") or store_id,
            location=_text(record, "location"),
            hours=hours,
            invalid_days=tuple(invalid),
        )

    def is_open_on(self, weekday: str) -> bool:
        entry = self.hours.get((weekday or "").strip().lower()) or CLOSED_HOURS
        return bool(entry["open"] and entry["close"])

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "hours": {day: dict(entry) for day, entry in self.hours.items()},
        }


@dataclass(frozen=True)
class Shift:
    id: str
    person_id: str
    store_id: str
    date: datetime.date
    start_time: str
    end_time: str
    kind: Role = Role.EMPLOYEE

    @classmethod
    def from_record(cls, record: Any) -> "Shift":
        if isinstance(record, Shift):
            return record
        if not isinstance(record, Mapping):
            raise MalformedRecord("shift", None, "record is not a mapping")
        shift_id = _text(record, "id")
        if not shift_id:
            raise MalformedRecord("shift", None, "missing id")
        person_id, kind = shift_person_ref(record)
        if not person_id:
            raise MalformedRecord("shift", shift_id, "missing person id")
        try:
            date_value = parse_date(record.get("date"))
        except (TypeError, ValueError):
            raise MalformedRecord("shift", shift_id, f"invalid date {record.get('date')!r}") from None
        start = normalize_time_label(record.get("start_time"))
        end = normalize_time_label(record.get("end_time"))
        if not start or not end:
            raise MalformedRecord("shift", shift_id, "start_time and end_time must be HH:MM")
        return cls(
            id=shift_id,
            person_id=person_id,
            store_id=_text(record, "store_id"),
            date=date_value,
            start_time=start,
            end_time=end,
            kind=kind,
        )

    @property
    def minutes(self) -> Optional[int]:
        """Worked minutes, or None when the time range is empty or reversed."""
        return span_minutes(self.start_time, self.end_time)

    @property
    def has_valid_range(self) -> bool:
        return self.minutes is not None

    @property
    def sort_key(self) -> Tuple[Any, ...]:
        return (self.date, parse_time_label(self.start_time) or 0, self.person_id, self.id)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "person_id": self.person_id,
            "store_id": self.store_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class PayrollEntry:
    person_id: str
    store_id: str
    week_start: datetime.date
    total_hours: Exact = ZERO
    total_earnings: Exact = ZERO
    tips: Decimal = ZERO
    deductibles: Decimal = ZERO
    status: PayrollStatus = PayrollStatus.NOT_READY
    id: Optional[str] = None

    @property
    def final_earnings(self) -> Fraction:
        return exact(self.total_earnings) + exact(self.tips) - exact(self.deductibles)

    @property
    def key(self) -> Tuple[str, str, str]:
        return payroll_key(self.person_id, self.week_start, self.store_id)

    @property
    def is_ready(self) -> bool:
        return self.status is PayrollStatus.READY

    @classmethod
    def from_record(cls, record: Any) -> "PayrollEntry":
        if isinstance(record, PayrollEntry):
            return record
        if not isinstance(record, Mapping):
            raise MalformedRecord("payroll", None, "record is not a mapping")
        entry_id = _text(record, "id") or None
        person_id = _text(record, "person_id")
        if not person_id:
            raise MalformedRecord("payroll", entry_id, "missing person_id")
        try:
            week = parse_date(record.get("week_start"))
        except (TypeError, ValueError):
            raise MalformedRecord("payroll", entry_id or person_id, "invalid week_start") from None
        nested = record.get("tips_and_deductibles")
        source = nested if isinstance(nested, Mapping) else record
        return cls(
            id=entry_id,
            person_id=person_id,
            store_id=_text(record, "store_id"),
            week_start=week,
            total_hours=_amount("payroll", person_id, record.get("total_hours"), "total_hours"),
            total_earnings=_amount("payroll", person_id, record.get("total_earnings"), "total_earnings"),
            tips=_amount("payroll", person_id, source.get("tips"), "tips"),
            deductibles=_amount("payroll", person_id, source.get("deductibles"), "deductibles"),
            status=PayrollStatus.from_value(record.get("status")),
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "person_id": self.person_id,
            "store_id": self.store_id,
            "week_start": self.week_start.isoformat(),
            "total_hours": self.total_hours,
            "total_earnings": self.total_earnings,
            "tips": self.tips,
            "deductibles": self.deductibles,
            "final_earnings": self.final_earnings,
            "status": self.status.value,
        }


def payroll_key(person_id: str, week_start: datetime.date, store_id: Optional[str]) -> Tuple[str, str, str]:
    return (person_id, week_start.isoformat(), store_id or "")


def parse_platforms(record_id: Any, raw: Any) -> Tuple[Tuple[str, Decimal], ...]:
    if isinstance(raw, Mapping):
        items: Iterable[Tuple[Any, Any]] = raw.items()
    elif isinstance(raw, (list, tuple)):
        items = []
        for entry in raw:
            if not isinstance(entry, Mapping):
                raise MalformedRecord("tip", record_id, "platform entries must be mappings")
            items.append((entry.get("platform"), entry.get("amount")))
    elif raw is None:
        items = []
    else:
        raise MalformedRecord("tip", record_id, "platforms must be a mapping or a list")
    totals: Dict[str, Decimal] = {}
    for platform, amount in items:
        name = str(platform or "").strip()
        if not name:
            raise MalformedRecord("tip", record_id, "platform name is required")
        totals[name] = totals.get(name, ZERO) + _amount("tip", record_id, amount, f"{name} amount")
    return tuple(totals.items())


@dataclass(frozen=True)
class TipEntry:
    id: str
    driver_id: str
    date: datetime.date
    platforms: Tuple[Tuple[str, Decimal], ...] = ()
    fee_rate: Decimal = DEFAULT_TIP_FEE_RATE

    @property
    def total(self) -> Decimal:
        return sum((amount for _, amount in self.platforms), ZERO)

    @property
    def adjusted_total(self) -> Decimal:
        return self.total * (Decimal("1") - self.fee_rate)

    @property
    def platform_amounts(self) -> Dict[str, Decimal]:
        return dict(self.platforms)

    @classmethod
    def from_record(cls, record: Any, fee_rate: Decimal = DEFAULT_TIP_FEE_RATE) -> "TipEntry":
        if isinstance(record, TipEntry):
            return record
        if not isinstance(record, Mapping):
            raise MalformedRecord("tip", None, "record is not a mapping")
        tip_id = _text(record, "id")
        if not tip_id:
            raise MalformedRecord("tip", None, "missing id")
        driver_id = _text(record, "driver_id", "driverId")
        if not driver_id:
            raise MalformedRecord("tip", tip_id, "missing driver_id")
        try:
            date_value = parse_date(record.get("date"))
        except (TypeError, ValueError):
            raise MalformedRecord("tip", tip_id, f"invalid date {record.get('date')!r}") from None
        return cls(
            id=tip_id,
            driver_id=driver_id,
            date=date_value,
            platforms=parse_platforms(tip_id, record.get("platforms")),
            fee_rate=fee_rate,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "driver_id": self.driver_id,
            "date": self.date.isoformat(),
            "platforms": [{"platform": name, "amount": amount} for name, amount in self.platforms],
            "total": self.total,
            "adjusted_total": self.adjusted_total,
        }


@dataclass(frozen=True)
class PendingEdit:
    """A write the host should persist; the core never performs it."""

    action: str
    collection: str
    key: Any
    payload: Dict[str, Any] = field(default_factory=dict)

    UPSERT = "upsert"
    DELETE = "delete"


MALFORMED_RECORD = "malformed_record"
INVALID_TIME_RANGE = "invalid_time_range"
MISSING_REFERENCE = "missing_reference"
INVALID_HOURS = "invalid_hours"


def make_issue(issue_type: str, message: str, **details: Any) -> Dict[str, Any]:
    """Data-quality finding surfaced to the host; never raised."""
    issue: Dict[str, Any] = {"type": issue_type, "severity": "warning", "message": message}
    issue.update(details)
    return issue
