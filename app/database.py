"""SQLAlchemy storage for hosts that want a local database behind the core.

The scheduling core never imports this module. A host reads a snapshot with
``load_snapshot``, feeds it to ``RosterStore.load_snapshot`` and hands the
``PendingEdit`` values the core produces back to ``apply_pending_edits``.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from clock import parse_date, to_decimal
from domain import PayrollStatus, PendingEdit, Person, Store
from settings import DATA_DIR


logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("SHIFTBOOK_DATABASE_URL") or f"sqlite:///{(DATA_DIR / 'shiftbook.db').as_posix()}"
MONEY = Numeric(14, 4, asdecimal=True)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for every table living in shiftbook.db."""

    pass


class PersonRecord(Base):
    __tablename__ = "people"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="employee")
    store_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    hourly_pay: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class StoreRecord(Base):
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    hoursJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def hours_dict(self) -> Dict[str, Any]:
        try:
            value = json.loads(self.hoursJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            logger.warning("Store %s has unreadable hours JSON", self.id)
        return {}


class ShiftRecord(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    person_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="employee")
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class TipEntryRecord(Base):
    __tablename__ = "tip_entries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    driver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    platformsJSON: Mapped[str] = mapped_column(String(4000), nullable=False, default="[]")
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    adjusted_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))


class PayrollRecord(Base):
    __tablename__ = "payroll_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    week_start: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    tips: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    deductibles: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    final_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PayrollStatus.NOT_READY.value)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("person_id", "week_start", "store_id", name="uq_payroll_person_week_store"),
    )


engine = create_engine(DATABASE_URL, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_database(bind=None) -> None:
    target = bind or engine
    if target is engine and DATABASE_URL.startswith("sqlite:///"):
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(target)


# ---------------------------------------------------------------------------
# Snapshot loading


def _person_payload(row: PersonRecord) -> Dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "role": row.role,
        "store_id": row.store_id,
        "hourly_pay": row.hourly_pay,
        "email": row.email,
        "claimed": bool(row.claimed),
    }


def _store_payload(row: StoreRecord) -> Dict[str, Any]:
    return {"id": row.id, "name": row.name, "location": row.location, "hours": row.hours_dict()}


def _shift_payload(row: ShiftRecord) -> Dict[str, Any]:
    return {
        "id": row.id,
        "person_id": row.person_id,
        "store_id": row.store_id,
        "date": row.date.isoformat(),
        "start_time": row.start_time,
        "end_time": row.end_time,
        "kind": row.kind,
    }


def _tip_payload(row: TipEntryRecord) -> Dict[str, Any]:
    try:
        platforms = json.loads(row.platformsJSON or "[]")
    except json.JSONDecodeError:
        logger.warning("Tip entry %s has unreadable platforms JSON", row.id)
        platforms = []
    return {"id": row.id, "driver_id": row.driver_id, "date": row.date.isoformat(), "platforms": platforms}


def _payroll_payload(row: PayrollRecord) -> Dict[str, Any]:
    return {
        "id": str(row.id),
        "person_id": row.person_id,
        "store_id": row.store_id,
        "week_start": row.week_start.isoformat(),
        "total_hours": row.total_hours,
        "total_earnings": row.total_earnings,
        "tips": row.tips,
        "deductibles": row.deductibles,
        "status": row.status,
    }


def load_snapshot(
    session,
    *,
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """Read every collection as plain records; shifts/tips/payroll optionally dated."""
    shift_stmt = select(ShiftRecord).order_by(ShiftRecord.date, ShiftRecord.start_time, ShiftRecord.id)
    tip_stmt = select(TipEntryRecord).order_by(TipEntryRecord.date, TipEntryRecord.id)
    payroll_stmt = select(PayrollRecord).order_by(PayrollRecord.week_start, PayrollRecord.person_id)
    if start is not None:
        shift_stmt = shift_stmt.where(ShiftRecord.date >= start)
        tip_stmt = tip_stmt.where(TipEntryRecord.date >= start)
        payroll_stmt = payroll_stmt.where(PayrollRecord.week_start >= start - datetime.timedelta(days=6))
    if end is not None:
        shift_stmt = shift_stmt.where(ShiftRecord.date <= end)
        tip_stmt = tip_stmt.where(TipEntryRecord.date <= end)
        payroll_stmt = payroll_stmt.where(PayrollRecord.week_start <= end)
    return {
        "people": [_person_payload(row) for row in session.scalars(select(PersonRecord).order_by(PersonRecord.id))],
        "stores": [_store_payload(row) for row in session.scalars(select(StoreRecord).order_by(StoreRecord.id))],
        "shifts": [_shift_payload(row) for row in session.scalars(shift_stmt)],
        "tip_entries": [_tip_payload(row) for row in session.scalars(tip_stmt)],
        "payroll_entries": [_payroll_payload(row) for row in session.scalars(payroll_stmt)],
    }


# ---------------------------------------------------------------------------
# Writes


def save_person(session, person: Person) -> PersonRecord:
    row = session.get(PersonRecord, person.id) or PersonRecord(id=person.id)
    row.name = person.name
    row.role = person.role.value
    row.store_id = person.store_id
    row.hourly_pay = person.hourly_pay
    row.email = person.email
    row.claimed = person.claimed
    session.add(row)
    session.commit()
    return row


def save_store(session, store: Store) -> StoreRecord:
    row = session.get(StoreRecord, store.id) or StoreRecord(id=store.id)
    row.name = store.name
    row.location = store.location
    row.hoursJSON = json.dumps(store.hours, sort_keys=True)
    session.add(row)
    session.commit()
    return row


def _upsert_shift(session, payload: Dict[str, Any]) -> None:
    row = session.get(ShiftRecord, payload["id"]) or ShiftRecord(id=payload["id"])
    row.person_id = payload["person_id"]
    row.store_id = payload.get("store_id") or ""
    row.date = parse_date(payload["date"])
    row.start_time = payload["start_time"]
    row.end_time = payload["end_time"]
    row.kind = payload.get("kind") or "employee"
    session.add(row)


def _upsert_tip(session, payload: Dict[str, Any]) -> None:
    row = session.get(TipEntryRecord, payload["id"]) or TipEntryRecord(id=payload["id"])
    row.driver_id = payload["driver_id"]
    row.date = parse_date(payload["date"])
    row.platformsJSON = json.dumps(
        [{"platform": item["platform"], "amount": str(item["amount"])} for item in payload.get("platforms", [])]
    )
    row.total = to_decimal(payload.get("total"))
    row.adjusted_total = to_decimal(payload.get("adjusted_total"))
    session.add(row)


def _upsert_payroll(session, payload: Dict[str, Any]) -> None:
    week = parse_date(payload["week_start"])
    store_id = payload.get("store_id") or ""
    row = session.scalars(
        select(PayrollRecord).where(
            PayrollRecord.person_id == payload["person_id"],
            PayrollRecord.week_start == week,
            PayrollRecord.store_id == store_id,
        )
    ).first()
    if row is None:
        row = PayrollRecord(person_id=payload["person_id"], week_start=week, store_id=store_id)
    for column in ("total_hours", "total_earnings", "tips", "deductibles", "final_earnings"):
        setattr(row, column, to_decimal(payload.get(column)))
    row.status = PayrollStatus.from_value(payload.get("status")).value
    session.add(row)


def _delete(session, model, key: Any) -> None:
    row = session.get(model, key)
    if row is not None:
        session.delete(row)


UPSERTS = {
    "shifts": _upsert_shift,
    "tip_entries": _upsert_tip,
    "payroll_entries": _upsert_payroll,
}
DELETABLE = {
    "shifts": ShiftRecord,
    "tip_entries": TipEntryRecord,
}


def apply_pending_edits(session, edits: Iterable[PendingEdit]) -> int:
    """Persist the core's pending edits in one transaction; returns the count."""
    count = 0
    try:
        for edit in edits:
            if edit.action == PendingEdit.UPSERT and edit.collection in UPSERTS:
                UPSERTS[edit.collection](session, edit.payload)
            elif edit.action == PendingEdit.DELETE and edit.collection in DELETABLE:
                _delete(session, DELETABLE[edit.collection], edit.key)
            else:
                raise ValueError(f"Unsupported edit {edit.action!r} on '{edit.collection}'.")
            count += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("Applied %d pending edit(s)", count)
    return count
