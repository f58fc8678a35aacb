from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from domain import (
    INVALID_HOURS,
    MALFORMED_RECORD,
    MISSING_REFERENCE,
    MalformedRecord,
    PayrollEntry,
    Person,
    Shift,
    Store,
    TipEntry,
    make_issue,
    payroll_key,
)
from roles import ROLE_COLLECTIONS, Role
from settings import DEFAULT_SETTINGS, Settings


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RosterStore:
    """In-memory snapshot of people, stores, shifts, tips and payroll entries.

    ``load`` replaces everything at once; the host always hands over full
    collections. Bad records are dropped and reported through ``issues``
    instead of raising, so a week grid can still be built from partial data.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS
        self._reset()

    def _reset(self) -> None:
        self._people: Dict[str, Person] = {}
        self._stores: Dict[str, Store] = {}
        self._shifts: Dict[str, Shift] = {}
        self._tips: Dict[str, TipEntry] = {}
        self._payroll: Dict[Tuple[str, str, str], PayrollEntry] = {}
        self._people_by_store: Dict[str, List[Person]] = {}
        self._shifts_by_person: Dict[str, List[Shift]] = {}
        self._ordered_shifts: List[Shift] = []
        self.issues: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Loading

    def load(
        self,
        people: Iterable[Any] | Mapping[str, Iterable[Any]],
        stores: Iterable[Any],
        shifts: Iterable[Any],
        tip_entries: Iterable[Any] = (),
        payroll_entries: Iterable[Any] = (),
    ) -> "RosterStore":
        """Replace the snapshot and rebuild every index.

        ``people`` may be a flat iterable or a mapping of host collection
        name (``employees``, ``drivers``, ...) to records; in the latter
        case the collection decides each person's role.
        """
        self._reset()
        for role, record in self._iter_people(people):
            person = self._coerce("person", record, lambda rec: Person.from_record(rec, role=role))
            if person is not None:
                self._put(self._people, person.id, person, "person")
        for record in stores or ():
            store = self._coerce("store", record, Store.from_record)
            if store is None:
                continue
            self._put(self._stores, store.id, store, "store")
            for day in store.invalid_days:
                self._report(
                    make_issue(
                        INVALID_HOURS,
                        f"Store {store.name} has unusable hours for {day}; treated as closed.",
                        store_id=store.id,
                        day=day,
                    )
                )
        for record in shifts or ():
            shift = self._coerce("shift", record, Shift.from_record)
            if shift is not None:
                self._put(self._shifts, shift.id, shift, "shift")
        fee_rate = self.settings.tip_fee_rate
        for record in tip_entries or ():
            tip = self._coerce("tip", record, lambda rec: TipEntry.from_record(rec, fee_rate=fee_rate))
            if tip is not None:
                self._put(self._tips, tip.id, tip, "tip")
        for record in payroll_entries or ():
            entry = self._coerce("payroll", record, PayrollEntry.from_record)
            if entry is not None:
                self._put(self._payroll, entry.key, entry, "payroll")
        self._build_indices()
        self._check_references()
        return self

    def load_snapshot(self, snapshot: Mapping[str, Any]) -> "RosterStore":
        """Load a host snapshot dict (``people``/``stores``/``shifts``/...)."""
        people: Any = snapshot.get("people")
        if people is None:
            people = {name: snapshot.get(name) or [] for name in ROLE_COLLECTIONS if name in snapshot}
        return self.load(
            people or [],
            snapshot.get("stores") or [],
            snapshot.get("shifts") or [],
            snapshot.get("tip_entries") or [],
            snapshot.get("payroll_entries") or [],
        )

    @staticmethod
    def _iter_people(people: Any) -> Iterable[Tuple[Optional[Role], Any]]:
        if isinstance(people, Mapping):
            for collection, records in people.items():
                role = ROLE_COLLECTIONS.get(str(collection).strip().lower())
                for record in records or ():
                    yield role, record
            return
        for record in people or ():
            yield None, record

    def _coerce(self, record_type: str, record: Any, factory: Callable[[Any], T]) -> Optional[T]:
        try:
            return factory(record)
        except MalformedRecord as exc:
            self._report(
                make_issue(
                    MALFORMED_RECORD,
                    f"Dropped {exc.record_type} record: {exc.reason}.",
                    record_type=exc.record_type,
                    record_id=exc.record_id,
                )
            )
            return None

    def _put(self, index: Dict[Any, T], key: Any, value: T, record_type: str) -> None:
        if key in index:
            logger.warning("Duplicate %s record %s; keeping the last one", record_type, key)
        index[key] = value

    def _report(self, issue: Dict[str, Any]) -> None:
        logger.warning(issue["message"])
        self.issues.append(issue)

    def _build_indices(self) -> None:
        by_store: Dict[str, List[Person]] = defaultdict(list)
        for person in self._people.values():
            if person.store_id:
                by_store[person.store_id].append(person)
        self._people_by_store = {
            store_id: sorted(members, key=lambda person: person.id) for store_id, members in by_store.items()
        }
        self._ordered_shifts = sorted(self._shifts.values(), key=lambda shift: shift.sort_key)
        by_person: Dict[str, List[Shift]] = defaultdict(list)
        for shift in self._ordered_shifts:
            by_person[shift.person_id].append(shift)
        self._shifts_by_person = dict(by_person)

    def _check_references(self) -> None:
        # Dangling ids are expected after deletes; they are reported, not dropped.
        for person in self._people.values():
            if person.store_id and person.store_id not in self._stores:
                self._report(
                    make_issue(
                        MISSING_REFERENCE,
                        f"{person.name} belongs to unknown store {person.store_id}.",
                        record_type="person",
                        record_id=person.id,
                        store_id=person.store_id,
                    )
                )
        for shift in self._ordered_shifts:
            if shift.person_id not in self._people:
                self._report(
                    make_issue(
                        MISSING_REFERENCE,
                        f"Shift {shift.id} references unknown person {shift.person_id}.",
                        record_type="shift",
                        record_id=shift.id,
                        person_id=shift.person_id,
                    )
                )
            if shift.store_id and shift.store_id not in self._stores:
                self._report(
                    make_issue(
                        MISSING_REFERENCE,
                        f"Shift {shift.id} references unknown store {shift.store_id}.",
                        record_type="shift",
                        record_id=shift.id,
                        store_id=shift.store_id,
                    )
                )
        for tip in self._tips.values():
            if tip.driver_id not in self._people:
                self._report(
                    make_issue(
                        MISSING_REFERENCE,
                        f"Tip entry {tip.id} references unknown driver {tip.driver_id}.",
                        record_type="tip",
                        record_id=tip.id,
                        person_id=tip.driver_id,
                    )
                )
        for entry in self._payroll.values():
            if entry.person_id not in self._people:
                self._report(
                    make_issue(
                        MISSING_REFERENCE,
                        f"Payroll entry for unknown person {entry.person_id}.",
                        record_type="payroll",
                        record_id=entry.id,
                        person_id=entry.person_id,
                    )
                )

    # ------------------------------------------------------------------
    # Lookups

    @property
    def people(self) -> List[Person]:
        return sorted(self._people.values(), key=lambda person: person.id)

    @property
    def stores(self) -> List[Store]:
        """Stores in load order."""
        return list(self._stores.values())

    @property
    def shifts(self) -> List[Shift]:
        return list(self._ordered_shifts)

    @property
    def tip_entries(self) -> List[TipEntry]:
        return sorted(self._tips.values(), key=lambda tip: (tip.date, tip.driver_id, tip.id))

    @property
    def payroll_entries(self) -> List[PayrollEntry]:
        return [self._payroll[key] for key in sorted(self._payroll)]

    def person(self, person_id: Optional[str]) -> Optional[Person]:
        return self._people.get(person_id or "")

    def store(self, store_id: Optional[str]) -> Optional[Store]:
        return self._stores.get(store_id or "")

    def shift(self, shift_id: Optional[str]) -> Optional[Shift]:
        return self._shifts.get(shift_id or "")

    def person_label(self, person_id: Optional[str]) -> str:
        person = self.person(person_id)
        return person.name if person else self.settings.unknown_label

    def store_label(self, store_id: Optional[str]) -> str:
        store = self.store(store_id)
        return store.name if store else self.settings.unknown_label

    def people_by_store(self, store_id: Optional[str]) -> List[Person]:
        return list(self._people_by_store.get(store_id or "", []))

    def people_with_role(self, role: Role) -> List[Person]:
        return [person for person in self.people if person.role is role]

    def shifts_in_range(self, start: datetime.date, end: datetime.date) -> List[Shift]:
        """Shifts dated between ``start`` and ``end`` inclusive, in display order."""
        return [shift for shift in self._ordered_shifts if start <= shift.date <= end]

    def shifts_for_person(self, person_id: str, start: datetime.date, end: datetime.date) -> List[Shift]:
        return [shift for shift in self._shifts_by_person.get(person_id, []) if start <= shift.date <= end]

    def shift_for_person_on(
        self, person_id: str, date_value: datetime.date, *, store_id: Optional[str] = None
    ) -> Optional[Shift]:
        for shift in self._shifts_by_person.get(person_id, []):
            if shift.date == date_value and (store_id is None or shift.store_id == store_id):
                return shift
        return None

    def tips_in_range(
        self, start: datetime.date, end: datetime.date, *, driver_id: Optional[str] = None
    ) -> List[TipEntry]:
        return [
            tip
            for tip in self.tip_entries
            if start <= tip.date <= end and (driver_id is None or tip.driver_id == driver_id)
        ]

    def payroll_entry(
        self, person_id: str, week_start: datetime.date, store_id: Optional[str] = None
    ) -> Optional[PayrollEntry]:
        return self._payroll.get(payroll_key(person_id, week_start, store_id))
