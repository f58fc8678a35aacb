from __future__ import annotations

import enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    DRIVER = "driver"
    MANAGER = "manager"
    ADMIN = "admin"


# Host collections each hold one kind of person.
ROLE_COLLECTIONS: Dict[str, Role] = {
    "employees": Role.EMPLOYEE,
    "drivers": Role.DRIVER,
    "managers": Role.MANAGER,
    "admins": Role.ADMIN,
}

# Shift records name their person through one of these fields.
PERSON_ID_FIELDS: List[Tuple[str, Role]] = [
    ("employee_id", Role.EMPLOYEE),
    ("driver_id", Role.DRIVER),
    ("manager_id", Role.MANAGER),
]

_KEYWORD_RULES: List[Tuple[str, Role]] = [
    ("driver", Role.DRIVER),
    ("delivery", Role.DRIVER),
    ("mgr", Role.MANAGER),
    ("manager", Role.MANAGER),
    ("admin", Role.ADMIN),
    ("staff", Role.EMPLOYEE),
    ("employee", Role.EMPLOYEE),
]


def normalize_role(role: str) -> str:
    return (role or "").strip().lower()


def role_from_label(label: Any, default: Optional[Role] = Role.EMPLOYEE) -> Optional[Role]:
    """Map a free-form role label (or Role) onto the Role enum."""
    if isinstance(label, Role):
        return label
    normalized = normalize_role(str(label or ""))
    if not normalized:
        return default
    for role in Role:
        if normalized == role.value:
            return role
    for keyword, target in _KEYWORD_RULES:
        if keyword in normalized:
            return target
    return default


def is_manager_role(role: Any) -> bool:
    return role_from_label(role, default=None) in {Role.MANAGER, Role.ADMIN}


def shift_person_ref(record: Mapping[str, Any]) -> Tuple[Optional[str], Role]:
    """Return (person_id, kind) for a raw shift record.

    ``person_id`` wins when present; otherwise the first populated legacy
    field decides both the id and the shift kind.
    """
    kind = role_from_label(record.get("kind"), default=None)
    person_id = record.get("person_id")
    if person_id:
        return str(person_id), kind or Role.EMPLOYEE
    for field, role in PERSON_ID_FIELDS:
        value = record.get(field)
        if value:
            return str(value), kind or role
    return None, kind or Role.EMPLOYEE
