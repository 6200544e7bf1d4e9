from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from personnel.storage.errors import DataIntegrityError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Roles an employee can hold; anything else in storage is corrupt data."""

    ADMIN = "admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"

    @classmethod
    def parse(cls, value: object) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise DataIntegrityError(f"unknown role {value!r}") from None


@dataclass(frozen=True)
class Principal:
    """Identity reconstructed from a validated access token."""

    id: int
    email: str
    role: Role
    token_id: str


@dataclass
class CredentialRecord:
    id: int
    email: str
    password_hash: str
    role: Role


@dataclass
class Department:
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    head_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Employee:
    id: int
    first_name: str
    last_name: str
    email: str
    department_id: int
    role: Role = Role.EMPLOYEE
    middle_name: Optional[str] = None
    phone: Optional[str] = None
    personal_number: Optional[str] = None
    is_active: bool = True
    position: Optional[str] = None
    manager_id: Optional[int] = None
    hire_date: datetime = field(default_factory=utcnow)
    fire_date: Optional[datetime] = None
    birthday: Optional[datetime] = None
    address: Optional[str] = None
    vacation_days: int = 28
    sick_days: int = 0
    status: str = "active"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


# Columns callers may set on create/update; id and timestamps are store-owned.
EMPLOYEE_WRITABLE_FIELDS = (
    "first_name",
    "last_name",
    "middle_name",
    "phone",
    "personal_number",
    "email",
    "role",
    "is_active",
    "department_id",
    "position",
    "manager_id",
    "hire_date",
    "fire_date",
    "birthday",
    "address",
    "vacation_days",
    "sick_days",
    "status",
)

DEPARTMENT_WRITABLE_FIELDS = ("name", "description", "parent_id", "head_id")
