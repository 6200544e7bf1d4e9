from __future__ import annotations

import fnmatch
import itertools
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from personnel.logging import get_logger
from personnel.storage.errors import ConstraintViolation
from personnel.storage.models import (
    DEPARTMENT_WRITABLE_FIELDS,
    EMPLOYEE_WRITABLE_FIELDS,
    CredentialRecord,
    Department,
    Employee,
    Role,
    utcnow,
)


class MemoryStore:
    """In-memory employee/department store for development and tests."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.departments: Dict[int, Department] = {}
        self.employees: Dict[int, Employee] = {}
        self.password_hashes: Dict[int, str] = {}
        self._department_ids = itertools.count(1)
        self._employee_ids = itertools.count(1)
        # RLock so helpers can be called while a public method holds it
        self._data_lock = threading.RLock()

    # -- credentials -------------------------------------------------------

    def find_credential_by_email(self, email: str) -> Optional[CredentialRecord]:
        with self._data_lock:
            for employee in self.employees.values():
                if employee.email == email:
                    return CredentialRecord(
                        id=employee.id,
                        email=employee.email,
                        password_hash=self.password_hashes[employee.id],
                        role=Role.parse(employee.role),
                    )
        return None

    # -- departments -------------------------------------------------------

    def list_departments(self) -> List[Department]:
        with self._data_lock:
            return [replace(dept) for _, dept in sorted(self.departments.items())]

    def get_department(self, department_id: int) -> Optional[Department]:
        with self._data_lock:
            dept = self.departments.get(department_id)
            return replace(dept) if dept else None

    def _check_department_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        for dept in self.departments.values():
            if dept.name == name and dept.id != exclude_id:
                raise ConstraintViolation("department name already exists", {"field": "name"})

    def _check_department_refs(self, values: Dict[str, Any]) -> None:
        parent_id = values.get("parent_id")
        if parent_id is not None and parent_id not in self.departments:
            raise ConstraintViolation("parent department does not exist", {"field": "parent_id"})
        head_id = values.get("head_id")
        if head_id is not None and head_id not in self.employees:
            raise ConstraintViolation("head employee does not exist", {"field": "head_id"})

    def create_department(self, values: Dict[str, Any]) -> Department:
        fields = {k: values.get(k) for k in DEPARTMENT_WRITABLE_FIELDS}
        with self._data_lock:
            self._check_department_name(fields["name"])
            self._check_department_refs(fields)
            dept = Department(id=next(self._department_ids), **fields)
            self.departments[dept.id] = dept
            return replace(dept)

    def update_department(
        self, department_id: int, values: Dict[str, Any]
    ) -> Optional[Department]:
        fields = {k: values.get(k) for k in DEPARTMENT_WRITABLE_FIELDS}
        with self._data_lock:
            existing = self.departments.get(department_id)
            if not existing:
                return None
            self._check_department_name(fields["name"], exclude_id=department_id)
            self._check_department_refs(fields)
            if fields["parent_id"] == department_id:
                raise ConstraintViolation("department cannot be its own parent", {"field": "parent_id"})
            updated = replace(existing, updated_at=utcnow(), **fields)
            self.departments[department_id] = updated
            return replace(updated)

    def delete_department(self, department_id: int) -> bool:
        with self._data_lock:
            if department_id not in self.departments:
                return False
            if any(emp.department_id == department_id for emp in self.employees.values()):
                raise ConstraintViolation(
                    "department still has employees", {"field": "department_id"}
                )
            del self.departments[department_id]
            # children keep existing with no parent, as ON DELETE SET NULL does
            for child_id, child in list(self.departments.items()):
                if child.parent_id == department_id:
                    self.departments[child_id] = replace(child, parent_id=None)
            return True

    # -- employees ---------------------------------------------------------

    def list_employees(
        self,
        *,
        role: Optional[Role] = None,
        department_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Employee]:
        with self._data_lock:
            results = []
            for _, emp in sorted(self.employees.items()):
                if role is not None and emp.role != role:
                    continue
                if department_id is not None and emp.department_id != department_id:
                    continue
                if status is not None and emp.status != status:
                    continue
                results.append(replace(emp))
            return results

    def get_employee(self, employee_id: int) -> Optional[Employee]:
        with self._data_lock:
            emp = self.employees.get(employee_id)
            return replace(emp) if emp else None

    def _check_employee_unique(self, fields: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        for emp in self.employees.values():
            if emp.id == exclude_id:
                continue
            if emp.email == fields.get("email"):
                raise ConstraintViolation("email already exists", {"field": "email"})
            number = fields.get("personal_number")
            if number is not None and emp.personal_number == number:
                raise ConstraintViolation(
                    "personal number already exists", {"field": "personal_number"}
                )

    def _check_employee_refs(self, fields: Dict[str, Any]) -> None:
        if fields.get("department_id") not in self.departments:
            raise ConstraintViolation("department does not exist", {"field": "department_id"})
        manager_id = fields.get("manager_id")
        if manager_id is not None and manager_id not in self.employees:
            raise ConstraintViolation("manager does not exist", {"field": "manager_id"})

    def create_employee(self, values: Dict[str, Any], password_hash: str) -> Employee:
        fields = {k: v for k, v in values.items() if k in EMPLOYEE_WRITABLE_FIELDS and v is not None}
        with self._data_lock:
            self._check_employee_unique(fields)
            self._check_employee_refs(fields)
            emp = Employee(id=next(self._employee_ids), **fields)
            self.employees[emp.id] = emp
            self.password_hashes[emp.id] = password_hash
            return replace(emp)

    def update_employee(
        self,
        employee_id: int,
        values: Dict[str, Any],
        password_hash: Optional[str] = None,
    ) -> Optional[Employee]:
        fields = {k: v for k, v in values.items() if k in EMPLOYEE_WRITABLE_FIELDS}
        with self._data_lock:
            existing = self.employees.get(employee_id)
            if not existing:
                return None
            merged = {**{k: getattr(existing, k) for k in EMPLOYEE_WRITABLE_FIELDS}, **fields}
            self._check_employee_unique(merged, exclude_id=employee_id)
            self._check_employee_refs(merged)
            updated = replace(existing, updated_at=utcnow(), **fields)
            self.employees[employee_id] = updated
            if password_hash is not None:
                self.password_hashes[employee_id] = password_hash
            return replace(updated)

    def add_vacation_days(self, employee_id: int, days: int) -> Optional[Employee]:
        with self._data_lock:
            existing = self.employees.get(employee_id)
            if not existing:
                return None
            updated = replace(
                existing,
                vacation_days=existing.vacation_days + days,
                updated_at=utcnow(),
            )
            self.employees[employee_id] = updated
            return replace(updated)

    def delete_employee(self, employee_id: int) -> bool:
        with self._data_lock:
            if employee_id not in self.employees:
                return False
            del self.employees[employee_id]
            self.password_hashes.pop(employee_id, None)
            for other_id, other in list(self.employees.items()):
                if other.manager_id == employee_id:
                    self.employees[other_id] = replace(other, manager_id=None)
            for dept_id, dept in list(self.departments.items()):
                if dept.head_id == employee_id:
                    self.departments[dept_id] = replace(dept, head_id=None)
            return True


class MemoryCache:
    """Process-local TTL map with the same async surface as RedisCache.

    Keys expire lazily on access. ``clock`` returns monotonic seconds and is
    injectable so tests can move time forward.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (str(value), self._clock() + max(1, int(ttl_seconds)))

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live_value(key)

    async def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._live_value(key) is not None:
                    del self._entries[key]
                    removed += 1
        return removed

    async def delete_matching(self, pattern: str) -> int:
        with self._lock:
            matched = [
                key
                for key in list(self._entries)
                if fnmatch.fnmatchcase(key, pattern) and self._live_value(key) is not None
            ]
            for key in matched:
                del self._entries[key]
        return len(matched)

    async def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            if self._live_value(key) is None:
                return None
            return int(round(self._entries[key][1] - self._clock()))

    def verify_connection(self) -> None:
        return None

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["MemoryStore", "MemoryCache"]
