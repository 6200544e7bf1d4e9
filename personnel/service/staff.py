from __future__ import annotations

from typing import Any, Dict, List, Optional

from personnel.config import Settings
from personnel.logging import get_logger
from personnel.service.auth import Authenticator, normalize_email
from personnel.service.errors import NotFoundError, ValidationError
from personnel.storage.models import Department, Employee, Role

logger = get_logger(__name__)

# Columns declared NOT NULL; a None in an update payload keeps the stored value
_NON_NULLABLE_EMPLOYEE_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "email",
        "role",
        "is_active",
        "department_id",
        "hire_date",
        "vacation_days",
        "sick_days",
        "status",
    }
)


class StaffService:
    """Employee and department record operations."""

    def __init__(self, store, authenticator: Authenticator, settings: Settings) -> None:
        self.store = store
        self.authenticator = authenticator
        self.settings = settings
        self.logger = logger

    # departments

    def list_departments(self) -> List[Department]:
        return self.store.list_departments()

    def get_department(self, department_id: int) -> Department:
        dept = self.store.get_department(department_id)
        if not dept:
            raise NotFoundError("department not found", detail={"id": department_id})
        return dept

    @staticmethod
    def _clean_department(values: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = dict(values)
        name = (cleaned.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", detail={"field": "name"})
        cleaned["name"] = name
        return cleaned

    def create_department(self, values: Dict[str, Any]) -> Department:
        dept = self.store.create_department(self._clean_department(values))
        self.logger.info("department_created", department_id=dept.id)
        return dept

    def update_department(self, department_id: int, values: Dict[str, Any]) -> Department:
        dept = self.store.update_department(department_id, self._clean_department(values))
        if not dept:
            raise NotFoundError("department not found", detail={"id": department_id})
        self.logger.info("department_updated", department_id=department_id)
        return dept

    def delete_department(self, department_id: int) -> None:
        if not self.store.delete_department(department_id):
            raise NotFoundError("department not found", detail={"id": department_id})
        self.logger.info("department_deleted", department_id=department_id)

    # employees

    def list_employees(
        self,
        *,
        role: Optional[Role] = None,
        department_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Employee]:
        return self.store.list_employees(
            role=role, department_id=department_id, status=status
        )

    def get_employee(self, employee_id: int) -> Employee:
        emp = self.store.get_employee(employee_id)
        if not emp:
            raise NotFoundError("employee not found", detail={"id": employee_id})
        return emp

    @staticmethod
    def _clean_employee(values: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {
            key: value
            for key, value in values.items()
            if not (value is None and key in _NON_NULLABLE_EMPLOYEE_FIELDS)
        }
        missing = [
            field
            for field in ("first_name", "last_name", "email")
            if not (cleaned.get(field) or "").strip()
        ]
        if missing:
            raise ValidationError(
                "required fields: first_name, last_name, email",
                detail={"missing": missing},
            )
        if cleaned.get("department_id") is None:
            raise ValidationError("department_id is required", detail={"field": "department_id"})
        cleaned["first_name"] = cleaned["first_name"].strip()
        cleaned["last_name"] = cleaned["last_name"].strip()
        cleaned["email"] = normalize_email(cleaned["email"])
        return cleaned

    def create_employee(self, values: Dict[str, Any], password: Optional[str] = None) -> Employee:
        cleaned = self._clean_employee(values)
        password_hash = self.authenticator.hash_password(
            password or self.settings.default_employee_password
        )
        emp = self.store.create_employee(cleaned, password_hash)
        self.logger.info("employee_created", employee_id=emp.id, role=emp.role.value)
        return emp

    def update_employee(
        self, employee_id: int, values: Dict[str, Any], password: Optional[str] = None
    ) -> Employee:
        cleaned = self._clean_employee(values)
        password_hash = self.authenticator.hash_password(password) if password else None
        emp = self.store.update_employee(employee_id, cleaned, password_hash)
        if not emp:
            raise NotFoundError("employee not found", detail={"id": employee_id})
        self.logger.info(
            "employee_updated", employee_id=employee_id, password_changed=password_hash is not None
        )
        return emp

    def request_vacation(self, employee_id: int, days: int) -> Employee:
        if days <= 0:
            raise ValidationError("invalid vacation days", detail={"days": days})
        emp = self.store.add_vacation_days(employee_id, days)
        if not emp:
            raise NotFoundError("employee not found", detail={"id": employee_id})
        self.logger.info("vacation_requested", employee_id=employee_id, days=days)
        return emp

    def delete_employee(self, employee_id: int) -> None:
        if not self.store.delete_employee(employee_id):
            raise NotFoundError("employee not found", detail={"id": employee_id})
        self.logger.info("employee_deleted", employee_id=employee_id)


__all__ = ["StaffService"]
