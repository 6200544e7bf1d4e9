"""Tests for employee and department service operations."""

import pytest

from personnel.service.errors import NotFoundError, ValidationError
from personnel.service.staff import StaffService
from personnel.storage.models import Role


@pytest.fixture
def staff(memory_store, authenticator, settings):
    return StaffService(memory_store, authenticator, settings)


def _values(department_id, **overrides):
    values = {
        "first_name": " Grace ",
        "last_name": "Hopper",
        "email": "Grace@Navy.mil",
        "department_id": department_id,
    }
    values.update(overrides)
    return values


class TestDepartments:
    def test_create_strips_name(self, staff):
        dept = staff.create_department({"name": "  Finance  "})

        assert dept.name == "Finance"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_name_required(self, staff, name):
        with pytest.raises(ValidationError) as excinfo:
            staff.create_department({"name": name})
        assert excinfo.value.message == "name is required"

    def test_missing_department_is_not_found(self, staff):
        with pytest.raises(NotFoundError):
            staff.get_department(404)
        with pytest.raises(NotFoundError):
            staff.update_department(404, {"name": "X"})
        with pytest.raises(NotFoundError):
            staff.delete_department(404)

    def test_update_and_delete(self, staff, department):
        updated = staff.update_department(
            department.id, {"name": "R&D", "description": "research"}
        )
        assert updated.description == "research"

        staff.delete_department(department.id)
        assert staff.list_departments() == []


class TestEmployees:
    async def test_create_normalizes_and_uses_default_password(
        self, staff, authenticator, department, settings
    ):
        """Test that a new employee can log in with the configured default password."""
        emp = staff.create_employee(_values(department.id))

        assert emp.first_name == "Grace"
        assert emp.email == "grace@navy.mil"
        tokens = await authenticator.login("grace@navy.mil", settings.default_employee_password)
        assert tokens.access_token

    async def test_create_with_explicit_password(self, staff, authenticator, department):
        staff.create_employee(_values(department.id, role=Role.MANAGER), "cobol-rules")

        assert await authenticator.login("grace@navy.mil", "cobol-rules")

    def test_required_fields(self, staff, department):
        with pytest.raises(ValidationError) as excinfo:
            staff.create_employee(_values(department.id, last_name="", email=None))
        assert excinfo.value.message == "required fields: first_name, last_name, email"
        assert excinfo.value.detail == {"missing": ["last_name", "email"]}

    def test_department_required(self, staff):
        with pytest.raises(ValidationError):
            staff.create_employee(_values(None))

    async def test_update_rehashes_only_when_password_given(
        self, staff, authenticator, department, memory_store
    ):
        emp = staff.create_employee(_values(department.id), "first-pass")
        original_hash = memory_store.password_hashes[emp.id]

        staff.update_employee(emp.id, _values(department.id, position="Admiral"))
        assert memory_store.password_hashes[emp.id] == original_hash

        staff.update_employee(emp.id, _values(department.id), "second-pass")
        assert await authenticator.login("grace@navy.mil", "second-pass")

    def test_update_none_keeps_non_nullable_fields(self, staff, department):
        emp = staff.create_employee(_values(department.id, role=Role.HR))

        updated = staff.update_employee(emp.id, _values(department.id, role=None, phone=None))

        assert updated.role is Role.HR

    def test_update_missing_employee(self, staff, department):
        with pytest.raises(NotFoundError):
            staff.update_employee(404, _values(department.id))

    @pytest.mark.parametrize("days", [0, -3])
    def test_invalid_vacation_days(self, staff, department, days):
        emp = staff.create_employee(_values(department.id))

        with pytest.raises(ValidationError) as excinfo:
            staff.request_vacation(emp.id, days)
        assert excinfo.value.message == "invalid vacation days"

    def test_request_vacation(self, staff, department):
        emp = staff.create_employee(_values(department.id))

        assert staff.request_vacation(emp.id, 3).vacation_days == 31
        with pytest.raises(NotFoundError):
            staff.request_vacation(404, 3)

    def test_delete_employee(self, staff, department):
        emp = staff.create_employee(_values(department.id))

        staff.delete_employee(emp.id)

        with pytest.raises(NotFoundError):
            staff.get_employee(emp.id)
        with pytest.raises(NotFoundError):
            staff.delete_employee(emp.id)
