from __future__ import annotations

import contextlib
from typing import Any, Dict, Iterator, List, Optional

import psycopg
from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from personnel.logging import get_logger
from personnel.storage.errors import ConstraintViolation, StoreUnavailable
from personnel.storage.models import (
    DEPARTMENT_WRITABLE_FIELDS,
    EMPLOYEE_WRITABLE_FIELDS,
    CredentialRecord,
    Department,
    Employee,
    Role,
)

_EMPLOYEE_COLUMNS = ", ".join(("id",) + EMPLOYEE_WRITABLE_FIELDS + ("created_at", "updated_at"))
_DEPARTMENT_COLUMNS = ", ".join(("id",) + DEPARTMENT_WRITABLE_FIELDS + ("created_at", "updated_at"))

# Constraint names from migrations/ mapped to the offending request field
_CONSTRAINT_FIELDS = {
    "unique_email": "email",
    "unique_personal_number": "personal_number",
    "idx_departments_name": "name",
    "fk_department_id": "department_id",
    "fk_manager_id": "manager_id",
    "fk_parent_id": "parent_id",
    "fk_head_id": "head_id",
}


class PostgresStore:
    """Postgres-backed employee/department store."""

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        self._verify_required_schema()

    def _connect(self):
        return self.pool.connection()

    def close(self) -> None:
        self.pool.close()

    def _verify_required_schema(self) -> None:
        """Ensure tables exist before serving requests."""

        missing_tables = []
        with self._connect() as conn:
            for table in ("departments", "employees"):
                row = conn.execute(
                    "SELECT to_regclass(%s) AS oid", (f"public.{table}",)
                ).fetchone()
                if not row or not row.get("oid"):
                    missing_tables.append(table)
        if missing_tables:
            raise RuntimeError(
                "Missing required Postgres tables: {}. Apply the SQL files in migrations/.".format(
                    ", ".join(sorted(missing_tables))
                )
            )

    @contextlib.contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except errors.IntegrityError as exc:
            constraint = getattr(exc.diag, "constraint_name", None)
            field = _CONSTRAINT_FIELDS.get(constraint or "")
            if isinstance(exc, errors.UniqueViolation):
                message = f"{field or 'value'} already exists"
            elif isinstance(exc, errors.ForeignKeyViolation) and operation.startswith("delete_"):
                message = "record is still referenced"
            elif isinstance(exc, errors.ForeignKeyViolation):
                message = f"{field or 'referenced record'} does not exist"
            else:
                message = "constraint violated"
            raise ConstraintViolation(
                message, {"field": field, "constraint": constraint}
            ) from exc
        except psycopg.Error as exc:
            self.logger.error("postgres_operation_failed", operation=operation, error=str(exc))
            raise StoreUnavailable(f"{operation} failed") from exc

    @staticmethod
    def _row_to_employee(row: Dict[str, Any]) -> Employee:
        return Employee(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            middle_name=row.get("middle_name"),
            phone=row.get("phone"),
            personal_number=row.get("personal_number"),
            email=row["email"],
            role=Role.parse(row["role"]),
            is_active=row.get("is_active", True),
            department_id=row["department_id"],
            position=row.get("position"),
            manager_id=row.get("manager_id"),
            hire_date=row["hire_date"],
            fire_date=row.get("fire_date"),
            birthday=row.get("birthday"),
            address=row.get("address"),
            vacation_days=row.get("vacation_days", 28),
            sick_days=row.get("sick_days", 0),
            status=row.get("status", "active"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_department(row: Dict[str, Any]) -> Department:
        return Department(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            parent_id=row.get("parent_id"),
            head_id=row.get("head_id"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # credentials
    def find_credential_by_email(self, email: str) -> Optional[CredentialRecord]:
        with self._translate_errors("find_credential_by_email"):
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT id, email, password, role FROM employees WHERE email = %s",
                    (email,),
                ).fetchone()
        if not row:
            return None
        return CredentialRecord(
            id=row["id"],
            email=row["email"],
            password_hash=row["password"],
            role=Role.parse(row["role"]),
        )

    # departments
    def list_departments(self) -> List[Department]:
        with self._translate_errors("list_departments"):
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT {_DEPARTMENT_COLUMNS} FROM departments ORDER BY id"
                ).fetchall()
        return [self._row_to_department(row) for row in rows]

    def get_department(self, department_id: int) -> Optional[Department]:
        with self._translate_errors("get_department"):
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_DEPARTMENT_COLUMNS} FROM departments WHERE id = %s",
                    (department_id,),
                ).fetchone()
        return self._row_to_department(row) if row else None

    def create_department(self, values: Dict[str, Any]) -> Department:
        params = [values.get(k) for k in DEPARTMENT_WRITABLE_FIELDS]
        with self._translate_errors("create_department"):
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO departments (name, description, parent_id, head_id)
                    VALUES (%s, %s, %s, %s)
                    RETURNING {_DEPARTMENT_COLUMNS}
                    """,
                    params,
                ).fetchone()
        return self._row_to_department(row)

    def update_department(
        self, department_id: int, values: Dict[str, Any]
    ) -> Optional[Department]:
        params = [values.get(k) for k in DEPARTMENT_WRITABLE_FIELDS] + [department_id]
        with self._translate_errors("update_department"):
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    UPDATE departments
                    SET name = %s, description = %s, parent_id = %s, head_id = %s, updated_at = now()
                    WHERE id = %s
                    RETURNING {_DEPARTMENT_COLUMNS}
                    """,
                    params,
                ).fetchone()
        return self._row_to_department(row) if row else None

    def delete_department(self, department_id: int) -> bool:
        with self._translate_errors("delete_department"):
            with self._connect() as conn:
                result = conn.execute(
                    "DELETE FROM departments WHERE id = %s", (department_id,)
                )
                return result.rowcount > 0

    # employees
    def list_employees(
        self,
        *,
        role: Optional[Role] = None,
        department_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Employee]:
        clauses: List[str] = []
        params: List[Any] = []
        if role is not None:
            clauses.append("role = %s")
            params.append(role.value)
        if department_id is not None:
            clauses.append("department_id = %s")
            params.append(department_id)
        if status is not None:
            clauses.append("status = %s")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._translate_errors("list_employees"):
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT {_EMPLOYEE_COLUMNS} FROM employees {where} ORDER BY id",
                    params,
                ).fetchall()
        return [self._row_to_employee(row) for row in rows]

    def get_employee(self, employee_id: int) -> Optional[Employee]:
        with self._translate_errors("get_employee"):
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {_EMPLOYEE_COLUMNS} FROM employees WHERE id = %s",
                    (employee_id,),
                ).fetchone()
        return self._row_to_employee(row) if row else None

    @staticmethod
    def _employee_params(values: Dict[str, Any]) -> Dict[str, Any]:
        fields = {
            k: v for k, v in values.items() if k in EMPLOYEE_WRITABLE_FIELDS
        }
        if isinstance(fields.get("role"), Role):
            fields["role"] = fields["role"].value
        return fields

    def create_employee(self, values: Dict[str, Any], password_hash: str) -> Employee:
        fields = {k: v for k, v in self._employee_params(values).items() if v is not None}
        fields["password"] = password_hash
        columns = ", ".join(fields)
        placeholders = ", ".join(["%s"] * len(fields))
        with self._translate_errors("create_employee"):
            with self._connect() as conn:
                row = conn.execute(
                    f"INSERT INTO employees ({columns}) VALUES ({placeholders}) "
                    f"RETURNING {_EMPLOYEE_COLUMNS}",
                    list(fields.values()),
                ).fetchone()
        return self._row_to_employee(row)

    def update_employee(
        self,
        employee_id: int,
        values: Dict[str, Any],
        password_hash: Optional[str] = None,
    ) -> Optional[Employee]:
        fields = self._employee_params(values)
        if password_hash is not None:
            fields["password"] = password_hash
        assignments = ", ".join(f"{column} = %s" for column in fields)
        set_clause = f"{assignments}, updated_at = now()" if assignments else "updated_at = now()"
        with self._translate_errors("update_employee"):
            with self._connect() as conn:
                row = conn.execute(
                    f"UPDATE employees SET {set_clause} WHERE id = %s "
                    f"RETURNING {_EMPLOYEE_COLUMNS}",
                    list(fields.values()) + [employee_id],
                ).fetchone()
        return self._row_to_employee(row) if row else None

    def add_vacation_days(self, employee_id: int, days: int) -> Optional[Employee]:
        with self._translate_errors("add_vacation_days"):
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    UPDATE employees
                    SET vacation_days = vacation_days + %s, updated_at = now()
                    WHERE id = %s
                    RETURNING {_EMPLOYEE_COLUMNS}
                    """,
                    (days, employee_id),
                ).fetchone()
        return self._row_to_employee(row) if row else None

    def delete_employee(self, employee_id: int) -> bool:
        with self._translate_errors("delete_employee"):
            with self._connect() as conn:
                result = conn.execute(
                    "DELETE FROM employees WHERE id = %s", (employee_id,)
                )
                return result.rowcount > 0


__all__ = ["PostgresStore"]
