from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from personnel.api.schemas import (
    DepartmentRequest,
    DepartmentResponse,
    EmployeeRequest,
    EmployeeResponse,
    Envelope,
    LoginRequest,
    PrincipalResponse,
    TokenPairResponse,
    VacationRequest,
)
from personnel.service.runtime import Runtime
from personnel.storage.models import Principal, Role

router = APIRouter(prefix="/v1")


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


async def get_principal(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Principal:
    return await get_runtime(request).gate.authenticate(authorization)


def require_roles(*roles: Role):
    """Dependency factory: authenticate, then check the role against ``roles``."""
    allowed = frozenset(roles)

    async def _dependency(
        request: Request, principal: Principal = Depends(get_principal)
    ) -> Principal:
        get_runtime(request).gate.authorize(principal, allowed)
        return principal

    return _dependency


require_staff_admin = require_roles(Role.ADMIN, Role.HR)
require_staff_reader = require_roles(Role.ADMIN, Role.HR, Role.MANAGER)


# auth


@router.post("/auth/login", response_model=Envelope, tags=["auth"])
async def login(body: LoginRequest, request: Request):
    """Exchange email and password for an access/refresh token pair.

    Raises:
        401: unknown email or wrong password (same response for both)
        500: credential store or session cache unavailable
    """
    tokens = await get_runtime(request).authenticator.login(body.email, body.password)
    return Envelope(
        status="ok",
        data=TokenPairResponse(
            access_token=tokens.access_token, refresh_token=tokens.refresh_token
        ),
    )


@router.post("/auth/logout", response_model=Envelope, tags=["auth"])
async def logout(request: Request, authorization: Optional[str] = Header(None)):
    await get_runtime(request).gate.logout(authorization)
    return Envelope(status="ok", data={"message": "logged out"})


@router.get("/auth/me", response_model=Envelope, tags=["auth"])
async def me(principal: Principal = Depends(get_principal)):
    return Envelope(status="ok", data=PrincipalResponse.model_validate(principal))


# departments
# Record handlers are plain functions so FastAPI runs their blocking store
# calls in its threadpool.


@router.get("/departments", response_model=Envelope, tags=["departments"])
def list_departments(request: Request, _: Principal = Depends(get_principal)):
    departments = get_runtime(request).staff.list_departments()
    return Envelope(
        status="ok",
        data=[DepartmentResponse.model_validate(dept) for dept in departments],
    )


@router.get("/departments/{department_id}", response_model=Envelope, tags=["departments"])
def get_department(
    department_id: int, request: Request, _: Principal = Depends(get_principal)
):
    dept = get_runtime(request).staff.get_department(department_id)
    return Envelope(status="ok", data=DepartmentResponse.model_validate(dept))


@router.post(
    "/departments", response_model=Envelope, status_code=201, tags=["departments"]
)
def create_department(
    body: DepartmentRequest,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    dept = get_runtime(request).staff.create_department(body.model_dump())
    return Envelope(status="ok", data=DepartmentResponse.model_validate(dept))


@router.put("/departments/{department_id}", response_model=Envelope, tags=["departments"])
def update_department(
    department_id: int,
    body: DepartmentRequest,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    dept = get_runtime(request).staff.update_department(department_id, body.model_dump())
    return Envelope(status="ok", data=DepartmentResponse.model_validate(dept))


@router.delete("/departments/{department_id}", response_model=Envelope, tags=["departments"])
def delete_department(
    department_id: int,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    get_runtime(request).staff.delete_department(department_id)
    return Envelope(status="ok", data={"id": department_id, "deleted": True})


# employees


@router.get("/employees", response_model=Envelope, tags=["employees"])
def list_employees(
    request: Request,
    role: Optional[Role] = Query(None),
    department_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, max_length=32),
    _: Principal = Depends(require_staff_reader),
):
    employees = get_runtime(request).staff.list_employees(
        role=role, department_id=department_id, status=status
    )
    return Envelope(
        status="ok",
        data=[EmployeeResponse.model_validate(emp) for emp in employees],
    )


@router.get("/employees/{employee_id}", response_model=Envelope, tags=["employees"])
def get_employee(
    employee_id: int,
    request: Request,
    _: Principal = Depends(require_staff_reader),
):
    emp = get_runtime(request).staff.get_employee(employee_id)
    return Envelope(status="ok", data=EmployeeResponse.model_validate(emp))


@router.post("/employees", response_model=Envelope, status_code=201, tags=["employees"])
def create_employee(
    body: EmployeeRequest,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    emp = get_runtime(request).staff.create_employee(body.record_values(), body.password)
    return Envelope(status="ok", data=EmployeeResponse.model_validate(emp))


@router.put("/employees/{employee_id}", response_model=Envelope, tags=["employees"])
def update_employee(
    employee_id: int,
    body: EmployeeRequest,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    emp = get_runtime(request).staff.update_employee(
        employee_id, body.record_values(), body.password
    )
    return Envelope(status="ok", data=EmployeeResponse.model_validate(emp))


@router.post("/employees/{employee_id}/vacation", response_model=Envelope, tags=["employees"])
def request_vacation(
    employee_id: int,
    body: VacationRequest,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    emp = get_runtime(request).staff.request_vacation(employee_id, body.days)
    return Envelope(status="ok", data=EmployeeResponse.model_validate(emp))


@router.delete("/employees/{employee_id}", response_model=Envelope, tags=["employees"])
def delete_employee(
    employee_id: int,
    request: Request,
    _: Principal = Depends(require_staff_admin),
):
    get_runtime(request).staff.delete_employee(employee_id)
    return Envelope(status="ok", data={"id": employee_id, "deleted": True})
