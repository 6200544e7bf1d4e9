from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from personnel.storage.models import Role


def _normalize_unicode(value: str) -> str:
    """NFKC-normalize after dropping zero-width and bidi override characters."""
    zero_width = "​‌‍﻿"
    bidi_overrides = {chr(c) for c in range(0x202A, 0x202F)}
    bidi_overrides.update(chr(c) for c in range(0x2066, 0x206A))
    cleaned = "".join(c for c in value if c not in zero_width and c not in bidi_overrides)
    return unicodedata.normalize("NFKC", cleaned)


_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "forbidden",
    "not_found",
    "validation_error",
    "conflict",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    """Response envelope shared by every endpoint."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


_EMAIL_LOCAL_PART = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+$")
_EMAIL_DOMAIN_LABEL = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")


def _validate_email(value: str) -> str:
    normalized = _normalize_unicode(value.strip().lower())
    if len(normalized) > 254:
        raise ValueError("email address too long")
    local, sep, domain = normalized.partition("@")
    if not sep or not local or not domain:
        raise ValueError("invalid email address")
    if len(local) > 64 or not _EMAIL_LOCAL_PART.match(local):
        raise ValueError("invalid email address format")
    domain_parts = domain.split(".")
    if len(domain_parts) < 2:
        raise ValueError("invalid email address format")
    for label in domain_parts:
        if len(label) > 63 or not _EMAIL_DOMAIN_LABEL.match(label):
            raise ValueError("invalid email address format")
    return normalized


class LoginRequest(BaseModel):
    # Format is not validated here so a malformed email gets the same
    # "invalid credentials" answer as an unknown one.
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=1024)


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class PrincipalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: Role
    token_id: str


class DepartmentRequest(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    parent_id: Optional[int] = None
    head_id: Optional[int] = None


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    head_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class EmployeeRequest(BaseModel):
    first_name: str = Field(..., max_length=255)
    last_name: str = Field(..., max_length=255)
    email: str
    department_id: int
    password: Optional[str] = Field(default=None, max_length=128)
    role: Role = Role.EMPLOYEE
    middle_name: Optional[str] = None
    phone: Optional[str] = None
    personal_number: Optional[str] = None
    is_active: bool = True
    position: Optional[str] = None
    manager_id: Optional[int] = None
    hire_date: Optional[datetime] = None
    fire_date: Optional[datetime] = None
    birthday: Optional[datetime] = None
    address: Optional[str] = None
    vacation_days: int = Field(default=28, ge=0)
    sick_days: int = Field(default=0, ge=0)
    status: str = Field(default="active", max_length=32)

    @field_validator("email")
    @classmethod
    def _validate_employee_email(cls, value: str) -> str:
        return _validate_email(value)

    def record_values(self) -> dict[str, Any]:
        return self.model_dump(exclude={"password"})


class EmployeeResponse(BaseModel):
    """Employee as returned to callers; the password hash is never included."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    middle_name: Optional[str] = None
    phone: Optional[str] = None
    personal_number: Optional[str] = None
    email: str
    role: Role
    is_active: bool
    department_id: int
    position: Optional[str] = None
    manager_id: Optional[int] = None
    hire_date: datetime
    fire_date: Optional[datetime] = None
    birthday: Optional[datetime] = None
    address: Optional[str] = None
    vacation_days: int
    sick_days: int
    status: str
    created_at: datetime
    updated_at: datetime


class VacationRequest(BaseModel):
    days: int
