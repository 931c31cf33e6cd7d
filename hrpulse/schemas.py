"""Pydantic schemas for API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    tenant_name: str = Field(min_length=2, max_length=200)
    tenant_slug: str = Field(
        min_length=3,
        max_length=80,
        pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$",
    )
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=200)


class UserCreateRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    full_name: str = Field(min_length=2, max_length=200)
    role: Literal["tenant_admin", "manager", "employee"] = "employee"


class EmployeeCreateRequest(BaseModel):
    full_name: str = Field(min_length=2, max_length=200)
    email: str = Field(min_length=5, max_length=255)
    employee_number: str | None = Field(default=None, max_length=64)
    user_id: int | None = None


class TierChangeRequest(BaseModel):
    tier: str = Field(min_length=1, max_length=32)
    # Leave unset to take the new tier's seat limit; null or -1 means unlimited.
    max_employees: int | None = Field(default=None, ge=-1)


class TenantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    subscription_tier: str
    max_employees: int | None
    is_active: bool
    created_at: datetime


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: str
    role: str
    created_at: datetime


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None
    full_name: str
    email: str
    employee_number: str | None
    feedback_slug: str
    status: str
    created_at: datetime


class EmployeeListOut(BaseModel):
    employees: list[EmployeeOut]
    seats_used: int
    max_employees: int | None


class BillingAuditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int | None
    user_id: int | None
    action: str
    old_value: dict | None
    new_value: dict | None
    description: str | None
    created_at: datetime


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    tenant: TenantOut
    user: UserOut
