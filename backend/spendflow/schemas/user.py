"""Pydantic schemas for company user administration."""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from spendflow.core.permissions import Role


class UserCreate(BaseModel):
    """Create a user in the caller's company (admin only)."""
    email: EmailStr
    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8)
    role: Role = Role.employee
    manager_id: uuid.UUID | None = None


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    manager_id: uuid.UUID | None = None
    is_active: bool | None = None


class UserAdminOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    name: str
    role: str
    manager_id: uuid.UUID | None
    is_active: bool
    created_at: datetime


class UserListResponse(BaseModel):
    items: list[UserAdminOut]
    total: int
