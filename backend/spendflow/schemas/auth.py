import uuid

from pydantic import BaseModel, EmailStr, Field


class Token(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class SignupRequest(BaseModel):
    """Creates a company and its first admin user."""
    company_name: str = Field(min_length=1, max_length=255)
    country: str = Field(min_length=1, max_length=100)
    currency: str | None = None
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8)


class UserOut(BaseModel):
    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    name: str
    role: str
    manager_id: uuid.UUID | None = None
    is_active: bool

    model_config = {"from_attributes": True}
