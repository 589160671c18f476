"""Business user schemas."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

AssignableRole = Literal["manager", "employee", "pos"]


class UserContact(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    branch_id: Optional[int] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class UserCreate(UserContact):
    """User creation schema. The password is always the business default."""

    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.\-]+$")
    role: AssignableRole


class UserUpdate(UserContact):
    """User update schema."""

    role: Optional[Literal["owner", "manager", "employee", "pos"]] = None
    status: Optional[Literal["active", "inactive", "suspended"]] = None
