"""Vendor schemas."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class VendorBase(BaseModel):
    """Base vendor schema."""

    name_ar: Optional[str] = Field(None, max_length=200)
    code: Optional[str] = Field(None, max_length=50)
    contact_person: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    tax_number: Optional[str] = Field(None, max_length=50)
    payment_terms: Optional[int] = Field(None, ge=0, le=365)
    notes: Optional[str] = None
    branch_id: Optional[int] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class VendorCreate(VendorBase):
    """Vendor creation schema."""

    name: str = Field(..., max_length=200)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Vendor name is required")
        return v


class VendorUpdate(VendorBase):
    """Vendor update schema."""

    name: Optional[str] = Field(None, max_length=200)
    status: Optional[Literal["active", "inactive"]] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Vendor name cannot be empty")
        return v
