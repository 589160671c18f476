"""Catalog item schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

ItemTypeValue = Literal["food", "non_food"]


class ItemBase(BaseModel):
    name_ar: Optional[str] = Field(None, max_length=200)
    sku: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=100)
    item_type: Optional[ItemTypeValue] = None
    unit: Optional[str] = Field(None, max_length=20)
    storage_unit: Optional[str] = Field(None, max_length=20)
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)


class ItemCreate(ItemBase):
    """Raw item creation schema."""

    name: str = Field(..., max_length=200)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Item name is required")
        return v


class ItemUpdate(ItemBase):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[Literal["active", "inactive"]] = None
    batch_quantity: Optional[Decimal] = Field(None, gt=0)
    batch_unit: Optional[str] = Field(None, max_length=20)


class BusinessPriceUpdate(BaseModel):
    """Set or clear (null) the business cost override."""

    business_price: Optional[Decimal] = Field(None, ge=0)


class ComponentLine(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)


class CompositeItemCreate(ItemCreate):
    """Composite (recipe) item with its components.

    ``batch_quantity`` is the yield of one production batch in ``batch_unit``.
    """

    batch_quantity: Decimal = Field(..., gt=0)
    batch_unit: str = Field(..., max_length=20)
    components: List[ComponentLine] = Field(..., min_length=1)


class ComponentsReplace(BaseModel):
    components: List[ComponentLine] = Field(..., min_length=1)
