"""Stock, transfer, count and production request schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class StockLimitsUpdate(BaseModel):
    min_quantity: Decimal = Field(Decimal("0"), ge=0)
    max_quantity: Optional[Decimal] = Field(None, ge=0)


class StockAdd(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    notes: str = Field(..., min_length=1)


class StockDeduct(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    reason: Literal["expired", "damaged", "spoiled", "others"]
    notes: Optional[str] = None


# ==================== TRANSFERS ====================

class TransferLine(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)


class TransferCreate(BaseModel):
    from_business_id: Optional[int] = None
    from_branch_id: int = Field(..., gt=0)
    to_business_id: Optional[int] = None
    to_branch_id: int = Field(..., gt=0)
    items: List[TransferLine] = Field(..., min_length=1)
    notes: Optional[str] = None


class TransferReceiveLine(BaseModel):
    item_id: int = Field(..., gt=0)
    received_quantity: Decimal = Field(..., ge=0)


class TransferReceive(BaseModel):
    items: Optional[List[TransferReceiveLine]] = None
    notes: Optional[str] = None


class TransferCancel(BaseModel):
    reason: Optional[str] = None


# ==================== COUNTS ====================

class InventoryCountCreate(BaseModel):
    count_type: Literal["full", "partial", "cycle"] = "full"
    item_ids: Optional[List[int]] = None
    notes: Optional[str] = None


class CountItemUpdate(BaseModel):
    counted_quantity: Decimal = Field(..., ge=0)
    variance_reason: Optional[str] = Field(None, max_length=200)


# ==================== PRODUCTION ====================

class ProductionCreate(BaseModel):
    composite_item_id: int = Field(..., gt=0)
    batch_count: Decimal = Field(..., gt=0)
    notes: Optional[str] = None
    template_id: Optional[int] = None


class ProductionTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    name_ar: Optional[str] = Field(None, max_length=200)
    composite_item_id: int = Field(..., gt=0)
    default_batch_count: int = Field(1, gt=0)
    notes: Optional[str] = None


class ProductionTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    name_ar: Optional[str] = Field(None, max_length=200)
    composite_item_id: Optional[int] = Field(None, gt=0)
    default_batch_count: Optional[int] = Field(None, gt=0)
    notes: Optional[str] = None
