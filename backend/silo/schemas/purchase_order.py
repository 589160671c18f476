"""Purchase order and PO template schemas."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from silo.models.purchase_order import POStatus


class POLine(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)


class PurchaseOrderCreate(BaseModel):
    """Purchase order creation. Lines carry quantities only; prices come from the invoice."""

    vendor_id: int = Field(..., gt=0)
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    status: Literal["draft", "pending"] = "pending"
    items: List[POLine] = Field(..., min_length=1)


class PurchaseOrderUpdate(BaseModel):
    vendor_id: Optional[int] = Field(None, gt=0)
    expected_date: Optional[date] = None
    notes: Optional[str] = None
    items: Optional[List[POLine]] = Field(None, min_length=1)
    version: Optional[int] = None


class POStatusUpdate(BaseModel):
    status: POStatus
    notes: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        if isinstance(v, str):
            return POStatus.parse(v)
        return v


class ReceiveLine(BaseModel):
    item_id: int = Field(..., gt=0)
    received_quantity: Decimal = Field(..., ge=0)
    total_cost: Decimal = Field(Decimal("0"), ge=0)
    variance_reason: Optional[str] = None
    variance_note: Optional[str] = None


class ReceivePurchaseOrder(BaseModel):
    invoice_image_url: str = Field(..., max_length=1000)
    items: List[ReceiveLine] = Field(..., min_length=1)
    notes: Optional[str] = None

    @field_validator("invoice_image_url")
    @classmethod
    def invoice_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Invoice image is required")
        return v


class POTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    name_ar: Optional[str] = Field(None, max_length=200)
    vendor_id: int = Field(..., gt=0)
    notes: Optional[str] = None
    items: List[POLine] = Field(..., min_length=1)


class POTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    name_ar: Optional[str] = Field(None, max_length=200)
    vendor_id: Optional[int] = Field(None, gt=0)
    notes: Optional[str] = None
    items: Optional[List[POLine]] = Field(None, min_length=1)


class TemplateFromOrder(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class OrderFromTemplate(BaseModel):
    expected_date: Optional[date] = None
    notes: Optional[str] = None
