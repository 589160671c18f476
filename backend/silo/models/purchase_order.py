"""Purchase order, activity log and template models."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, Enum as SQLEnum, ForeignKey, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, Money, Quantity, TimestampMixin, VersionMixin


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class POStatus(str, Enum):
    """Status of a purchase order."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    ORDERED = "ordered"
    PARTIAL = "partial"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: str) -> "POStatus":
        """Parse a status, accepting ``delivered`` as an alias of ``received``."""
        value = (value or "").strip().lower()
        if value == "delivered":
            return cls.RECEIVED
        return cls(value)


class VarianceReason(str, Enum):
    """Why fewer units were received than ordered."""

    MISSING = "missing"
    CANCELED = "canceled"
    REJECTED = "rejected"


class POActivityAction(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ITEMS_UPDATED = "items_updated"
    NOTES_UPDATED = "notes_updated"
    CANCELLED = "cancelled"
    RECEIVED = "received"


class PurchaseOrder(Base, TimestampMixin, VersionMixin):
    """A purchase order to a vendor for one branch."""

    __tablename__ = "purchase_orders"
    __table_args__ = (
        UniqueConstraint("business_id", "order_number", name="uq_po_business_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vendor_id: Mapped[int] = mapped_column(
        ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    order_number: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[POStatus] = mapped_column(
        SQLEnum(POStatus), default=POStatus.PENDING, nullable=False, index=True
    )
    order_date: Mapped[date] = mapped_column(Date, default=date.today, nullable=False)
    expected_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    approved_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    received_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    received_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    vendor: Mapped["Vendor"] = relationship("Vendor")
    items: Mapped[List["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
    )
    activity: Mapped[List["POActivity"]] = relationship(
        "POActivity",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="POActivity.id",
    )


class PurchaseOrderItem(Base):
    """A single item line in a purchase order.

    Prices are captured only when the order is received, from the vendor invoice.
    """

    __tablename__ = "purchase_order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    received_quantity: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)
    variance_reason: Mapped[Optional[VarianceReason]] = mapped_column(SQLEnum(VarianceReason), nullable=True)
    variance_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="items")
    item: Mapped["Item"] = relationship("Item")


class POActivity(Base):
    """Append-only audit entry for a purchase order."""

    __tablename__ = "purchase_order_activity"

    id: Mapped[int] = mapped_column(primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[POActivityAction] = mapped_column(SQLEnum(POActivityAction), nullable=False)
    old_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    changes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="activity")
    user: Mapped[Optional["User"]] = relationship("User")


class POTemplate(Base, TimestampMixin):
    """Saved vendor + item list for recurring orders."""

    __tablename__ = "po_templates"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vendor_id: Mapped[int] = mapped_column(
        ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )

    vendor: Mapped["Vendor"] = relationship("Vendor")
    items: Mapped[List["POTemplateItem"]] = relationship(
        "POTemplateItem",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="POTemplateItem.id",
    )


class POTemplateItem(Base):
    __tablename__ = "po_template_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("po_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    template: Mapped["POTemplate"] = relationship("POTemplate", back_populates="items")
    item: Mapped["Item"] = relationship("Item")


# Forward references
from silo.models.item import Item  # noqa: E402
from silo.models.user import User  # noqa: E402
from silo.models.vendor import Vendor  # noqa: E402
