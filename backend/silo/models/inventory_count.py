"""Inventory count (stocktake) models."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, Quantity, TimestampMixin


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CountType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    CYCLE = "cycle"


class CountStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InventoryCount(Base, TimestampMixin):
    """A count session for one branch, snapshotting expected quantities at creation."""

    __tablename__ = "inventory_counts"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    count_number: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    count_type: Mapped[CountType] = mapped_column(SQLEnum(CountType), default=CountType.FULL, nullable=False)
    status: Mapped[CountStatus] = mapped_column(
        SQLEnum(CountStatus), default=CountStatus.DRAFT, nullable=False, index=True
    )
    count_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    completed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    branch: Mapped["Branch"] = relationship("Branch")
    items: Mapped[List["InventoryCountItem"]] = relationship(
        "InventoryCountItem",
        back_populates="count",
        cascade="all, delete-orphan",
        order_by="InventoryCountItem.id",
    )


class InventoryCountItem(Base):
    __tablename__ = "inventory_count_items"
    __table_args__ = (
        UniqueConstraint("count_id", "item_id", name="uq_count_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    count_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_counts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False
    )
    expected_quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    counted_quantity: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)
    variance: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)
    variance_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    counted_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    counted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    count: Mapped["InventoryCount"] = relationship("InventoryCount", back_populates="items")
    item: Mapped["Item"] = relationship("Item")


# Forward references
from silo.models.business import Branch  # noqa: E402
from silo.models.item import Item  # noqa: E402
