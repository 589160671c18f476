"""Production models: composite-item batch runs and reusable templates."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, Money, Quantity, TimestampMixin


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class Production(Base):
    """A production run converting component stock into composite-item yield."""

    __tablename__ = "productions"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    composite_item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("production_templates.id", ondelete="SET NULL"), nullable=True
    )
    batch_count: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    total_yield: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    yield_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    cost_per_batch: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    status: Mapped[ProductionStatus] = mapped_column(
        SQLEnum(ProductionStatus), default=ProductionStatus.COMPLETED, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    production_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )

    composite_item: Mapped["Item"] = relationship("Item")
    consumed_items: Mapped[List["ProductionConsumedItem"]] = relationship(
        "ProductionConsumedItem",
        back_populates="production",
        cascade="all, delete-orphan",
        order_by="ProductionConsumedItem.id",
    )


class ProductionConsumedItem(Base):
    """Component quantity consumed by a run, in the component's storage unit."""

    __tablename__ = "production_consumed_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    production_id: Mapped[int] = mapped_column(
        ForeignKey("productions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    production: Mapped["Production"] = relationship("Production", back_populates="consumed_items")
    item: Mapped["Item"] = relationship("Item")


class ProductionTemplate(Base, TimestampMixin):
    __tablename__ = "production_templates"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    composite_item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    default_batch_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )

    composite_item: Mapped["Item"] = relationship("Item")


# Forward references
from silo.models.item import Item  # noqa: E402
