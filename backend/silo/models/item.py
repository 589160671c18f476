"""Catalog models: items, per-business price overrides and composite components."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean, DateTime, Enum as SAEnum, ForeignKey, String, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, Money, Quantity, TimestampMixin


class ItemType(str, Enum):
    FOOD = "food"
    NON_FOOD = "non_food"


class ItemStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Item(Base, TimestampMixin):
    """Raw or composite inventory item.

    ``business_id`` is NULL for shared catalogue items, which every business can
    read but not edit. ``unit`` is the serving unit used by recipes and
    ``storage_unit`` the unit stock is kept and purchased in.
    """

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    item_type: Mapped[ItemType] = mapped_column(SAEnum(ItemType), default=ItemType.FOOD, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="piece", nullable=False)
    storage_unit: Mapped[str] = mapped_column(String(20), default="piece", nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    last_purchase_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    last_purchase_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_composite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    batch_quantity: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)
    batch_unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[ItemStatus] = mapped_column(SAEnum(ItemStatus), default=ItemStatus.ACTIVE, nullable=False)

    components: Mapped[List["CompositeItemComponent"]] = relationship(
        "CompositeItemComponent",
        foreign_keys="CompositeItemComponent.composite_item_id",
        back_populates="composite_item",
        cascade="all, delete-orphan",
        order_by="CompositeItemComponent.id",
    )

    @property
    def is_shared(self) -> bool:
        return self.business_id is None


class ItemPrice(Base, TimestampMixin):
    """Business-specific cost override for a shared catalogue item."""

    __tablename__ = "item_prices"
    __table_args__ = (
        UniqueConstraint("business_id", "item_id", name="uq_item_price_business_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cost_per_unit: Mapped[Decimal] = mapped_column(Money, nullable=False)


class CompositeItemComponent(Base):
    """One ingredient line of a composite item, quantity in the component's serving unit."""

    __tablename__ = "composite_item_components"
    __table_args__ = (
        UniqueConstraint("composite_item_id", "component_item_id", name="uq_composite_component"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    composite_item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)

    composite_item: Mapped["Item"] = relationship(
        "Item", foreign_keys=[composite_item_id], back_populates="components"
    )
    component_item: Mapped["Item"] = relationship("Item", foreign_keys=[component_item_id])
