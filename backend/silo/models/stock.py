"""Stock models: InventoryStock levels and the InventoryTransaction ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, Money, Quantity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, Enum):
    """Kinds of stock movements recorded in the ledger."""

    MANUAL_ADDITION = "manual_addition"
    MANUAL_DEDUCTION = "manual_deduction"
    PO_RECEIVE = "po_receive"
    ORDER_SALE = "order_sale"
    ORDER_CANCEL_WASTE = "order_cancel_waste"
    ORDER_CANCEL_RETURN = "order_cancel_return"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    PRODUCTION_CONSUME = "production_consume"
    PRODUCTION_YIELD = "production_yield"
    INVENTORY_COUNT_ADJUSTMENT = "inventory_count_adjustment"


ADDITION_TYPES = frozenset({
    TransactionType.MANUAL_ADDITION,
    TransactionType.PO_RECEIVE,
    TransactionType.TRANSFER_IN,
    TransactionType.PRODUCTION_YIELD,
    TransactionType.ORDER_CANCEL_RETURN,
})

DEDUCTION_TYPES = frozenset({
    TransactionType.MANUAL_DEDUCTION,
    TransactionType.ORDER_SALE,
    TransactionType.TRANSFER_OUT,
    TransactionType.PRODUCTION_CONSUME,
    TransactionType.ORDER_CANCEL_WASTE,
})


class DeductionReason(str, Enum):
    EXPIRED = "expired"
    DAMAGED = "damaged"
    SPOILED = "spoiled"
    OTHERS = "others"


class ReferenceType(str, Enum):
    ORDER = "order"
    TRANSFER = "transfer"
    PURCHASE_ORDER = "purchase_order"
    PRODUCTION = "production"
    INVENTORY_COUNT = "inventory_count"
    MANUAL = "manual"


class InventoryStock(Base):
    """Current stock level per item per branch."""

    __tablename__ = "inventory_stock"
    __table_args__ = (
        UniqueConstraint("business_id", "branch_id", "item_id", name="uq_stock_business_branch_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    reserved_quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    min_quantity: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    max_quantity: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)
    last_count_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_count_quantity: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    item: Mapped["Item"] = relationship("Item")


class InventoryTransaction(Base):
    """Immutable ledger row. ``quantity`` is always the positive magnitude of the move."""

    __tablename__ = "inventory_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType), nullable=False, index=True
    )
    deduction_reason: Mapped[Optional[DeductionReason]] = mapped_column(
        SQLEnum(DeductionReason), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    quantity_before: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    cost_per_unit_at_time: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    reference_type: Mapped[Optional[ReferenceType]] = mapped_column(SQLEnum(ReferenceType), nullable=True)
    reference_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    performed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )

    item: Mapped["Item"] = relationship("Item")
    branch: Mapped["Branch"] = relationship("Branch")
    user: Mapped[Optional["User"]] = relationship("User")


# Forward references
from silo.models.business import Branch  # noqa: E402
from silo.models.item import Item  # noqa: E402
from silo.models.user import User  # noqa: E402
