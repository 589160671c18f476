"""Inventory transfer models."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, Quantity, TimestampMixin


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransferStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class InventoryTransfer(Base, TimestampMixin):
    """Stock moving from one branch to another, possibly across an owner's businesses."""

    __tablename__ = "inventory_transfers"

    id: Mapped[int] = mapped_column(primary_key=True)
    transfer_number: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    from_business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[TransferStatus] = mapped_column(
        SQLEnum(TransferStatus), default=TransferStatus.PENDING, nullable=False, index=True
    )
    transfer_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    received_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("business_users.id", ondelete="SET NULL"), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    from_branch: Mapped["Branch"] = relationship("Branch", foreign_keys=[from_branch_id])
    to_branch: Mapped["Branch"] = relationship("Branch", foreign_keys=[to_branch_id])
    from_business: Mapped["Business"] = relationship("Business", foreign_keys=[from_business_id])
    to_business: Mapped["Business"] = relationship("Business", foreign_keys=[to_business_id])
    items: Mapped[List["InventoryTransferItem"]] = relationship(
        "InventoryTransferItem",
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="InventoryTransferItem.id",
    )


class InventoryTransferItem(Base):
    __tablename__ = "inventory_transfer_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    transfer_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_transfers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    received_quantity: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)

    transfer: Mapped["InventoryTransfer"] = relationship("InventoryTransfer", back_populates="items")
    item: Mapped["Item"] = relationship("Item")


# Forward references
from silo.models.business import Branch, Business  # noqa: E402
from silo.models.item import Item  # noqa: E402
