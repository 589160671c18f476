"""Business (workspace) and branch models."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silo.db.base import Base, TimestampMixin


class Business(Base, TimestampMixin):
    """A workspace owned by an owner account, with its own branches, items and users."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # No FK: the owner row references its business, and each side is created first in turn
    owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    currency: Mapped[str] = mapped_column(String(3), default="SAR", nullable=False)
    vat_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    max_users: Mapped[int] = mapped_column(Integer, default=5, nullable=False)

    branches: Mapped[List["Branch"]] = relationship(
        "Branch", back_populates="business", order_by="Branch.id"
    )


class Branch(Base, TimestampMixin):
    """Physical location of a business. Stock is kept per branch."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_ar: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_main: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    business: Mapped["Business"] = relationship("Business", back_populates="branches")
