"""Stock Ledger Service - the single path through which stock levels change.

Every change to ``InventoryStock.quantity`` is written together with an
immutable ``InventoryTransaction`` row. For a transaction of quantity ``q``:

    quantity_after == quantity_before + q   for addition types
    quantity_after == quantity_before - q   for deduction types

``inventory_count_adjustment`` is signed by the count variance. Deductions never
take stock below zero.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from silo.core.context import RequestContext
from silo.db.base import QTY_PLACES
from silo.models.business import Branch
from silo.models.item import Item, ItemStatus
from silo.models.stock import (
    ADDITION_TYPES,
    DEDUCTION_TYPES,
    DeductionReason,
    InventoryStock,
    InventoryTransaction,
    ReferenceType,
    TransactionType,
)
from silo.services.catalog_service import CatalogService
from silo.services.exceptions import InsufficientStockError, InventoryError, NotFoundError

logger = logging.getLogger(__name__)


def classify_stock(quantity: Decimal, min_quantity: Decimal, max_quantity: Optional[Decimal]) -> str:
    """Classify a stock level as out_of_stock, low, overstocked or healthy."""
    if quantity <= 0:
        return "out_of_stock"
    if quantity <= (min_quantity or 0):
        return "low"
    if max_quantity is not None and quantity > max_quantity:
        return "overstocked"
    return "healthy"


def signed_delta(transaction_type: TransactionType, quantity: Decimal) -> Decimal:
    """Stock change for a transaction; count adjustments carry their own sign."""
    if transaction_type in ADDITION_TYPES:
        return quantity
    if transaction_type in DEDUCTION_TYPES:
        return -quantity
    return quantity


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class StockLedgerService:
    """Stock levels, manual adjustments and the transaction timeline."""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx
        self.catalog = CatalogService(db, ctx)

    # ------------------------------------------------------------------
    # Ledger core
    # ------------------------------------------------------------------

    def get_or_create_stock(self, item_id: int, branch_id: int, business_id: Optional[int] = None) -> InventoryStock:
        business_id = business_id or self.ctx.business_id
        stock = self.db.scalars(
            select(InventoryStock).where(
                InventoryStock.business_id == business_id,
                InventoryStock.branch_id == branch_id,
                InventoryStock.item_id == item_id,
            )
        ).first()
        if stock is None:
            stock = InventoryStock(
                business_id=business_id,
                branch_id=branch_id,
                item_id=item_id,
                quantity=Decimal("0"),
                reserved_quantity=Decimal("0"),
                min_quantity=Decimal("0"),
            )
            self.db.add(stock)
            self.db.flush()
        return stock

    def current_quantity(self, item_id: int, branch_id: int, business_id: Optional[int] = None) -> Decimal:
        quantity = self.db.scalar(
            select(InventoryStock.quantity).where(
                InventoryStock.business_id == (business_id or self.ctx.business_id),
                InventoryStock.branch_id == branch_id,
                InventoryStock.item_id == item_id,
            )
        )
        return quantity if quantity is not None else Decimal("0")

    def business_quantity(self, item_id: int, business_id: Optional[int] = None) -> Decimal:
        """On-hand quantity of an item summed over every branch of the business."""
        quantity = self.db.scalar(
            select(func.sum(InventoryStock.quantity)).where(
                InventoryStock.business_id == (business_id or self.ctx.business_id),
                InventoryStock.item_id == item_id,
            )
        )
        return Decimal(quantity) if quantity is not None else Decimal("0")

    def record(
        self,
        item: Item,
        transaction_type: TransactionType,
        quantity: Decimal,
        branch_id: int,
        *,
        business_id: Optional[int] = None,
        deduction_reason: Optional[DeductionReason] = None,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[int] = None,
        notes: Optional[str] = None,
        cost_per_unit: Optional[Decimal] = None,
    ) -> InventoryTransaction:
        """Apply a stock change and append its ledger row.

        ``quantity`` is a positive magnitude for addition and deduction types; for
        ``inventory_count_adjustment`` it is the signed variance.
        """
        quantity = Decimal(quantity).quantize(QTY_PLACES)
        if transaction_type != TransactionType.INVENTORY_COUNT_ADJUSTMENT and quantity <= 0:
            raise InventoryError("Quantity must be greater than 0")

        business_id = business_id or self.ctx.business_id
        stock = self.get_or_create_stock(item.id, branch_id, business_id)
        before = stock.quantity or Decimal("0")
        delta = signed_delta(transaction_type, quantity)
        after = before + delta
        if after < 0:
            raise InsufficientStockError(item.name, item.id, before, abs(delta), item.storage_unit)

        stock.quantity = after
        if cost_per_unit is None:
            cost_per_unit = self.catalog.effective_cost(item)

        txn = InventoryTransaction(
            business_id=business_id,
            branch_id=branch_id,
            item_id=item.id,
            transaction_type=transaction_type,
            deduction_reason=deduction_reason,
            quantity=abs(delta),
            unit=item.storage_unit,
            quantity_before=before,
            quantity_after=after,
            cost_per_unit_at_time=cost_per_unit,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            performed_by=self.ctx.user_id,
        )
        self.db.add(txn)
        self.db.flush()
        logger.debug(
            f"Stock {transaction_type.value} item={item.id} branch={branch_id}: {before} -> {after}"
        )
        return txn

    # ------------------------------------------------------------------
    # Stock levels
    # ------------------------------------------------------------------

    def resolve_branch(self, branch_id: Optional[int]) -> int:
        """Validate an explicit branch filter, or fall back to the context branch."""
        if branch_id is None:
            return self.ctx.require_branch(self.db)
        branch = self.db.get(Branch, branch_id)
        if branch is None or branch.business_id != self.ctx.business_id:
            raise NotFoundError("Branch not found")
        return branch_id

    def _stock_rows(self, branch_id: int, search: Optional[str] = None, category: Optional[str] = None):
        items_query = select(Item).where(self.catalog.visible_filter(), Item.status == ItemStatus.ACTIVE)
        if category:
            items_query = items_query.where(Item.category == category)
        if search:
            pattern = f"%{search.strip()}%"
            items_query = items_query.where(or_(
                Item.name.ilike(pattern),
                Item.name_ar.ilike(pattern),
                Item.sku.ilike(pattern),
                Item.category.ilike(pattern),
            ))
        items = self.db.scalars(items_query.order_by(Item.name)).all()

        stocks = {
            s.item_id: s
            for s in self.db.scalars(
                select(InventoryStock).where(
                    InventoryStock.business_id == self.ctx.business_id,
                    InventoryStock.branch_id == branch_id,
                )
            ).all()
        }
        return [(item, stocks.get(item.id)) for item in items]

    @staticmethod
    def stock_to_dict(item: Item, stock: Optional[InventoryStock], branch_id: int) -> Dict[str, Any]:
        quantity = stock.quantity if stock else Decimal("0")
        min_quantity = stock.min_quantity if stock else Decimal("0")
        max_quantity = stock.max_quantity if stock else None
        return {
            "id": stock.id if stock else None,
            "item_id": item.id,
            "branch_id": branch_id,
            "item_name": item.name,
            "item_name_ar": item.name_ar,
            "sku": item.sku,
            "category": item.category,
            "unit": item.storage_unit,
            "is_composite": item.is_composite,
            "quantity": float(quantity),
            "reserved_quantity": float(stock.reserved_quantity) if stock else 0.0,
            "min_quantity": float(min_quantity),
            "max_quantity": float(max_quantity) if max_quantity is not None else None,
            "last_count_date": stock.last_count_date.isoformat() if stock and stock.last_count_date else None,
            "last_count_quantity": (
                float(stock.last_count_quantity) if stock and stock.last_count_quantity is not None else None
            ),
            "status": classify_stock(quantity, min_quantity, max_quantity),
        }

    def list_stock(
        self,
        branch_id: Optional[int] = None,
        low_stock: bool = False,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        branch_id = self.resolve_branch(branch_id)
        rows = [self.stock_to_dict(item, stock, branch_id) for item, stock in self._stock_rows(branch_id, search, category)]
        if low_stock:
            rows = [r for r in rows if r["status"] in ("low", "out_of_stock")]
        return rows

    def stock_stats(self, branch_id: Optional[int] = None) -> Dict[str, int]:
        branch_id = self.resolve_branch(branch_id)
        counts = {"healthy": 0, "low": 0, "out_of_stock": 0, "overstocked": 0}
        rows = self._stock_rows(branch_id)
        for item, stock in rows:
            quantity = stock.quantity if stock else Decimal("0")
            status = classify_stock(
                quantity,
                stock.min_quantity if stock else Decimal("0"),
                stock.max_quantity if stock else None,
            )
            counts[status] += 1
        return {
            "total_items": len(rows),
            "healthy_count": counts["healthy"],
            "low_stock_count": counts["low"],
            "out_of_stock_count": counts["out_of_stock"],
            "overstocked_count": counts["overstocked"],
        }

    def get_stock(self, item_id: int, branch_id: Optional[int] = None) -> Dict[str, Any]:
        branch_id = self.resolve_branch(branch_id)
        item = self.catalog.get_item(item_id)
        stock = self.db.scalars(
            select(InventoryStock).where(
                InventoryStock.business_id == self.ctx.business_id,
                InventoryStock.branch_id == branch_id,
                InventoryStock.item_id == item.id,
            )
        ).first()
        return self.stock_to_dict(item, stock, branch_id)

    def set_limits(
        self,
        item_id: int,
        min_quantity: Decimal,
        max_quantity: Optional[Decimal],
        branch_id: Optional[int] = None,
    ) -> InventoryStock:
        if min_quantity < 0:
            raise InventoryError("min_quantity cannot be negative")
        if max_quantity is not None and max_quantity <= min_quantity:
            raise InventoryError("max_quantity must be greater than min_quantity")
        branch_id = self.resolve_branch(branch_id)
        item = self.catalog.get_item(item_id)
        stock = self.get_or_create_stock(item.id, branch_id)
        stock.min_quantity = min_quantity
        stock.max_quantity = max_quantity
        return stock

    # ------------------------------------------------------------------
    # Manual adjustments
    # ------------------------------------------------------------------

    def manual_add(self, item_id: int, quantity: Decimal, notes: str) -> InventoryTransaction:
        if quantity is None or quantity <= 0:
            raise InventoryError("Quantity must be greater than 0")
        if not notes or not notes.strip():
            raise InventoryError("Notes are required for manual additions")
        item = self.catalog.get_item(item_id)
        branch_id = self.ctx.require_branch(self.db)
        return self.record(
            item,
            TransactionType.MANUAL_ADDITION,
            quantity,
            branch_id,
            reference_type=ReferenceType.MANUAL,
            notes=notes.strip(),
        )

    def manual_deduct(
        self,
        item_id: int,
        quantity: Decimal,
        reason: DeductionReason,
        notes: Optional[str] = None,
    ) -> InventoryTransaction:
        if quantity is None or quantity <= 0:
            raise InventoryError("Quantity must be greater than 0")
        if reason == DeductionReason.OTHERS and not (notes and notes.strip()):
            raise InventoryError("Notes are required when reason is 'others'")
        item = self.catalog.get_item(item_id)
        branch_id = self.ctx.require_branch(self.db)
        available = self.current_quantity(item.id, branch_id)
        if available < quantity:
            raise InsufficientStockError(item.name, item.id, available, quantity)
        return self.record(
            item,
            TransactionType.MANUAL_DEDUCTION,
            quantity,
            branch_id,
            deduction_reason=reason,
            reference_type=ReferenceType.MANUAL,
            notes=notes.strip() if notes else None,
        )

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    @staticmethod
    def transaction_to_dict(txn: InventoryTransaction) -> Dict[str, Any]:
        return {
            "id": txn.id,
            "item_id": txn.item_id,
            "item_name": txn.item.name if txn.item else None,
            "item_name_ar": txn.item.name_ar if txn.item else None,
            "branch_id": txn.branch_id,
            "branch_name": txn.branch.name if txn.branch else None,
            "transaction_type": txn.transaction_type.value,
            "deduction_reason": txn.deduction_reason.value if txn.deduction_reason else None,
            "quantity": float(txn.quantity),
            "unit": txn.unit,
            "quantity_before": float(txn.quantity_before),
            "quantity_after": float(txn.quantity_after),
            "cost_per_unit_at_time": (
                float(txn.cost_per_unit_at_time) if txn.cost_per_unit_at_time is not None else None
            ),
            "reference_type": txn.reference_type.value if txn.reference_type else None,
            "reference_id": txn.reference_id,
            "notes": txn.notes,
            "performed_by": txn.performed_by,
            "user_name": txn.user.display_name if txn.user else None,
            "created_at": txn.created_at.isoformat() if txn.created_at else None,
        }

    def _timeline_query(self):
        query = select(InventoryTransaction).where(InventoryTransaction.business_id == self.ctx.business_id)
        if self.ctx.branch_id is not None:
            query = query.where(InventoryTransaction.branch_id == self.ctx.branch_id)
        return query

    def timeline(
        self,
        page: int = 1,
        limit: int = 50,
        transaction_type: Optional[TransactionType] = None,
        deduction_reason: Optional[DeductionReason] = None,
        item_id: Optional[int] = None,
        reference_type: Optional[ReferenceType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        query = self._timeline_query()
        if transaction_type:
            query = query.where(InventoryTransaction.transaction_type == transaction_type)
        if deduction_reason:
            query = query.where(InventoryTransaction.deduction_reason == deduction_reason)
        if item_id:
            query = query.where(InventoryTransaction.item_id == item_id)
        if reference_type:
            query = query.where(InventoryTransaction.reference_type == reference_type)
        if date_from:
            query = query.where(InventoryTransaction.created_at >= date_from)
        if date_to:
            query = query.where(InventoryTransaction.created_at <= date_to)

        total = self.db.scalar(select(func.count()).select_from(query.subquery())) or 0
        rows = self.db.scalars(
            query.options(
                joinedload(InventoryTransaction.item),
                joinedload(InventoryTransaction.branch),
                joinedload(InventoryTransaction.user),
            )
            .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return {
            "transactions": [self.transaction_to_dict(t) for t in rows],
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": page * limit < total,
        }

    def _count_since(self, since: datetime, types=None) -> int:
        query = self._timeline_query().where(InventoryTransaction.created_at >= since)
        if types is not None:
            query = query.where(InventoryTransaction.transaction_type.in_(list(types)))
        return self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

    def timeline_stats(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        today = _start_of_day(now)
        week_ago = now - timedelta(days=7)
        month_ago = now - timedelta(days=30)

        reasons_query = (
            select(InventoryTransaction.deduction_reason, func.count(InventoryTransaction.id))
            .where(
                InventoryTransaction.business_id == self.ctx.business_id,
                InventoryTransaction.deduction_reason.is_not(None),
                InventoryTransaction.created_at >= month_ago,
            )
            .group_by(InventoryTransaction.deduction_reason)
            .order_by(func.count(InventoryTransaction.id).desc())
            .limit(5)
        )
        if self.ctx.branch_id is not None:
            reasons_query = reasons_query.where(InventoryTransaction.branch_id == self.ctx.branch_id)

        return {
            "today_transactions": self._count_since(today),
            "today_additions": self._count_since(today, ADDITION_TYPES),
            "today_deductions": self._count_since(today, DEDUCTION_TYPES),
            "week_transactions": self._count_since(week_ago),
            "top_deduction_reasons": [
                {"reason": reason.value, "count": count}
                for reason, count in self.db.execute(reasons_query).all()
            ],
        }
