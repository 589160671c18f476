"""Inventory Count Service - stocktakes and variance adjustments.

A count snapshots the ledger quantity of each counted item when it is created.
Counting an item stores ``variance = counted - expected``. Completing the count
posts an ``inventory_count_adjustment`` that brings the ledger to the counted
quantity, measured against the stock at completion time.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from silo.core.context import RequestContext
from silo.models.inventory_count import CountStatus, CountType, InventoryCount, InventoryCountItem
from silo.models.item import Item, ItemStatus
from silo.models.stock import ReferenceType, TransactionType
from silo.services.exceptions import InventoryError, NotFoundError
from silo.services.numbering import generate_document_number
from silo.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

OPEN_STATUSES = (CountStatus.DRAFT, CountStatus.IN_PROGRESS, CountStatus.PENDING_REVIEW)


class InventoryCountService:
    """Create, count, complete and cancel inventory counts for a branch."""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx
        self.ledger = StockLedgerService(db, ctx)

    def get(self, count_id: int) -> InventoryCount:
        count = self.db.get(InventoryCount, count_id)
        if count is None or count.business_id != self.ctx.business_id:
            raise NotFoundError("Inventory count not found")
        return count

    def list_counts(self, status: Optional[CountStatus] = None) -> List[InventoryCount]:
        query = select(InventoryCount).where(InventoryCount.business_id == self.ctx.business_id)
        if self.ctx.branch_id is not None:
            query = query.where(InventoryCount.branch_id == self.ctx.branch_id)
        if status:
            query = query.where(InventoryCount.status == status)
        return list(self.db.scalars(
            query.order_by(InventoryCount.created_at.desc(), InventoryCount.id.desc())
        ).all())

    def create(
        self,
        count_type: CountType,
        item_ids: Optional[List[int]] = None,
        notes: Optional[str] = None,
    ) -> InventoryCount:
        branch_id = self.ctx.require_branch(self.db)

        if count_type == CountType.FULL:
            items = self.db.scalars(
                select(Item).where(
                    self.ledger.catalog.visible_filter(),
                    Item.status == ItemStatus.ACTIVE,
                    Item.is_composite.is_(False),
                ).order_by(Item.name)
            ).all()
        else:
            if not item_ids:
                raise InventoryError("item_ids are required for partial and cycle counts")
            items = sorted(self.ledger.catalog.get_items(item_ids).values(), key=lambda i: i.name)
        if not items:
            raise InventoryError("No items to count")

        count = InventoryCount(
            business_id=self.ctx.business_id,
            branch_id=branch_id,
            count_number=generate_document_number(
                self.db, InventoryCount.count_number, "CNT",
                InventoryCount.business_id, self.ctx.business_id,
            ),
            count_type=count_type,
            status=CountStatus.DRAFT,
            notes=notes,
            created_by=self.ctx.user_id,
        )
        for item in items:
            count.items.append(InventoryCountItem(
                item_id=item.id,
                expected_quantity=self.ledger.current_quantity(item.id, branch_id),
            ))
        self.db.add(count)
        self.db.flush()
        logger.info(f"Inventory count {count.count_number} created with {len(items)} items")
        return count

    def _require_open(self, count: InventoryCount) -> None:
        if count.status not in OPEN_STATUSES:
            raise InventoryError(f"Inventory count is {count.status.value}")

    def start(self, count: InventoryCount) -> InventoryCount:
        if count.status != CountStatus.DRAFT:
            raise InventoryError("Only draft counts can be started")
        count.status = CountStatus.IN_PROGRESS
        return count

    def count_item(
        self,
        count: InventoryCount,
        item_id: int,
        counted_quantity: Decimal,
        variance_reason: Optional[str] = None,
    ) -> InventoryCountItem:
        self._require_open(count)
        if counted_quantity < 0:
            raise InventoryError("Counted quantity cannot be negative")
        line = next((line for line in count.items if line.item_id == item_id), None)
        if line is None:
            raise NotFoundError("Item is not part of this count")

        line.counted_quantity = counted_quantity
        line.variance = counted_quantity - line.expected_quantity
        line.variance_reason = variance_reason
        line.counted_by = self.ctx.user_id
        line.counted_at = datetime.now(timezone.utc)
        if count.status == CountStatus.DRAFT:
            count.status = CountStatus.IN_PROGRESS
        return line

    def submit(self, count: InventoryCount) -> InventoryCount:
        if count.status != CountStatus.IN_PROGRESS:
            raise InventoryError("Only counts in progress can be submitted for review")
        count.status = CountStatus.PENDING_REVIEW
        return count

    def complete(self, count: InventoryCount) -> InventoryCount:
        if count.status not in (CountStatus.IN_PROGRESS, CountStatus.PENDING_REVIEW):
            raise InventoryError("Only counts in progress or pending review can be completed")
        uncounted = [line for line in count.items if line.counted_quantity is None]
        if uncounted:
            raise InventoryError(f"{len(uncounted)} items have not been counted")

        now = datetime.now(timezone.utc)
        adjustments = 0
        for line in count.items:
            stock = self.ledger.get_or_create_stock(line.item_id, count.branch_id)
            delta = line.counted_quantity - (stock.quantity or Decimal("0"))
            if delta != 0:
                self.ledger.record(
                    line.item,
                    TransactionType.INVENTORY_COUNT_ADJUSTMENT,
                    delta,
                    count.branch_id,
                    reference_type=ReferenceType.INVENTORY_COUNT,
                    reference_id=count.id,
                    notes=line.variance_reason or f"Count {count.count_number}",
                )
                adjustments += 1
            stock.last_count_date = now
            stock.last_count_quantity = line.counted_quantity

        count.status = CountStatus.COMPLETED
        count.completed_by = self.ctx.user_id
        count.completed_at = now
        self.db.flush()
        logger.info(f"Inventory count {count.count_number} completed with {adjustments} adjustments")
        return count

    def cancel(self, count: InventoryCount) -> InventoryCount:
        self._require_open(count)
        count.status = CountStatus.CANCELLED
        return count

    @staticmethod
    def summary(count: InventoryCount) -> Dict[str, Any]:
        counted = [line for line in count.items if line.counted_quantity is not None]
        return {
            "total_items": len(count.items),
            "counted_items": len(counted),
            "items_with_variance": sum(1 for line in counted if line.variance),
            "total_variance": float(sum((line.variance for line in counted), Decimal("0"))),
        }
