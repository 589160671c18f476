"""Purchase Order Service - PO lifecycle, activity log and receiving.

Flow:
1. Order created with item quantities only (status pending, or draft)
2. Order edited while draft/pending; every change lands in the activity log
3. Status moves through approved/ordered, or the order is cancelled
4. Receiving reconciles each line against the vendor invoice:
   a. received_quantity vs ordered quantity (short lines need a variance reason,
      over-received lines a variance note)
   b. unit_cost = total_cost / received_quantity
   c. stock increases through a po_receive ledger row
   d. item cost becomes the weighted average of existing and received stock
5. Order totals are recomputed from the invoice: subtotal, VAT and total
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from silo.core.context import RequestContext
from silo.db.base import COST_PLACES, MONEY_PLACES
from silo.models.business import Business
from silo.models.purchase_order import (
    POActivity,
    POActivityAction,
    POStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    VarianceReason,
)
from silo.models.stock import ReferenceType, TransactionType
from silo.models.vendor import Vendor, VendorStatus
from silo.services.catalog_service import CatalogService
from silo.services.exceptions import InventoryError, NotFoundError
from silo.services.numbering import generate_document_number
from silo.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (POStatus.DRAFT, POStatus.PENDING)
RECEIVABLE_STATUSES = (POStatus.PENDING, POStatus.APPROVED, POStatus.ORDERED, POStatus.PARTIAL)

# Manual status transitions; receiving statuses are reached only through receive()
STATUS_TRANSITIONS = {
    POStatus.DRAFT: {POStatus.PENDING, POStatus.CANCELLED},
    POStatus.PENDING: {POStatus.APPROVED, POStatus.ORDERED, POStatus.CANCELLED, POStatus.DRAFT},
    POStatus.APPROVED: {POStatus.ORDERED, POStatus.CANCELLED},
    POStatus.ORDERED: {POStatus.CANCELLED},
    POStatus.PARTIAL: set(),
    POStatus.RECEIVED: set(),
    POStatus.CANCELLED: set(),
}


def weighted_average_cost(
    existing_qty: Decimal,
    existing_cost: Decimal,
    new_qty: Decimal,
    new_cost: Decimal,
) -> Decimal:
    """Weighted average cost after receiving ``new_qty`` at ``new_cost``, 4 dp."""
    existing_qty = max(existing_qty or Decimal("0"), Decimal("0"))
    total_qty = existing_qty + new_qty
    if total_qty <= 0 or existing_qty <= 0:
        return Decimal(new_cost).quantize(COST_PLACES)
    value = existing_qty * (existing_cost or Decimal("0")) + new_qty * new_cost
    return (value / total_qty).quantize(COST_PLACES)


class PurchaseOrderService:
    """Create, edit, transition and receive purchase orders."""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx
        self.catalog = CatalogService(db, ctx)
        self.ledger = StockLedgerService(db, ctx)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, po_id: int) -> PurchaseOrder:
        po = self.db.get(PurchaseOrder, po_id)
        if po is None or po.business_id != self.ctx.business_id:
            raise NotFoundError("Purchase order not found")
        return po

    def list_orders(
        self,
        status: Optional[POStatus] = None,
        vendor_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ):
        query = select(PurchaseOrder).where(PurchaseOrder.business_id == self.ctx.business_id)
        if self.ctx.branch_id is not None:
            query = query.where(PurchaseOrder.branch_id == self.ctx.branch_id)
        if status:
            query = query.where(PurchaseOrder.status == status)
        if vendor_id:
            query = query.where(PurchaseOrder.vendor_id == vendor_id)
        total = self.db.scalar(select(func.count()).select_from(query.subquery())) or 0
        orders = self.db.scalars(
            query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).offset(skip).limit(limit)
        ).all()
        return list(orders), total

    def get_vendor(self, vendor_id: int, branch_id: Optional[int] = None) -> Vendor:
        vendor = self.db.get(Vendor, vendor_id)
        if vendor is None or vendor.business_id != self.ctx.business_id:
            raise NotFoundError("Vendor not found")
        if vendor.status != VendorStatus.ACTIVE:
            raise InventoryError("Vendor is inactive")
        if branch_id is not None and vendor.branch_id not in (None, branch_id):
            raise InventoryError("Vendor is not available for this branch")
        return vendor

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def log_activity(
        self,
        po: PurchaseOrder,
        action: POActivityAction,
        old_status: Optional[POStatus] = None,
        new_status: Optional[POStatus] = None,
        changes: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> POActivity:
        entry = POActivity(
            purchase_order_id=po.id,
            action=action,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value if new_status else None,
            changes=changes,
            notes=notes,
            user_id=self.ctx.user_id,
        )
        self.db.add(entry)
        return entry

    def activity(self, po_id: int) -> List[POActivity]:
        po = self.get(po_id)
        return list(self.db.scalars(
            select(POActivity).where(POActivity.purchase_order_id == po.id).order_by(POActivity.id)
        ).all())

    # ------------------------------------------------------------------
    # Create / edit
    # ------------------------------------------------------------------

    def _validate_lines(self, items: List[dict]) -> None:
        if not items:
            raise InventoryError("Purchase order must have at least one item")
        seen = set()
        for line in items:
            if Decimal(str(line["quantity"])) <= 0:
                raise InventoryError("Item quantity must be greater than 0")
            if line["item_id"] in seen:
                raise InventoryError("Each item can appear only once per order")
            seen.add(line["item_id"])
        self.catalog.get_items(seen)

    def create(
        self,
        vendor_id: int,
        items: List[dict],
        expected_date: Optional[date] = None,
        notes: Optional[str] = None,
        status: POStatus = POStatus.PENDING,
    ) -> PurchaseOrder:
        if status not in EDITABLE_STATUSES:
            raise InventoryError("New purchase orders must be draft or pending")
        branch_id = self.ctx.require_branch(self.db)
        self.get_vendor(vendor_id, branch_id)
        self._validate_lines(items)

        po = PurchaseOrder(
            business_id=self.ctx.business_id,
            branch_id=branch_id,
            vendor_id=vendor_id,
            order_number=generate_document_number(
                self.db, PurchaseOrder.order_number, "PO",
                PurchaseOrder.business_id, self.ctx.business_id,
            ),
            status=status,
            order_date=date.today(),
            expected_date=expected_date,
            notes=notes,
            created_by=self.ctx.user_id,
        )
        for line in items:
            po.items.append(PurchaseOrderItem(
                item_id=line["item_id"],
                quantity=Decimal(str(line["quantity"])),
            ))
        self.db.add(po)
        self.db.flush()
        self.log_activity(po, POActivityAction.CREATED, new_status=status, changes={"items": len(items)})
        logger.info(f"Purchase order {po.order_number} created by user {self.ctx.user_id}")
        return po

    def update(self, po: PurchaseOrder, data: Dict[str, Any]) -> PurchaseOrder:
        if po.status not in EDITABLE_STATUSES:
            raise InventoryError("Only draft or pending orders can be modified")

        changes: Dict[str, Any] = {}
        if data.get("vendor_id") is not None and data["vendor_id"] != po.vendor_id:
            self.get_vendor(data["vendor_id"], po.branch_id)
            changes["vendor_id"] = {"old": po.vendor_id, "new": data["vendor_id"]}
            po.vendor_id = data["vendor_id"]
        if "expected_date" in data and data["expected_date"] != po.expected_date:
            changes["expected_date"] = {
                "old": po.expected_date.isoformat() if po.expected_date else None,
                "new": data["expected_date"].isoformat() if data["expected_date"] else None,
            }
            po.expected_date = data["expected_date"]

        items_changed = False
        if data.get("items") is not None:
            self._validate_lines(data["items"])
            old_lines = {line.item_id: float(line.quantity) for line in po.items}
            new_lines = {line["item_id"]: float(line["quantity"]) for line in data["items"]}
            if old_lines != new_lines:
                items_changed = True
                changes["items"] = {
                    "old": [{"item_id": k, "quantity": v} for k, v in old_lines.items()],
                    "new": [{"item_id": k, "quantity": v} for k, v in new_lines.items()],
                }
                po.items.clear()
                self.db.flush()
                for line in data["items"]:
                    po.items.append(PurchaseOrderItem(
                        item_id=line["item_id"],
                        quantity=Decimal(str(line["quantity"])),
                    ))

        notes_changed = "notes" in data and data["notes"] != po.notes
        if notes_changed:
            changes["notes"] = {"old": po.notes, "new": data["notes"]}
            po.notes = data["notes"]

        if items_changed or changes.keys() - {"notes"}:
            self.log_activity(po, POActivityAction.ITEMS_UPDATED, changes=changes)
        elif notes_changed:
            self.log_activity(po, POActivityAction.NOTES_UPDATED, changes=changes)
        self.db.flush()
        return po

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def update_status(self, po: PurchaseOrder, new_status: POStatus, notes: Optional[str] = None) -> PurchaseOrder:
        old_status = po.status
        if new_status == old_status:
            raise InventoryError(f"Purchase order is already {old_status.value}")
        if new_status in (POStatus.RECEIVED, POStatus.PARTIAL):
            raise InventoryError("Use the receive endpoint to receive a purchase order")
        if new_status not in STATUS_TRANSITIONS.get(old_status, set()):
            raise InventoryError(
                f"Cannot change status from {old_status.value} to {new_status.value}"
            )

        now = datetime.now(timezone.utc)
        po.status = new_status
        if new_status == POStatus.APPROVED:
            po.approved_by = self.ctx.user_id
            po.approved_at = now

        if new_status == POStatus.CANCELLED:
            if notes:
                po.notes = f"{po.notes}\n\nCancellation reason: {notes}" if po.notes else f"Cancellation reason: {notes}"
            self.log_activity(po, POActivityAction.CANCELLED, old_status, new_status, notes=notes)
        else:
            self.log_activity(po, POActivityAction.STATUS_CHANGED, old_status, new_status, notes=notes)
        logger.info(f"Purchase order {po.order_number}: {old_status.value} -> {new_status.value}")
        return po

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    @staticmethod
    def validate_receive_line(ordered: Decimal, line: dict) -> None:
        """Check a received line against the ordered quantity.

        Short lines need a variance reason (missing, canceled, rejected); over-received
        lines need a free-text variance note.
        """
        received = Decimal(str(line["received_quantity"]))
        total_cost = Decimal(str(line.get("total_cost") or 0))
        if received < 0:
            raise InventoryError("Received quantity cannot be negative")
        if received > 0 and total_cost <= 0:
            raise InventoryError("Total cost is required for every received item")
        if total_cost < 0:
            raise InventoryError("Total cost cannot be negative")
        if received < ordered:
            reason = line.get("variance_reason")
            try:
                VarianceReason(reason)
            except ValueError:
                raise InventoryError(
                    "Variance reason (missing, canceled or rejected) is required when receiving less than ordered"
                )
        elif received > ordered:
            note = line.get("variance_note")
            if not note or not str(note).strip():
                raise InventoryError("Variance note is required when receiving more than ordered")

    def receive(
        self,
        po: PurchaseOrder,
        invoice_image_url: str,
        items: List[dict],
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        if po.status not in RECEIVABLE_STATUSES:
            raise InventoryError(f"Cannot receive a purchase order with status {po.status.value}")
        if not invoice_image_url or not invoice_image_url.strip():
            raise InventoryError("Invoice image is required")

        lines_by_item = {line.item_id: line for line in po.items}
        payload_by_item: Dict[int, dict] = {}
        for row in items:
            if row["item_id"] not in lines_by_item:
                raise InventoryError(f"Item {row['item_id']} is not part of this purchase order")
            if row["item_id"] in payload_by_item:
                raise InventoryError(f"Item {row['item_id']} appears more than once")
            payload_by_item[row["item_id"]] = row
        missing = set(lines_by_item) - set(payload_by_item)
        if missing:
            raise InventoryError("Every order line must be included when receiving")

        for item_id, line in lines_by_item.items():
            self.validate_receive_line(line.quantity, payload_by_item[item_id])

        catalog_items = self.catalog.get_items(lines_by_item)
        now = datetime.now(timezone.utc)
        subtotal = Decimal("0")

        for item_id, line in lines_by_item.items():
            row = payload_by_item[item_id]
            item = catalog_items[item_id]
            received = Decimal(str(row["received_quantity"]))
            total_cost = Decimal(str(row.get("total_cost") or 0)).quantize(COST_PLACES)

            line.received_quantity = received
            line.total_cost = total_cost
            line.variance_reason = VarianceReason(row["variance_reason"]) if received < line.quantity else None
            line.variance_note = (row.get("variance_note") or "").strip() or None
            subtotal += total_cost

            if received <= 0:
                line.unit_cost = None
                continue

            unit_cost = (total_cost / received).quantize(COST_PLACES)
            line.unit_cost = unit_cost

            existing_qty = self.ledger.business_quantity(item.id, po.business_id)
            existing_cost = self.catalog.effective_cost(item)
            new_cost = weighted_average_cost(existing_qty, existing_cost, received, unit_cost)

            self.ledger.record(
                item,
                TransactionType.PO_RECEIVE,
                received,
                po.branch_id,
                reference_type=ReferenceType.PURCHASE_ORDER,
                reference_id=po.id,
                notes=f"Received on {po.order_number}",
                cost_per_unit=unit_cost,
            )
            self.catalog.set_cost(item, new_cost)
            item.last_purchase_cost = unit_cost
            item.last_purchase_date = now

        business = self.db.get(Business, po.business_id)
        tax_amount = Decimal("0")
        if business is not None and business.vat_enabled:
            tax_amount = (subtotal * (business.tax_rate or Decimal("0")) / Decimal("100")).quantize(MONEY_PLACES)

        old_status = po.status
        po.subtotal = subtotal
        po.tax_amount = tax_amount
        po.total_amount = subtotal + tax_amount
        po.status = POStatus.RECEIVED
        po.invoice_image_url = invoice_image_url.strip()
        po.received_by = self.ctx.user_id
        po.received_date = now
        if notes:
            po.notes = f"{po.notes}\n\n{notes}" if po.notes else notes

        self.log_activity(
            po,
            POActivityAction.RECEIVED,
            old_status,
            po.status,
            changes={
                "items": [
                    {
                        "item_id": line.item_id,
                        "ordered": float(line.quantity),
                        "received": float(line.received_quantity),
                        "total_cost": float(line.total_cost),
                        "variance_reason": line.variance_reason.value if line.variance_reason else None,
                    }
                    for line in po.items
                ],
                "total_amount": float(po.total_amount),
            },
            notes=notes,
        )
        self.db.flush()
        logger.info(
            f"Purchase order {po.order_number} received by user {self.ctx.user_id}: "
            f"subtotal={subtotal} tax={tax_amount}"
        )
        return po


def vendor_has_orders(db: Session, vendor_id: int) -> bool:
    return db.scalar(
        select(func.count(PurchaseOrder.id)).where(PurchaseOrder.vendor_id == vendor_id)
    ) > 0
