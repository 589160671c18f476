"""Transfer Service - moves stock between branches.

Stock leaves the source branch when the transfer is created (transfer_out) and
arrives at the destination when the receiving branch confirms it (transfer_in).
Cancelling a pending transfer returns the sent quantities to the source.

Only the sending branch may cancel; only the receiving branch may receive.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from silo.core.context import RequestContext, accessible_business_ids
from silo.models.business import Branch, Business
from silo.models.stock import ReferenceType, TransactionType
from silo.models.transfer import InventoryTransfer, InventoryTransferItem, TransferStatus
from silo.services.exceptions import (
    InsufficientStockError,
    InventoryError,
    NotFoundError,
    PermissionDeniedError,
)
from silo.services.numbering import generate_document_number
from silo.services.stock_ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class TransferService:
    """Create, receive and cancel inventory transfers."""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx

    def _ledger_for(self, business_id: int) -> StockLedgerService:
        """Ledger scoped to one side of the transfer."""
        return StockLedgerService(self.db, RequestContext(self.ctx.user, business_id))

    def _branch(self, business_id: int, branch_id: int) -> Branch:
        branch = self.db.get(Branch, branch_id)
        if branch is None or branch.business_id != business_id or not branch.is_active:
            raise NotFoundError(f"Branch {branch_id} not found")
        return branch

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _involves_context(self):
        """Transfers where the context branch (or business) is source or destination."""
        if self.ctx.branch_id is not None:
            return or_(
                InventoryTransfer.from_branch_id == self.ctx.branch_id,
                InventoryTransfer.to_branch_id == self.ctx.branch_id,
            )
        return or_(
            InventoryTransfer.from_business_id == self.ctx.business_id,
            InventoryTransfer.to_business_id == self.ctx.business_id,
        )

    def get(self, transfer_id: int) -> InventoryTransfer:
        transfer = self.db.get(InventoryTransfer, transfer_id)
        if transfer is None or self.ctx.business_id not in (transfer.from_business_id, transfer.to_business_id):
            raise NotFoundError("Transfer not found")
        return transfer

    def list_transfers(self, status: Optional[TransferStatus] = None, direction: str = "all") -> List[InventoryTransfer]:
        query = select(InventoryTransfer)
        if direction == "incoming":
            if self.ctx.branch_id is not None:
                query = query.where(InventoryTransfer.to_branch_id == self.ctx.branch_id)
            else:
                query = query.where(InventoryTransfer.to_business_id == self.ctx.business_id)
        elif direction == "outgoing":
            if self.ctx.branch_id is not None:
                query = query.where(InventoryTransfer.from_branch_id == self.ctx.branch_id)
            else:
                query = query.where(InventoryTransfer.from_business_id == self.ctx.business_id)
        else:
            query = query.where(self._involves_context())
        if status:
            query = query.where(InventoryTransfer.status == status)
        return list(self.db.scalars(
            query.order_by(InventoryTransfer.created_at.desc(), InventoryTransfer.id.desc())
        ).all())

    def destinations(self) -> Dict[str, Any]:
        business_ids = accessible_business_ids(self.db, self.ctx.user)
        businesses = self.db.scalars(
            select(Business).where(Business.id.in_(business_ids)).order_by(Business.id)
        ).all()
        return {
            "destinations": [
                {
                    "business_id": business.id,
                    "business_name": business.name,
                    "branches": [
                        {"id": branch.id, "name": branch.name, "name_ar": branch.name_ar}
                        for branch in business.branches
                        if branch.is_active
                    ],
                }
                for business in businesses
            ],
            "role": self.ctx.user.role.value,
        }

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        from_branch_id: int,
        to_branch_id: int,
        items: List[dict],
        from_business_id: Optional[int] = None,
        to_business_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> InventoryTransfer:
        from_business_id = from_business_id or self.ctx.business_id
        to_business_id = to_business_id or from_business_id

        allowed = accessible_business_ids(self.db, self.ctx.user)
        if from_business_id not in allowed or to_business_id not in allowed:
            raise PermissionDeniedError("Access denied to this business")

        if from_business_id == to_business_id and from_branch_id == to_branch_id:
            raise InventoryError("Source and destination branches must be different")
        self._branch(from_business_id, from_branch_id)
        self._branch(to_business_id, to_branch_id)

        if not items:
            raise InventoryError("Transfer must have at least one item")
        seen = set()
        for row in items:
            if Decimal(str(row["quantity"])) <= 0:
                raise InventoryError("Transfer quantity must be greater than 0")
            if row["item_id"] in seen:
                raise InventoryError("Each item can appear only once per transfer")
            seen.add(row["item_id"])

        source = self._ledger_for(from_business_id)
        catalog_items = source.catalog.get_items(seen)
        if to_business_id != from_business_id:
            self._ledger_for(to_business_id).catalog.get_items(seen)

        # Re-validate against current source stock
        for row in items:
            item = catalog_items[row["item_id"]]
            requested = Decimal(str(row["quantity"]))
            available = source.current_quantity(item.id, from_branch_id, from_business_id)
            if available < requested:
                raise InsufficientStockError(item.name, item.id, available, requested, item.storage_unit)

        transfer = InventoryTransfer(
            transfer_number=generate_document_number(
                self.db, InventoryTransfer.transfer_number, "TRF",
                InventoryTransfer.from_business_id, from_business_id,
            ),
            from_business_id=from_business_id,
            from_branch_id=from_branch_id,
            to_business_id=to_business_id,
            to_branch_id=to_branch_id,
            status=TransferStatus.PENDING,
            notes=notes,
            created_by=self.ctx.user_id,
        )
        for row in items:
            transfer.items.append(InventoryTransferItem(
                item_id=row["item_id"],
                quantity=Decimal(str(row["quantity"])),
            ))
        self.db.add(transfer)
        self.db.flush()

        for line in transfer.items:
            source.record(
                catalog_items[line.item_id],
                TransactionType.TRANSFER_OUT,
                line.quantity,
                from_branch_id,
                business_id=from_business_id,
                reference_type=ReferenceType.TRANSFER,
                reference_id=transfer.id,
                notes=f"Transfer {transfer.transfer_number}",
            )
        logger.info(
            f"Transfer {transfer.transfer_number} created: branch {from_branch_id} -> {to_branch_id}"
        )
        return transfer

    # ------------------------------------------------------------------
    # Receive / cancel
    # ------------------------------------------------------------------

    def receive(self, transfer: InventoryTransfer, items: Optional[List[dict]] = None,
                notes: Optional[str] = None) -> InventoryTransfer:
        if self.ctx.branch_id != transfer.to_branch_id:
            raise PermissionDeniedError("Only the receiving branch can receive this transfer")
        if transfer.status != TransferStatus.PENDING:
            raise InventoryError(f"Cannot receive a transfer with status {transfer.status.value}")

        received_by_item: Dict[int, Decimal] = {}
        lines_by_item = {line.item_id: line for line in transfer.items}
        for row in items or []:
            if row["item_id"] not in lines_by_item:
                raise InventoryError(f"Item {row['item_id']} is not part of this transfer")
            qty = Decimal(str(row["received_quantity"]))
            if qty < 0:
                raise InventoryError("Received quantity cannot be negative")
            if qty > lines_by_item[row["item_id"]].quantity:
                raise InventoryError("Received quantity cannot exceed the sent quantity")
            received_by_item[row["item_id"]] = qty

        destination = self._ledger_for(transfer.to_business_id)
        catalog_items = destination.catalog.get_items(lines_by_item)
        for item_id, line in lines_by_item.items():
            qty = received_by_item.get(item_id, line.quantity)
            line.received_quantity = qty
            if qty > 0:
                destination.record(
                    catalog_items[item_id],
                    TransactionType.TRANSFER_IN,
                    qty,
                    transfer.to_branch_id,
                    business_id=transfer.to_business_id,
                    reference_type=ReferenceType.TRANSFER,
                    reference_id=transfer.id,
                    notes=f"Transfer {transfer.transfer_number}",
                )

        transfer.status = TransferStatus.RECEIVED
        transfer.received_by = self.ctx.user_id
        transfer.received_at = datetime.now(timezone.utc)
        if notes:
            transfer.notes = f"{transfer.notes}\n\n{notes}" if transfer.notes else notes
        self.db.flush()
        logger.info(f"Transfer {transfer.transfer_number} received by user {self.ctx.user_id}")
        return transfer

    def cancel(self, transfer: InventoryTransfer, reason: Optional[str] = None) -> InventoryTransfer:
        if self.ctx.branch_id != transfer.from_branch_id:
            raise PermissionDeniedError("Only the sending branch can cancel this transfer")
        if transfer.status != TransferStatus.PENDING:
            raise InventoryError(f"Cannot cancel a transfer with status {transfer.status.value}")

        source = self._ledger_for(transfer.from_business_id)
        catalog_items = source.catalog.get_items(line.item_id for line in transfer.items)
        for line in transfer.items:
            source.record(
                catalog_items[line.item_id],
                TransactionType.TRANSFER_IN,
                line.quantity,
                transfer.from_branch_id,
                business_id=transfer.from_business_id,
                reference_type=ReferenceType.TRANSFER,
                reference_id=transfer.id,
                notes="Transfer cancelled",
            )

        transfer.status = TransferStatus.CANCELLED
        transfer.cancelled_by = self.ctx.user_id
        transfer.cancelled_at = datetime.now(timezone.utc)
        transfer.cancel_reason = reason
        self.db.flush()
        logger.info(f"Transfer {transfer.transfer_number} cancelled by user {self.ctx.user_id}")
        return transfer
