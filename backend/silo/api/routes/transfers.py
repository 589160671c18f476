"""Inventory transfer routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireEmployee
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.transfer import InventoryTransfer, TransferStatus
from silo.schemas.stock import TransferCancel, TransferCreate, TransferReceive
from silo.services.transfer_service import TransferService

router = APIRouter()


def _transfer_to_response(transfer: InventoryTransfer) -> dict:
    return {
        "id": transfer.id,
        "transfer_number": transfer.transfer_number,
        "from_business_id": transfer.from_business_id,
        "from_business_name": transfer.from_business.name if transfer.from_business else None,
        "from_branch_id": transfer.from_branch_id,
        "from_branch_name": transfer.from_branch.name if transfer.from_branch else None,
        "to_business_id": transfer.to_business_id,
        "to_business_name": transfer.to_business.name if transfer.to_business else None,
        "to_branch_id": transfer.to_branch_id,
        "to_branch_name": transfer.to_branch.name if transfer.to_branch else None,
        "status": transfer.status.value,
        "transfer_date": transfer.transfer_date.isoformat() if transfer.transfer_date else None,
        "notes": transfer.notes,
        "created_by": transfer.created_by,
        "received_by": transfer.received_by,
        "received_at": transfer.received_at.isoformat() if transfer.received_at else None,
        "cancelled_by": transfer.cancelled_by,
        "cancelled_at": transfer.cancelled_at.isoformat() if transfer.cancelled_at else None,
        "cancel_reason": transfer.cancel_reason,
        "items": [
            {
                "id": line.id,
                "item_id": line.item_id,
                "item_name": line.item.name if line.item else None,
                "item_name_ar": line.item.name_ar if line.item else None,
                "unit": line.item.storage_unit if line.item else None,
                "quantity": float(line.quantity),
                "received_quantity": (
                    float(line.received_quantity) if line.received_quantity is not None else None
                ),
            }
            for line in transfer.items
        ],
    }


@router.get("/")
@limiter.limit("60/minute")
def list_transfers(
    request: Request,
    db: DbSession,
    ctx: Context,
    status: Optional[str] = Query(None, pattern="^(pending|received|cancelled)$"),
    direction: str = Query("all", pattern="^(incoming|outgoing|all)$"),
):
    transfers = TransferService(db, ctx).list_transfers(TransferStatus(status) if status else None, direction)
    return {"items": [_transfer_to_response(t) for t in transfers], "total": len(transfers)}


@router.get("/destinations")
@limiter.limit("60/minute")
def list_destinations(request: Request, db: DbSession, ctx: Context):
    """Businesses and branches the caller can transfer between."""
    return TransferService(db, ctx).destinations()


@router.get("/{transfer_id}")
@limiter.limit("60/minute")
def get_transfer(request: Request, transfer_id: PositiveIntId, db: DbSession, ctx: Context):
    return _transfer_to_response(TransferService(db, ctx).get(transfer_id))


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_transfer(request: Request, body: TransferCreate, db: DbSession, ctx: Context, _: RequireEmployee):
    """Send stock to another branch. Quantities leave the source immediately."""
    transfer = TransferService(db, ctx).create(
        from_branch_id=body.from_branch_id,
        to_branch_id=body.to_branch_id,
        items=[line.model_dump() for line in body.items],
        from_business_id=body.from_business_id,
        to_business_id=body.to_business_id,
        notes=body.notes,
    )
    db.commit()
    db.refresh(transfer)
    return _transfer_to_response(transfer)


@router.post("/{transfer_id}/receive")
@limiter.limit("30/minute")
def receive_transfer(
    request: Request, transfer_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireEmployee,
    body: Optional[TransferReceive] = None,
):
    """Receive a pending transfer; only the destination branch may do this."""
    service = TransferService(db, ctx)
    body = body or TransferReceive()
    transfer = service.receive(
        service.get(transfer_id),
        [line.model_dump() for line in body.items] if body.items else None,
        body.notes,
    )
    db.commit()
    db.refresh(transfer)
    return _transfer_to_response(transfer)


@router.post("/{transfer_id}/cancel")
@limiter.limit("30/minute")
def cancel_transfer(
    request: Request, transfer_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireEmployee,
    body: Optional[TransferCancel] = None,
):
    """Cancel a pending transfer; only the source branch may do this."""
    service = TransferService(db, ctx)
    transfer = service.cancel(service.get(transfer_id), body.reason if body else None)
    db.commit()
    db.refresh(transfer)
    return _transfer_to_response(transfer)
