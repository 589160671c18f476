"""Purchase order routes: lifecycle, activity log and receiving."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireEmployee, RequireManager
from silo.core.responses import paginated_response
from silo.core.validators import PositiveIntId, optimistic_update
from silo.db.session import DbSession
from silo.models.purchase_order import POActivity, POStatus, PurchaseOrder
from silo.schemas.purchase_order import (
    POStatusUpdate,
    PurchaseOrderCreate,
    PurchaseOrderUpdate,
    ReceivePurchaseOrder,
)
from silo.services.purchase_order_service import PurchaseOrderService

logger = logging.getLogger(__name__)

router = APIRouter()


def po_to_response(po: PurchaseOrder, include_items: bool = True) -> dict:
    data = {
        "id": po.id,
        "order_number": po.order_number,
        "business_id": po.business_id,
        "branch_id": po.branch_id,
        "vendor_id": po.vendor_id,
        "vendor_name": po.vendor.name if po.vendor else None,
        "vendor_name_ar": po.vendor.name_ar if po.vendor else None,
        "status": po.status.value,
        "order_date": po.order_date.isoformat() if po.order_date else None,
        "expected_date": po.expected_date.isoformat() if po.expected_date else None,
        "subtotal": float(po.subtotal or 0),
        "tax_amount": float(po.tax_amount or 0),
        "total_amount": float(po.total_amount or 0),
        "notes": po.notes,
        "invoice_image_url": po.invoice_image_url,
        "created_by": po.created_by,
        "approved_by": po.approved_by,
        "approved_at": po.approved_at.isoformat() if po.approved_at else None,
        "received_by": po.received_by,
        "received_date": po.received_date.isoformat() if po.received_date else None,
        "version": po.version,
        "created_at": po.created_at.isoformat() if po.created_at else None,
        "updated_at": po.updated_at.isoformat() if po.updated_at else None,
        "item_count": len(po.items),
    }
    if include_items:
        data["items"] = [
            {
                "id": line.id,
                "item_id": line.item_id,
                "item_name": line.item.name if line.item else None,
                "item_name_ar": line.item.name_ar if line.item else None,
                "sku": line.item.sku if line.item else None,
                "unit": line.item.storage_unit if line.item else None,
                "quantity": float(line.quantity),
                "unit_cost": float(line.unit_cost) if line.unit_cost is not None else None,
                "total_cost": float(line.total_cost) if line.total_cost is not None else None,
                "received_quantity": (
                    float(line.received_quantity) if line.received_quantity is not None else None
                ),
                "variance_reason": line.variance_reason.value if line.variance_reason else None,
                "variance_note": line.variance_note,
            }
            for line in po.items
        ]
    return data


def _activity_to_response(entry: POActivity) -> dict:
    return {
        "id": entry.id,
        "action": entry.action.value,
        "old_status": entry.old_status,
        "new_status": entry.new_status,
        "changes": entry.changes,
        "notes": entry.notes,
        "user_id": entry.user_id,
        "user_name": entry.user.display_name if entry.user else None,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


@router.get("/")
@limiter.limit("60/minute")
def list_purchase_orders(
    request: Request,
    db: DbSession,
    ctx: Context,
    status: Optional[str] = None,
    vendor_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    """List purchase orders, newest first. ``delivered`` is accepted for ``received``."""
    status_filter = None
    if status:
        try:
            status_filter = POStatus.parse(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status '{status}'")
    orders, total = PurchaseOrderService(db, ctx).list_orders(status_filter, vendor_id, skip, limit)
    return paginated_response([po_to_response(po, include_items=False) for po in orders], total, skip, limit)


@router.get("/{po_id}")
@limiter.limit("60/minute")
def get_purchase_order(request: Request, po_id: PositiveIntId, db: DbSession, ctx: Context):
    return po_to_response(PurchaseOrderService(db, ctx).get(po_id))


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_purchase_order(
    request: Request, body: PurchaseOrderCreate, db: DbSession, ctx: Context, _: RequireEmployee,
):
    """Create a purchase order. Prices are captured when the order is received."""
    po = PurchaseOrderService(db, ctx).create(
        vendor_id=body.vendor_id,
        items=[line.model_dump() for line in body.items],
        expected_date=body.expected_date,
        notes=body.notes,
        status=POStatus(body.status),
    )
    db.commit()
    db.refresh(po)
    return po_to_response(po)


@router.patch("/{po_id}")
@limiter.limit("30/minute")
def update_purchase_order(
    request: Request, po_id: PositiveIntId, body: PurchaseOrderUpdate, db: DbSession, ctx: Context,
    _: RequireEmployee,
):
    """Edit a draft or pending order. A stale ``version`` is rejected with 409."""
    service = PurchaseOrderService(db, ctx)
    po = service.get(po_id)
    optimistic_update(po, body.version)
    data = body.model_dump(exclude_unset=True, exclude={"version"})
    if data.get("items") is not None:
        data["items"] = [line.model_dump() for line in body.items]
    service.update(po, data)
    db.commit()
    db.refresh(po)
    return po_to_response(po)


@router.patch("/{po_id}/status")
@limiter.limit("30/minute")
def update_purchase_order_status(
    request: Request, po_id: PositiveIntId, body: POStatusUpdate, db: DbSession, ctx: Context,
    _: RequireManager,
):
    service = PurchaseOrderService(db, ctx)
    po = service.update_status(service.get(po_id), body.status, body.notes)
    po.increment_version()
    db.commit()
    db.refresh(po)
    return po_to_response(po)


@router.post("/{po_id}/receive")
@limiter.limit("30/minute")
def receive_purchase_order(
    request: Request, po_id: PositiveIntId, body: ReceivePurchaseOrder, db: DbSession, ctx: Context,
    _: RequireEmployee,
):
    """Receive an order against its vendor invoice and post the stock."""
    service = PurchaseOrderService(db, ctx)
    po = service.receive(
        service.get(po_id),
        invoice_image_url=body.invoice_image_url,
        items=[line.model_dump() for line in body.items],
        notes=body.notes,
    )
    po.increment_version()
    db.commit()
    db.refresh(po)
    return po_to_response(po)


@router.get("/{po_id}/activity")
@limiter.limit("60/minute")
def get_purchase_order_activity(request: Request, po_id: PositiveIntId, db: DbSession, ctx: Context):
    entries = PurchaseOrderService(db, ctx).activity(po_id)
    return {"items": [_activity_to_response(e) for e in entries], "total": len(entries)}
