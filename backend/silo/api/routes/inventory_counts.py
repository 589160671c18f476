"""Inventory count (stocktake) routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireEmployee, RequireManager
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.inventory_count import CountStatus, CountType, InventoryCount
from silo.schemas.stock import CountItemUpdate, InventoryCountCreate
from silo.services.inventory_count_service import InventoryCountService

router = APIRouter()


def _count_to_response(count: InventoryCount, include_items: bool = False) -> dict:
    data = {
        "id": count.id,
        "count_number": count.count_number,
        "count_type": count.count_type.value,
        "status": count.status.value,
        "branch_id": count.branch_id,
        "branch_name": count.branch.name if count.branch else None,
        "count_date": count.count_date.isoformat() if count.count_date else None,
        "notes": count.notes,
        "created_by": count.created_by,
        "completed_by": count.completed_by,
        "completed_at": count.completed_at.isoformat() if count.completed_at else None,
        "summary": InventoryCountService.summary(count),
    }
    if include_items:
        data["items"] = [
            {
                "id": line.id,
                "item_id": line.item_id,
                "item_name": line.item.name if line.item else None,
                "item_name_ar": line.item.name_ar if line.item else None,
                "unit": line.item.storage_unit if line.item else None,
                "expected_quantity": float(line.expected_quantity),
                "counted_quantity": float(line.counted_quantity) if line.counted_quantity is not None else None,
                "variance": float(line.variance) if line.variance is not None else None,
                "variance_reason": line.variance_reason,
                "counted_at": line.counted_at.isoformat() if line.counted_at else None,
            }
            for line in count.items
        ]
    return data


@router.get("/")
@limiter.limit("60/minute")
def list_counts(
    request: Request,
    db: DbSession,
    ctx: Context,
    status: Optional[str] = Query(None, pattern="^(draft|in_progress|pending_review|completed|cancelled)$"),
):
    counts = InventoryCountService(db, ctx).list_counts(CountStatus(status) if status else None)
    return {"items": [_count_to_response(c) for c in counts], "total": len(counts)}


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_count(request: Request, body: InventoryCountCreate, db: DbSession, ctx: Context, _: RequireEmployee):
    """Open a count sheet; expected quantities are snapshotted from the ledger."""
    count = InventoryCountService(db, ctx).create(CountType(body.count_type), body.item_ids, body.notes)
    db.commit()
    db.refresh(count)
    return _count_to_response(count, include_items=True)


@router.get("/{count_id}")
@limiter.limit("60/minute")
def get_count(request: Request, count_id: PositiveIntId, db: DbSession, ctx: Context):
    return _count_to_response(InventoryCountService(db, ctx).get(count_id), include_items=True)


@router.post("/{count_id}/start")
@limiter.limit("30/minute")
def start_count(request: Request, count_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireEmployee):
    service = InventoryCountService(db, ctx)
    count = service.start(service.get(count_id))
    db.commit()
    db.refresh(count)
    return _count_to_response(count)


@router.patch("/{count_id}/items/{item_id}")
@limiter.limit("30/minute")
def count_item(
    request: Request, count_id: PositiveIntId, item_id: PositiveIntId, body: CountItemUpdate,
    db: DbSession, ctx: Context, _: RequireEmployee,
):
    service = InventoryCountService(db, ctx)
    count = service.get(count_id)
    service.count_item(count, item_id, body.counted_quantity, body.variance_reason)
    db.commit()
    db.refresh(count)
    return _count_to_response(count, include_items=True)


@router.post("/{count_id}/submit")
@limiter.limit("30/minute")
def submit_count(request: Request, count_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireEmployee):
    service = InventoryCountService(db, ctx)
    count = service.submit(service.get(count_id))
    db.commit()
    db.refresh(count)
    return _count_to_response(count)


@router.post("/{count_id}/complete")
@limiter.limit("30/minute")
def complete_count(request: Request, count_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireManager):
    """Post the count variances to the ledger."""
    service = InventoryCountService(db, ctx)
    count = service.complete(service.get(count_id))
    db.commit()
    db.refresh(count)
    return _count_to_response(count, include_items=True)


@router.post("/{count_id}/cancel")
@limiter.limit("30/minute")
def cancel_count(request: Request, count_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireManager):
    service = InventoryCountService(db, ctx)
    count = service.cancel(service.get(count_id))
    db.commit()
    db.refresh(count)
    return _count_to_response(count)
