"""Catalog item routes."""

from decimal import Decimal
from typing import Dict, Optional

from fastapi import APIRouter, Query, Request

from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireManager
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.item import Item, ItemStatus
from silo.schemas.item import BusinessPriceUpdate, ItemCreate, ItemUpdate
from silo.services.catalog_service import CatalogService

router = APIRouter()


def _item_to_response(item: Item, business_price: Optional[Decimal] = None) -> dict:
    cost = item.cost_per_unit or Decimal("0")
    return {
        "id": item.id,
        "business_id": item.business_id,
        "is_shared": item.is_shared,
        "name": item.name,
        "name_ar": item.name_ar,
        "sku": item.sku,
        "category": item.category,
        "item_type": item.item_type.value,
        "unit": item.unit,
        "storage_unit": item.storage_unit,
        "cost_per_unit": float(cost),
        "business_price": float(business_price) if business_price is not None else None,
        "effective_price": float(business_price if business_price is not None else cost),
        "last_purchase_cost": float(item.last_purchase_cost) if item.last_purchase_cost is not None else None,
        "last_purchase_date": item.last_purchase_date.isoformat() if item.last_purchase_date else None,
        "is_composite": item.is_composite,
        "batch_quantity": float(item.batch_quantity) if item.batch_quantity is not None else None,
        "batch_unit": item.batch_unit,
        "status": item.status.value,
    }


def items_to_response(catalog: CatalogService, items) -> list:
    prices: Dict[int, Decimal] = catalog.business_prices(i.id for i in items)
    return [_item_to_response(i, prices.get(i.id)) for i in items]


@router.get("/")
@limiter.limit("60/minute")
def list_items(
    request: Request,
    db: DbSession,
    ctx: Context,
    category: Optional[str] = None,
    item_type: Optional[str] = Query(None, pattern="^(food|non_food)$"),
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    search: Optional[str] = None,
    is_composite: Optional[bool] = None,
):
    """List items visible to the business, shared catalogue items included."""
    catalog = CatalogService(db, ctx)
    items = catalog.list_items(category, item_type, status, search, is_composite)
    return {"items": items_to_response(catalog, items), "total": len(items)}


@router.get("/{item_id}")
@limiter.limit("60/minute")
def get_item(request: Request, item_id: PositiveIntId, db: DbSession, ctx: Context):
    catalog = CatalogService(db, ctx)
    return items_to_response(catalog, [catalog.get_item(item_id)])[0]


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_item(request: Request, body: ItemCreate, db: DbSession, ctx: Context, _: RequireManager):
    """Create a raw item for the business."""
    catalog = CatalogService(db, ctx)
    item = catalog.create_item(body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(item)
    return _item_to_response(item)


@router.patch("/{item_id}")
@limiter.limit("30/minute")
def update_item(
    request: Request, item_id: PositiveIntId, body: ItemUpdate, db: DbSession, ctx: Context, _: RequireManager,
):
    catalog = CatalogService(db, ctx)
    item = catalog.get_editable_item(item_id)
    data = body.model_dump(exclude_unset=True)
    if "status" in data and data["status"] is not None:
        data["status"] = ItemStatus(data["status"])
    catalog.update_item(item, data)
    db.commit()
    db.refresh(item)
    return items_to_response(catalog, [item])[0]


@router.delete("/{item_id}")
@limiter.limit("30/minute")
def delete_item(request: Request, item_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireManager):
    """Deactivate an item. Ledger history keeps referencing it."""
    catalog = CatalogService(db, ctx)
    item = catalog.get_editable_item(item_id)
    item.status = ItemStatus.INACTIVE
    db.commit()
    return {"deleted": True, "id": item_id}


@router.patch("/{item_id}/price")
@limiter.limit("30/minute")
def set_business_price(
    request: Request, item_id: PositiveIntId, body: BusinessPriceUpdate, db: DbSession, ctx: Context,
    _: RequireManager,
):
    """Set (or clear with null) this business's cost override for an item."""
    catalog = CatalogService(db, ctx)
    item = catalog.get_item(item_id)
    catalog.set_business_price(item, body.business_price)
    db.commit()
    db.refresh(item)
    return items_to_response(catalog, [item])[0]
