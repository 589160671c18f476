"""Composite item and production routes (mounted under /inventory)."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Query, Request

from silo.api.routes.items import items_to_response
from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireEmployee, RequireManager
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.item import Item
from silo.models.production import ProductionTemplate
from silo.schemas.item import ComponentsReplace, CompositeItemCreate
from silo.schemas.stock import ProductionCreate, ProductionTemplateCreate, ProductionTemplateUpdate
from silo.services.catalog_service import CatalogService
from silo.services.production_service import ProductionService, production_to_dict
from silo.services.units import serving_to_storage

router = APIRouter()


def _composite_to_response(catalog: CatalogService, item: Item, with_components: bool = True) -> dict:
    data = items_to_response(catalog, [item])[0]
    if with_components:
        components = [c.component_item for c in item.components]
        prices = catalog.business_prices(c.id for c in components)
        data["components"] = [
            {
                "id": c.id,
                "component_item_id": c.component_item_id,
                "name": c.component_item.name,
                "name_ar": c.component_item.name_ar,
                "quantity": float(c.quantity),
                "unit": c.component_item.unit,
                "storage_unit": c.component_item.storage_unit,
                "effective_price": float(prices.get(c.component_item_id, c.component_item.cost_per_unit)),
                "storage_quantity": float(serving_to_storage(c.quantity, c.component_item)),
            }
            for c in item.components
        ]
    return data


def _template_to_response(template: ProductionTemplate) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "name_ar": template.name_ar,
        "composite_item_id": template.composite_item_id,
        "composite_item_name": template.composite_item.name if template.composite_item else None,
        "default_batch_count": template.default_batch_count,
        "notes": template.notes,
        "is_active": template.is_active,
        "created_at": template.created_at.isoformat() if template.created_at else None,
    }


# ==================== COMPOSITE ITEMS ====================

@router.get("/composite-items")
@limiter.limit("60/minute")
def list_composite_items(
    request: Request,
    db: DbSession,
    ctx: Context,
    expand: Optional[str] = Query(None, pattern="^components$"),
):
    """List composite items; ``expand=components`` embeds the recipes in one response."""
    catalog = CatalogService(db, ctx)
    expanded = expand == "components"
    items = catalog.list_composites(expand=expanded)
    return {"items": [_composite_to_response(catalog, i, expanded) for i in items], "total": len(items)}


@router.get("/composite-items/{item_id}")
@limiter.limit("60/minute")
def get_composite_item(request: Request, item_id: PositiveIntId, db: DbSession, ctx: Context):
    catalog = CatalogService(db, ctx)
    return _composite_to_response(catalog, catalog.get_composite(item_id))


@router.post("/composite-items", status_code=201)
@limiter.limit("30/minute")
def create_composite_item(
    request: Request, body: CompositeItemCreate, db: DbSession, ctx: Context, _: RequireManager,
):
    """Create a composite item together with its components."""
    catalog = CatalogService(db, ctx)
    data = body.model_dump(exclude={"components"})
    data["is_composite"] = True
    data["unit"] = data.get("unit") or body.batch_unit
    data["storage_unit"] = data.get("storage_unit") or body.batch_unit
    catalog.validate_composite_fields(body.batch_quantity, body.batch_unit, data["storage_unit"])
    item = catalog.create_item(data)
    catalog.set_components(item, [c.model_dump() for c in body.components])
    db.commit()
    db.refresh(item)
    return _composite_to_response(catalog, item)


@router.put("/composite-items/{item_id}/components")
@limiter.limit("30/minute")
def replace_components(
    request: Request, item_id: PositiveIntId, body: ComponentsReplace, db: DbSession, ctx: Context,
    _: RequireManager,
):
    catalog = CatalogService(db, ctx)
    catalog.get_editable_item(item_id)
    item = catalog.get_composite(item_id)
    catalog.set_components(item, [c.model_dump() for c in body.components])
    db.commit()
    db.refresh(item)
    return _composite_to_response(catalog, item)


# ==================== PRODUCTION ====================

@router.get("/production/check")
@limiter.limit("60/minute")
def check_production(
    request: Request,
    db: DbSession,
    ctx: Context,
    composite_item_id: int = Query(..., gt=0),
    batch_count: Decimal = Query(..., gt=0),
):
    """Component availability for a planned run, without side effects."""
    return ProductionService(db, ctx).check_availability(composite_item_id, batch_count)


@router.get("/production/stats")
@limiter.limit("60/minute")
def production_stats(request: Request, db: DbSession, ctx: Context):
    return ProductionService(db, ctx).stats()


@router.get("/production/templates")
@limiter.limit("60/minute")
def list_production_templates(
    request: Request, db: DbSession, ctx: Context, composite_item_id: Optional[int] = None,
):
    templates = ProductionService(db, ctx).list_templates(composite_item_id)
    return {"items": [_template_to_response(t) for t in templates], "total": len(templates)}


@router.post("/production/templates", status_code=201)
@limiter.limit("30/minute")
def create_production_template(
    request: Request, body: ProductionTemplateCreate, db: DbSession, ctx: Context, _: RequireManager,
):
    template = ProductionService(db, ctx).create_template(body.model_dump())
    db.commit()
    db.refresh(template)
    return _template_to_response(template)


@router.get("/production/templates/{template_id}")
@limiter.limit("60/minute")
def get_production_template(request: Request, template_id: PositiveIntId, db: DbSession, ctx: Context):
    return _template_to_response(ProductionService(db, ctx).get_template(template_id))


@router.patch("/production/templates/{template_id}")
@limiter.limit("30/minute")
def update_production_template(
    request: Request, template_id: PositiveIntId, body: ProductionTemplateUpdate, db: DbSession, ctx: Context,
    _: RequireManager,
):
    service = ProductionService(db, ctx)
    template = service.update_template(service.get_template(template_id), body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(template)
    return _template_to_response(template)


@router.delete("/production/templates/{template_id}")
@limiter.limit("30/minute")
def delete_production_template(
    request: Request, template_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireManager,
):
    service = ProductionService(db, ctx)
    service.delete_template(service.get_template(template_id))
    db.commit()
    return {"deleted": True, "id": template_id}


@router.get("/production")
@limiter.limit("60/minute")
def list_productions(
    request: Request,
    db: DbSession,
    ctx: Context,
    composite_item_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
):
    productions = ProductionService(db, ctx).list_productions(composite_item_id, date_from, date_to)
    return {"items": [production_to_dict(p) for p in productions], "total": len(productions)}


@router.post("/production", status_code=201)
@limiter.limit("30/minute")
def create_production(request: Request, body: ProductionCreate, db: DbSession, ctx: Context, _: RequireEmployee):
    """Produce batches of a composite item, consuming its components."""
    production = ProductionService(db, ctx).produce(
        body.composite_item_id, body.batch_count, body.notes, body.template_id,
    )
    db.commit()
    db.refresh(production)
    return production_to_dict(production)


@router.get("/production/{production_id}")
@limiter.limit("60/minute")
def get_production(request: Request, production_id: PositiveIntId, db: DbSession, ctx: Context):
    return production_to_dict(ProductionService(db, ctx).get(production_id))
