"""PO template routes."""

from typing import Optional

from fastapi import APIRouter, Request

from silo.api.routes.purchase_orders import po_to_response
from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireEmployee, RequireManager
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.purchase_order import POTemplate
from silo.schemas.purchase_order import (
    OrderFromTemplate,
    POTemplateCreate,
    POTemplateUpdate,
    TemplateFromOrder,
)
from silo.services.po_template_service import POTemplateService

router = APIRouter()


def _template_to_response(template: POTemplate) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "name_ar": template.name_ar,
        "vendor_id": template.vendor_id,
        "vendor_name": template.vendor.name if template.vendor else None,
        "notes": template.notes,
        "is_active": template.is_active,
        "items": [
            {
                "id": line.id,
                "item_id": line.item_id,
                "item_name": line.item.name if line.item else None,
                "item_name_ar": line.item.name_ar if line.item else None,
                "unit": line.item.storage_unit if line.item else None,
                "quantity": float(line.quantity),
            }
            for line in template.items
        ],
        "created_at": template.created_at.isoformat() if template.created_at else None,
    }


@router.get("/")
@limiter.limit("60/minute")
def list_templates(request: Request, db: DbSession, ctx: Context, vendor_id: Optional[int] = None):
    templates = POTemplateService(db, ctx).list_templates(vendor_id)
    return {"items": [_template_to_response(t) for t in templates], "total": len(templates)}


@router.get("/{template_id}")
@limiter.limit("60/minute")
def get_template(request: Request, template_id: PositiveIntId, db: DbSession, ctx: Context):
    return _template_to_response(POTemplateService(db, ctx).get(template_id))


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_template(request: Request, body: POTemplateCreate, db: DbSession, ctx: Context, _: RequireManager):
    template = POTemplateService(db, ctx).create({
        **body.model_dump(exclude={"items"}),
        "items": [line.model_dump() for line in body.items],
    })
    db.commit()
    db.refresh(template)
    return _template_to_response(template)


@router.post("/from-order/{po_id}", status_code=201)
@limiter.limit("30/minute")
def create_template_from_order(
    request: Request, po_id: PositiveIntId, body: TemplateFromOrder, db: DbSession, ctx: Context,
    _: RequireManager,
):
    """Save an existing order's vendor and lines as a template."""
    service = POTemplateService(db, ctx)
    template = service.from_order(service.orders.get(po_id), body.name)
    db.commit()
    db.refresh(template)
    return _template_to_response(template)


@router.patch("/{template_id}")
@limiter.limit("30/minute")
def update_template(
    request: Request, template_id: PositiveIntId, body: POTemplateUpdate, db: DbSession, ctx: Context,
    _: RequireManager,
):
    service = POTemplateService(db, ctx)
    data = body.model_dump(exclude_unset=True)
    if body.items is not None:
        data["items"] = [line.model_dump() for line in body.items]
    template = service.update(service.get(template_id), data)
    db.commit()
    db.refresh(template)
    return _template_to_response(template)


@router.delete("/{template_id}")
@limiter.limit("30/minute")
def delete_template(request: Request, template_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireManager):
    service = POTemplateService(db, ctx)
    service.delete(service.get(template_id))
    db.commit()
    return {"deleted": True, "id": template_id}


@router.post("/{template_id}/create-order", status_code=201)
@limiter.limit("30/minute")
def create_order_from_template(
    request: Request, template_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireEmployee,
    body: Optional[OrderFromTemplate] = None,
):
    """Create a pending purchase order prefilled from the template."""
    service = POTemplateService(db, ctx)
    body = body or OrderFromTemplate()
    po = service.create_order(service.get(template_id), body.expected_date, body.notes)
    db.commit()
    db.refresh(po)
    return po_to_response(po)
