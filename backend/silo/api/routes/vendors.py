"""Vendor routes."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireManager
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.vendor import Vendor, VendorStatus
from silo.schemas.vendor import VendorCreate, VendorUpdate
from silo.services.vendor_service import VendorService

router = APIRouter()


def _vendor_to_response(vendor: Vendor) -> dict:
    return {
        "id": vendor.id,
        "business_id": vendor.business_id,
        "branch_id": vendor.branch_id,
        "code": vendor.code,
        "name": vendor.name,
        "name_ar": vendor.name_ar,
        "contact_person": vendor.contact_person,
        "email": vendor.email,
        "phone": vendor.phone,
        "address": vendor.address,
        "city": vendor.city,
        "country": vendor.country,
        "tax_number": vendor.tax_number,
        "payment_terms": vendor.payment_terms,
        "notes": vendor.notes,
        "status": vendor.status.value,
        "created_at": vendor.created_at.isoformat() if vendor.created_at else None,
        "updated_at": vendor.updated_at.isoformat() if vendor.updated_at else None,
    }


@router.get("/")
@limiter.limit("60/minute")
def list_vendors(
    request: Request,
    db: DbSession,
    ctx: Context,
    search: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
):
    """List vendors usable by the context branch."""
    vendors = VendorService(db, ctx).list_vendors(search, VendorStatus(status) if status else None)
    return {"items": [_vendor_to_response(v) for v in vendors], "total": len(vendors)}


@router.get("/{vendor_id}")
@limiter.limit("60/minute")
def get_vendor(request: Request, vendor_id: PositiveIntId, db: DbSession, ctx: Context):
    return _vendor_to_response(VendorService(db, ctx).get(vendor_id))


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_vendor(request: Request, body: VendorCreate, db: DbSession, ctx: Context, _: RequireManager):
    vendor = VendorService(db, ctx).create(body.model_dump())
    db.commit()
    db.refresh(vendor)
    return _vendor_to_response(vendor)


@router.patch("/{vendor_id}")
@limiter.limit("30/minute")
def update_vendor(
    request: Request, vendor_id: PositiveIntId, body: VendorUpdate, db: DbSession, ctx: Context,
    _: RequireManager,
):
    service = VendorService(db, ctx)
    data = body.model_dump(exclude_unset=True)
    if data.get("status") is not None:
        data["status"] = VendorStatus(data["status"])
    vendor = service.update(service.get(vendor_id), data)
    db.commit()
    db.refresh(vendor)
    return _vendor_to_response(vendor)


@router.delete("/{vendor_id}")
@limiter.limit("30/minute")
def delete_vendor(request: Request, vendor_id: PositiveIntId, db: DbSession, ctx: Context, _: RequireManager):
    """Delete a vendor, or deactivate it when purchase orders reference it."""
    service = VendorService(db, ctx)
    soft = service.delete(service.get(vendor_id))
    db.commit()
    return {"deleted": True, "soft": soft}
