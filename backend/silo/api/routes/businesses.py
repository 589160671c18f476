"""Business and branch lookup routes."""

from fastapi import APIRouter, HTTPException, Query, Request
from sqlalchemy import func, select

from silo.core.context import accessible_business_ids
from silo.core.rate_limit import limiter
from silo.core.rbac import CurrentUser, UserRole
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.business import Branch, Business
from silo.models.user import User

router = APIRouter()


def _branch_to_response(branch: Branch) -> dict:
    return {
        "id": branch.id,
        "business_id": branch.business_id,
        "name": branch.name,
        "name_ar": branch.name_ar,
        "is_main": branch.is_main,
    }


@router.get("/owners/businesses-by-username")
@limiter.limit("30/minute")
def businesses_by_username(request: Request, db: DbSession, username: str = Query(..., min_length=1)):
    """Businesses owned by a username, for the login workspace picker.

    Unknown and non-owner usernames get an empty list.
    """
    user = db.scalars(
        select(User).where(func.lower(User.username) == username.strip().lower())
    ).first()
    if user is None or user.role != UserRole.OWNER:
        return {"businesses": []}
    businesses = db.scalars(
        select(Business)
        .where((Business.owner_id == user.id) | (Business.id == user.business_id))
        .order_by(Business.id)
    ).all()
    return {"businesses": [{"id": b.id, "name": b.name, "name_ar": b.name_ar} for b in businesses]}


@router.get("/businesses")
@limiter.limit("60/minute")
def list_businesses(request: Request, db: DbSession, current_user: CurrentUser):
    """Businesses the current user may switch to."""
    ids = accessible_business_ids(db, current_user)
    businesses = db.scalars(select(Business).where(Business.id.in_(ids)).order_by(Business.id)).all()
    items = [
        {
            "id": b.id,
            "name": b.name,
            "name_ar": b.name_ar,
            "currency": b.currency,
            "vat_enabled": b.vat_enabled,
            "tax_rate": float(b.tax_rate or 0),
        }
        for b in businesses
    ]
    return {"items": items, "total": len(items)}


@router.get("/businesses/{business_id}/branches")
@limiter.limit("60/minute")
def list_branches(request: Request, business_id: PositiveIntId, db: DbSession, current_user: CurrentUser):
    """Active branches of a business."""
    if business_id not in accessible_business_ids(db, current_user):
        raise HTTPException(status_code=403, detail="Access denied to this business")
    branches = db.scalars(
        select(Branch)
        .where(Branch.business_id == business_id, Branch.is_active.is_(True))
        .order_by(Branch.is_main.desc(), Branch.name)
    ).all()
    items = [_branch_to_response(b) for b in branches]
    return {"items": items, "total": len(items)}
