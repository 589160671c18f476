"""Inventory transaction timeline routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from silo.core.config import settings
from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.stock import DeductionReason, ReferenceType, TransactionType
from silo.services.stock_ledger_service import StockLedgerService

router = APIRouter()


def _enum_or_400(enum_cls, value: Optional[str], name: str):
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} '{value}'")


@router.get("/")
@limiter.limit("60/minute")
def get_timeline(
    request: Request,
    db: DbSession,
    ctx: Context,
    transaction_type: Optional[str] = None,
    deduction_reason: Optional[str] = None,
    item_id: Optional[int] = None,
    reference_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.timeline_page_size, ge=1, le=200),
):
    """Ledger rows, newest first."""
    return StockLedgerService(db, ctx).timeline(
        page=page,
        limit=limit,
        transaction_type=_enum_or_400(TransactionType, transaction_type, "transaction_type"),
        deduction_reason=_enum_or_400(DeductionReason, deduction_reason, "deduction_reason"),
        item_id=item_id,
        reference_type=_enum_or_400(ReferenceType, reference_type, "reference_type"),
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/stats")
@limiter.limit("60/minute")
def get_timeline_stats(request: Request, db: DbSession, ctx: Context):
    return StockLedgerService(db, ctx).timeline_stats()


@router.get("/item/{item_id}")
@limiter.limit("60/minute")
def get_item_timeline(
    request: Request,
    item_id: PositiveIntId,
    db: DbSession,
    ctx: Context,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.timeline_page_size, ge=1, le=200),
):
    service = StockLedgerService(db, ctx)
    service.catalog.get_item(item_id)
    return service.timeline(page=page, limit=limit, item_id=item_id)
