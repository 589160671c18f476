"""Branch stock routes: levels, limits and manual adjustments."""

from typing import Optional

from fastapi import APIRouter, Request

from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.rbac import RequireEmployee, RequireManager
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.models.stock import DeductionReason
from silo.schemas.stock import StockAdd, StockDeduct, StockLimitsUpdate
from silo.services.stock_ledger_service import StockLedgerService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_stock(
    request: Request,
    db: DbSession,
    ctx: Context,
    branch_id: Optional[int] = None,
    low_stock: bool = False,
    search: Optional[str] = None,
    category: Optional[str] = None,
):
    """Stock of every active item in a branch, with its level classification."""
    rows = StockLedgerService(db, ctx).list_stock(branch_id, low_stock, search, category)
    return {"items": rows, "total": len(rows)}


@router.get("/stats")
@limiter.limit("60/minute")
def stock_stats(request: Request, db: DbSession, ctx: Context, branch_id: Optional[int] = None):
    return StockLedgerService(db, ctx).stock_stats(branch_id)


@router.post("/add")
@limiter.limit("30/minute")
def add_stock(request: Request, body: StockAdd, db: DbSession, ctx: Context, _: RequireEmployee):
    txn = StockLedgerService(db, ctx).manual_add(body.item_id, body.quantity, body.notes)
    db.commit()
    db.refresh(txn)
    return StockLedgerService.transaction_to_dict(txn)


@router.post("/deduct")
@limiter.limit("30/minute")
def deduct_stock(request: Request, body: StockDeduct, db: DbSession, ctx: Context, _: RequireEmployee):
    txn = StockLedgerService(db, ctx).manual_deduct(
        body.item_id, body.quantity, DeductionReason(body.reason), body.notes,
    )
    db.commit()
    db.refresh(txn)
    return StockLedgerService.transaction_to_dict(txn)


@router.get("/{item_id}")
@limiter.limit("60/minute")
def get_stock(request: Request, item_id: PositiveIntId, db: DbSession, ctx: Context, branch_id: Optional[int] = None):
    return StockLedgerService(db, ctx).get_stock(item_id, branch_id)


@router.patch("/{item_id}/limits")
@limiter.limit("30/minute")
def update_stock_limits(
    request: Request, item_id: PositiveIntId, body: StockLimitsUpdate, db: DbSession, ctx: Context,
    _: RequireManager, branch_id: Optional[int] = None,
):
    """Set min/max thresholds; max must exceed min when set."""
    service = StockLedgerService(db, ctx)
    stock = service.set_limits(item_id, body.min_quantity, body.max_quantity, branch_id)
    db.commit()
    return service.get_stock(item_id, stock.branch_id)
