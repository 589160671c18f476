"""API routes."""

from fastapi import APIRouter

from silo.api.routes import (
    auth, businesses, items, production, vendors, purchase_orders, po_templates,
    stock, timeline, transfers, inventory_counts, users,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
# /owners/... and /businesses/... share one router
api_router.include_router(businesses.router, tags=["businesses"])
api_router.include_router(items.router, prefix="/items", tags=["items"])
# Timeline is registered before the generic /inventory router
api_router.include_router(timeline.router, prefix="/inventory/timeline", tags=["timeline"])
api_router.include_router(production.router, prefix="/inventory", tags=["composite-items", "production"])
api_router.include_router(vendors.router, prefix="/vendors", tags=["vendors"])
api_router.include_router(purchase_orders.router, prefix="/purchase-orders", tags=["purchase-orders"])
api_router.include_router(po_templates.router, prefix="/po-templates", tags=["po-templates"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers"])
api_router.include_router(inventory_counts.router, prefix="/inventory-counts", tags=["inventory-counts"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
