# Services module

from silo.services.exceptions import (
    InventoryError,
    NotFoundError,
    PermissionDeniedError,
    ConflictError,
    InsufficientStockError,
    UnitConversionError,
)
from silo.services.catalog_service import CatalogService
from silo.services.stock_ledger_service import StockLedgerService, classify_stock
from silo.services.purchase_order_service import PurchaseOrderService, weighted_average_cost
from silo.services.po_template_service import POTemplateService
from silo.services.vendor_service import VendorService
from silo.services.transfer_service import TransferService
from silo.services.inventory_count_service import InventoryCountService
from silo.services.production_service import ProductionService
from silo.services.user_service import UserService
