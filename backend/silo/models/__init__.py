"""SQLAlchemy models."""

from silo.models.business import Business, Branch
from silo.models.user import User, UserStatus
from silo.models.item import Item, ItemPrice, CompositeItemComponent, ItemType, ItemStatus
from silo.models.vendor import Vendor, VendorStatus
from silo.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderItem,
    POActivity,
    POActivityAction,
    POStatus,
    POTemplate,
    POTemplateItem,
    VarianceReason,
)
from silo.models.stock import (
    InventoryStock,
    InventoryTransaction,
    TransactionType,
    DeductionReason,
    ReferenceType,
)
from silo.models.transfer import InventoryTransfer, InventoryTransferItem, TransferStatus
from silo.models.inventory_count import InventoryCount, InventoryCountItem, CountType, CountStatus
from silo.models.production import (
    Production,
    ProductionConsumedItem,
    ProductionStatus,
    ProductionTemplate,
)

__all__ = [
    "Business",
    "Branch",
    "User",
    "UserStatus",
    "Item",
    "ItemPrice",
    "CompositeItemComponent",
    "ItemType",
    "ItemStatus",
    "Vendor",
    "VendorStatus",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "POActivity",
    "POActivityAction",
    "POStatus",
    "POTemplate",
    "POTemplateItem",
    "VarianceReason",
    "InventoryStock",
    "InventoryTransaction",
    "TransactionType",
    "DeductionReason",
    "ReferenceType",
    "InventoryTransfer",
    "InventoryTransferItem",
    "TransferStatus",
    "InventoryCount",
    "InventoryCountItem",
    "CountType",
    "CountStatus",
    "Production",
    "ProductionConsumedItem",
    "ProductionStatus",
    "ProductionTemplate",
]
