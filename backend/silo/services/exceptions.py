"""Domain exceptions raised by the service layer.

Each exception carries the HTTP status it maps to; ``silo.main`` renders them
as ``{"detail": message}``.
"""

from decimal import Decimal


class InventoryError(ValueError):
    """A business rule rejected the operation."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(InventoryError):
    status_code = 404


class PermissionDeniedError(InventoryError):
    status_code = 403


class ConflictError(InventoryError):
    status_code = 409


class InsufficientStockError(InventoryError):
    """Raised when there's not enough stock for a deduction."""

    def __init__(self, item_name: str, item_id: int, available: Decimal, needed: Decimal, unit: str = ""):
        self.item_name = item_name
        self.item_id = item_id
        self.available = available
        self.needed = needed
        self.unit = unit
        super().__init__(
            f"Insufficient stock. Available: {available}" + (f" {unit}" if unit else "")
        )


class UnitConversionError(InventoryError):
    """Raised when unit conversion between incompatible types is attempted."""

    def __init__(self, from_unit: str, to_unit: str, item_name: str = ""):
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.item_name = item_name
        suffix = f" for item '{item_name}'" if item_name else ""
        super().__init__(f"Cannot convert '{from_unit}' to '{to_unit}'{suffix}")
