"""Unit conversion between serving units and storage units.

Items are stocked and purchased in a storage unit (Kg, L, piece) and used in
recipes in a serving unit (g, mL, piece).
"""

from decimal import Decimal
from typing import Optional

from silo.services.exceptions import InventoryError, UnitConversionError

# Conversion factors to the category's base unit
UNIT_CONVERSIONS = {
    # Weight: base unit = g
    "g": Decimal("1"),
    "kg": Decimal("1000"),
    # Volume: base unit = mL
    "ml": Decimal("1"),
    "l": Decimal("1000"),
    # Count
    "piece": Decimal("1"),
}

UNIT_CATEGORIES = {
    "g": "weight",
    "kg": "weight",
    "ml": "volume",
    "l": "volume",
    "piece": "count",
}

# Canonical spellings used in API output
DISPLAY_UNITS = {"g": "grams", "kg": "Kg", "ml": "mL", "l": "L", "piece": "piece"}

_ALIASES = {
    "gram": "g", "grams": "g", "gr": "g",
    "kilo": "kg", "kilogram": "kg", "kilograms": "kg",
    "milliliter": "ml", "milliliters": "ml",
    "liter": "l", "liters": "l", "litre": "l",
    "pc": "piece", "pcs": "piece", "pieces": "piece", "unit": "piece", "ea": "piece",
}


def normalize_unit(unit: Optional[str]) -> str:
    """Lower-case a unit name and resolve aliases. Raises for unknown units."""
    key = (unit or "").strip().lower()
    key = _ALIASES.get(key, key)
    if key not in UNIT_CONVERSIONS:
        raise InventoryError(f"Unknown unit '{unit}'")
    return key


def unit_category(unit: str) -> str:
    return UNIT_CATEGORIES[normalize_unit(unit)]


def validate_unit_pairing(unit: str, storage_unit: str) -> None:
    """Reject a serving/storage unit pair from different categories."""
    if unit_category(unit) != unit_category(storage_unit):
        raise InventoryError(
            f"Unit '{unit}' is not compatible with storage unit '{storage_unit}'"
        )


def convert_units(quantity: Decimal, from_unit: str, to_unit: str, item_name: str = "") -> Decimal:
    """Convert a quantity between two units of the same category."""
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    if src == dst:
        return Decimal(quantity)
    if UNIT_CATEGORIES[src] != UNIT_CATEGORIES[dst]:
        raise UnitConversionError(from_unit, to_unit, item_name)
    return Decimal(quantity) * UNIT_CONVERSIONS[src] / UNIT_CONVERSIONS[dst]


def serving_to_storage(quantity: Decimal, item) -> Decimal:
    """Convert a recipe quantity in the item's serving unit to its storage unit."""
    return convert_units(quantity, item.unit, item.storage_unit, item.name)


def display_unit(unit: Optional[str]) -> Optional[str]:
    if unit is None:
        return None
    try:
        return DISPLAY_UNITS[normalize_unit(unit)]
    except InventoryError:
        return unit
