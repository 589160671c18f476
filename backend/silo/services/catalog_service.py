"""Catalog Service - item lookup, pricing and composite-item recipes.

Shared catalogue items (``business_id`` NULL) are visible to every business.
A business may override the cost of a shared item through ``ItemPrice``; the
override is what purchasing and production use as the item's cost.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from silo.core.context import RequestContext
from silo.db.base import COST_PLACES
from silo.models.item import CompositeItemComponent, Item, ItemPrice, ItemStatus, ItemType
from silo.services.exceptions import InventoryError, NotFoundError, PermissionDeniedError
from silo.services.units import display_unit, normalize_unit, serving_to_storage, validate_unit_pairing

logger = logging.getLogger(__name__)


class CatalogService:
    """Item visibility, effective pricing and composite components for one business."""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def visible_filter(self):
        return or_(Item.business_id == self.ctx.business_id, Item.business_id.is_(None))

    def get_item(self, item_id: int) -> Item:
        item = self.db.get(Item, item_id)
        if item is None or item.business_id not in (None, self.ctx.business_id):
            raise NotFoundError("Item not found")
        return item

    def get_items(self, item_ids: Iterable[int]) -> Dict[int, Item]:
        """Load several visible items at once; raises if any id is unknown."""
        ids = set(item_ids)
        if not ids:
            return {}
        items = self.db.scalars(
            select(Item).where(Item.id.in_(ids), self.visible_filter())
        ).all()
        found = {item.id: item for item in items}
        missing = ids - set(found)
        if missing:
            raise NotFoundError(f"Item not found: {min(missing)}")
        return found

    def get_editable_item(self, item_id: int) -> Item:
        item = self.get_item(item_id)
        if item.is_shared:
            raise PermissionDeniedError("Shared catalogue items cannot be edited")
        return item

    def list_items(
        self,
        category: Optional[str] = None,
        item_type: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        is_composite: Optional[bool] = None,
    ) -> List[Item]:
        query = select(Item).where(self.visible_filter())
        if category:
            query = query.where(Item.category == category)
        if item_type:
            query = query.where(Item.item_type == item_type)
        if status:
            query = query.where(Item.status == ItemStatus(status))
        if is_composite is not None:
            query = query.where(Item.is_composite.is_(is_composite))
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                Item.name.ilike(pattern),
                Item.name_ar.ilike(pattern),
                Item.sku.ilike(pattern),
            ))
        return list(self.db.scalars(query.order_by(Item.name)).all())

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def _override(self, item: Item) -> Optional[ItemPrice]:
        return self.db.scalars(
            select(ItemPrice).where(
                ItemPrice.business_id == self.ctx.business_id,
                ItemPrice.item_id == item.id,
            )
        ).first()

    def business_prices(self, item_ids: Iterable[int]) -> Dict[int, Decimal]:
        ids = list(item_ids)
        if not ids:
            return {}
        rows = self.db.scalars(
            select(ItemPrice).where(
                ItemPrice.business_id == self.ctx.business_id,
                ItemPrice.item_id.in_(ids),
            )
        ).all()
        return {row.item_id: row.cost_per_unit for row in rows}

    def effective_cost(self, item: Item) -> Decimal:
        """Cost per storage unit for this business."""
        override = self._override(item)
        if override is not None:
            return override.cost_per_unit
        return item.cost_per_unit or Decimal("0")

    def set_cost(self, item: Item, cost: Decimal) -> None:
        """Store a new cost for this business, as an override when the item is shared.

        Composites using the item are re-costed.
        """
        cost = Decimal(cost).quantize(COST_PLACES)
        if not item.is_shared:
            item.cost_per_unit = cost
        else:
            override = self._override(item)
            if override is None:
                self.db.add(ItemPrice(business_id=self.ctx.business_id, item_id=item.id, cost_per_unit=cost))
            else:
                override.cost_per_unit = cost
        self.recompute_dependent_composites(item)

    def set_business_price(self, item: Item, price: Optional[Decimal]) -> None:
        override = self._override(item)
        if price is None:
            if override is not None:
                self.db.delete(override)
        elif override is None:
            self.db.add(ItemPrice(
                business_id=self.ctx.business_id,
                item_id=item.id,
                cost_per_unit=Decimal(price).quantize(COST_PLACES),
            ))
        else:
            override.cost_per_unit = Decimal(price).quantize(COST_PLACES)
        self.recompute_dependent_composites(item)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_item(self, data: dict) -> Item:
        unit = data.get("unit") or "piece"
        storage_unit = data.get("storage_unit") or unit
        validate_unit_pairing(unit, storage_unit)
        item = Item(
            business_id=self.ctx.business_id,
            name=data["name"].strip(),
            name_ar=data.get("name_ar"),
            sku=data.get("sku"),
            category=data.get("category"),
            item_type=ItemType(data.get("item_type") or ItemType.FOOD),
            unit=display_unit(unit),
            storage_unit=display_unit(storage_unit),
            cost_per_unit=Decimal(str(data.get("cost_per_unit") or 0)).quantize(COST_PLACES),
            is_composite=bool(data.get("is_composite", False)),
            batch_quantity=data.get("batch_quantity"),
            batch_unit=display_unit(data.get("batch_unit")),
        )
        self.db.add(item)
        self.db.flush()
        logger.info(f"Item {item.id} '{item.name}' created for business {self.ctx.business_id}")
        return item

    def update_item(self, item: Item, data: dict) -> Item:
        unit = data.get("unit", item.unit)
        storage_unit = data.get("storage_unit", item.storage_unit)
        if "unit" in data or "storage_unit" in data:
            validate_unit_pairing(unit, storage_unit)
        if item.is_composite and {"batch_unit", "storage_unit", "batch_quantity"} & set(data):
            self.validate_composite_fields(
                data.get("batch_quantity", item.batch_quantity),
                data.get("batch_unit", item.batch_unit),
                storage_unit,
            )
        if "unit" in data or "storage_unit" in data:
            item.unit = display_unit(unit)
            item.storage_unit = display_unit(storage_unit)
        for field in ("name_ar", "sku", "category", "batch_quantity"):
            if field in data:
                setattr(item, field, data[field])
        for field in ("name", "item_type", "status"):
            if data.get(field) is not None:
                setattr(item, field, data[field])
        if "batch_unit" in data:
            item.batch_unit = display_unit(data["batch_unit"])

        if item.is_composite:
            if {"batch_quantity", "batch_unit", "storage_unit"} & set(data):
                self.db.flush()
                item.cost_per_unit = self.composite_unit_cost(item)
        elif "cost_per_unit" in data and data["cost_per_unit"] is not None:
            self.set_cost(item, data["cost_per_unit"])
        return item

    # ------------------------------------------------------------------
    # Composite items
    # ------------------------------------------------------------------

    def get_composite(self, item_id: int) -> Item:
        item = self.get_item(item_id)
        if not item.is_composite:
            raise NotFoundError("Composite item not found")
        return item

    def list_composites(self, expand: bool = False) -> List[Item]:
        """List composite items; with ``expand`` components load in one batched query."""
        query = select(Item).where(self.visible_filter(), Item.is_composite.is_(True))
        if expand:
            query = query.options(
                selectinload(Item.components).selectinload(CompositeItemComponent.component_item)
            )
        return list(self.db.scalars(query.order_by(Item.name)).all())

    def set_components(self, composite: Item, components: List[dict]) -> None:
        """Replace the component list of a composite item."""
        if not components:
            raise InventoryError("Composite item must have at least one component")
        seen = set()
        for row in components:
            if row["item_id"] in seen:
                raise InventoryError("Duplicate component item")
            seen.add(row["item_id"])
        component_items = self.get_items(seen)
        for component in component_items.values():
            if component.is_composite:
                raise InventoryError(f"'{component.name}' is a composite item and cannot be a component")
            if component.id == composite.id:
                raise InventoryError("Composite item cannot contain itself")

        composite.components.clear()
        self.db.flush()
        for row in components:
            composite.components.append(CompositeItemComponent(
                component_item_id=row["item_id"],
                quantity=Decimal(str(row["quantity"])),
            ))
        self.db.flush()
        composite.cost_per_unit = self.composite_unit_cost(composite, component_items)

    def composite_unit_cost(self, composite: Item, component_items: Optional[Dict[int, Item]] = None) -> Decimal:
        """Recipe cost of one unit of yield, from component effective costs."""
        total = Decimal("0")
        for component in composite.components:
            item = (component_items or {}).get(component.component_item_id) or component.component_item
            storage_qty = serving_to_storage(component.quantity, item)
            total += storage_qty * self.effective_cost(item)
        batch = composite.batch_quantity or Decimal("1")
        if batch <= 0:
            batch = Decimal("1")
        return (total / batch).quantize(COST_PLACES)

    def recompute_dependent_composites(self, item: Item) -> None:
        """Re-cost every visible composite that uses ``item`` as a component."""
        if item.is_composite:
            return
        self.db.flush()
        composites = self.db.scalars(
            select(Item)
            .join(CompositeItemComponent, CompositeItemComponent.composite_item_id == Item.id)
            .where(CompositeItemComponent.component_item_id == item.id, self.visible_filter())
        ).unique().all()
        for composite in composites:
            cost = self.composite_unit_cost(composite)
            if composite.is_shared:
                self.set_cost(composite, cost)
            else:
                composite.cost_per_unit = cost
            logger.info(f"Composite {composite.id} re-costed to {cost} after cost change on item {item.id}")

    def validate_composite_fields(self, batch_quantity, batch_unit, storage_unit: Optional[str] = None) -> None:
        if batch_quantity is None or Decimal(str(batch_quantity)) <= 0:
            raise InventoryError("batch_quantity must be greater than 0")
        normalize_unit(batch_unit)
        if storage_unit:
            validate_unit_pairing(batch_unit, storage_unit)
