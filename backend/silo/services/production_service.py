"""
Production Service
Turns composite-item recipes into finished stock.

A run of ``batch_count`` batches consumes every component at
``component.quantity * batch_count`` (serving unit, converted to the
component's storage unit) and yields ``batch_quantity * batch_count`` of the
composite item.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from silo.core.context import RequestContext
from silo.db.base import COST_PLACES, QTY_PLACES
from silo.models.item import Item
from silo.models.production import (
    Production,
    ProductionConsumedItem,
    ProductionStatus,
    ProductionTemplate,
)
from silo.models.stock import ReferenceType, TransactionType
from silo.services.exceptions import InventoryError, NotFoundError
from silo.services.stock_ledger_service import StockLedgerService
from silo.services.units import convert_units, serving_to_storage

logger = logging.getLogger(__name__)


class ProductionService:
    """Service for production runs and production templates"""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx
        self.ledger = StockLedgerService(db, ctx)
        self.catalog = self.ledger.catalog

    # ==================== AVAILABILITY ====================

    def _requirements(self, composite: Item, batch_count: Decimal):
        if not composite.components:
            raise InventoryError(f"'{composite.name}' has no components")
        for component in composite.components:
            item = component.component_item
            required = serving_to_storage(component.quantity * batch_count, item).quantize(QTY_PLACES)
            yield item, required

    def check_availability(self, composite_item_id: int, batch_count: Decimal) -> Dict[str, Any]:
        """
        Check whether the context branch holds enough of every component.

        Quantities are reported in each component's storage unit.
        """
        batch_count = Decimal(str(batch_count))
        if batch_count <= 0:
            raise InventoryError("batch_count must be greater than 0")
        composite = self.catalog.get_composite(composite_item_id)
        branch_id = self.ctx.require_branch(self.db)

        availability = []
        for item, required in self._requirements(composite, batch_count):
            available = self.ledger.current_quantity(item.id, branch_id)
            shortage = max(required - available, Decimal("0"))
            availability.append({
                "item_id": item.id,
                "item_name": item.name,
                "item_name_ar": item.name_ar,
                "unit": item.storage_unit,
                "required_quantity": float(required),
                "available_quantity": float(available),
                "is_sufficient": shortage == 0,
                "shortage": float(shortage),
            })
        return {
            "composite_item_id": composite.id,
            "batch_count": float(batch_count),
            "can_produce": all(row["is_sufficient"] for row in availability),
            "availability": availability,
        }

    # ==================== PRODUCTION RUNS ====================

    def produce(
        self,
        composite_item_id: int,
        batch_count: Decimal,
        notes: Optional[str] = None,
        template_id: Optional[int] = None,
    ) -> Production:
        check = self.check_availability(composite_item_id, batch_count)
        if not check["can_produce"]:
            shortages = ", ".join(
                f"{row['item_name']}: need {row['required_quantity']}, have {row['available_quantity']}"
                for row in check["availability"]
                if not row["is_sufficient"]
            )
            raise InventoryError(f"Insufficient inventory: {shortages}")

        if template_id is not None:
            self.get_template(template_id)

        batch_count = Decimal(str(batch_count))
        composite = self.catalog.get_composite(composite_item_id)
        branch_id = self.ctx.require_branch(self.db)
        batch_quantity = composite.batch_quantity or Decimal("1")
        total_yield = (batch_quantity * batch_count).quantize(QTY_PLACES)

        production = Production(
            business_id=self.ctx.business_id,
            branch_id=branch_id,
            composite_item_id=composite.id,
            template_id=template_id,
            batch_count=batch_count,
            total_yield=total_yield,
            yield_unit=composite.batch_unit or composite.storage_unit,
            status=ProductionStatus.COMPLETED,
            notes=notes,
            created_by=self.ctx.user_id,
        )
        self.db.add(production)
        self.db.flush()

        total_cost = Decimal("0")
        for item, required in self._requirements(composite, batch_count):
            cost = self.catalog.effective_cost(item)
            line_cost = (required * cost).quantize(COST_PLACES)
            total_cost += line_cost
            production.consumed_items.append(ProductionConsumedItem(
                item_id=item.id,
                quantity=required,
                unit=item.storage_unit,
                cost_per_unit=cost,
                total_cost=line_cost,
            ))
            self.ledger.record(
                item,
                TransactionType.PRODUCTION_CONSUME,
                required,
                branch_id,
                reference_type=ReferenceType.PRODUCTION,
                reference_id=production.id,
                notes=f"Production of {composite.name}",
                cost_per_unit=cost,
            )

        production.total_cost = total_cost
        production.cost_per_batch = (total_cost / batch_count).quantize(COST_PLACES)
        stock_yield = convert_units(
            total_yield, production.yield_unit, composite.storage_unit, composite.name
        ).quantize(QTY_PLACES)
        unit_cost = (total_cost / stock_yield).quantize(COST_PLACES) if stock_yield > 0 else None
        self.ledger.record(
            composite,
            TransactionType.PRODUCTION_YIELD,
            stock_yield,
            branch_id,
            reference_type=ReferenceType.PRODUCTION,
            reference_id=production.id,
            notes=notes or f"Produced {batch_count} batch(es)",
            cost_per_unit=unit_cost,
        )
        self.db.flush()

        logger.info(
            f"Production {production.id}: {batch_count} batch(es) of '{composite.name}' "
            f"yielding {total_yield} {production.yield_unit}, cost {total_cost}"
        )
        return production

    def get(self, production_id: int) -> Production:
        production = self.db.get(Production, production_id)
        if production is None or production.business_id != self.ctx.business_id:
            raise NotFoundError("Production not found")
        return production

    def list_productions(
        self,
        composite_item_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[Production]:
        query = select(Production).where(Production.business_id == self.ctx.business_id)
        if self.ctx.branch_id is not None:
            query = query.where(Production.branch_id == self.ctx.branch_id)
        if composite_item_id is not None:
            query = query.where(Production.composite_item_id == composite_item_id)
        if date_from:
            query = query.where(Production.production_date >= date_from)
        if date_to:
            query = query.where(Production.production_date <= date_to)
        return list(self.db.scalars(
            query.order_by(Production.production_date.desc(), Production.id.desc())
        ).all())

    def stats(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_ago = now - timedelta(days=7)

        base = select(Production).where(
            Production.business_id == self.ctx.business_id,
            Production.status == ProductionStatus.COMPLETED,
        )
        if self.ctx.branch_id is not None:
            base = base.where(Production.branch_id == self.ctx.branch_id)

        def count_since(since: datetime) -> int:
            query = base.where(Production.production_date >= since)
            return self.db.scalar(select(func.count()).select_from(query.subquery())) or 0

        yields: Dict[int, Dict[str, Any]] = {}
        for production in self.db.scalars(base.where(Production.production_date >= today)).all():
            row = yields.setdefault(production.composite_item_id, {
                "composite_item_id": production.composite_item_id,
                "item_name": production.composite_item.name,
                "total_yield": Decimal("0"),
                "unit": production.yield_unit,
            })
            row["total_yield"] += production.total_yield

        return {
            "today_count": count_since(today),
            "week_count": count_since(week_ago),
            "today_yield_by_item": [
                {**row, "total_yield": float(row["total_yield"])} for row in yields.values()
            ],
        }

    # ==================== TEMPLATES ====================

    def get_template(self, template_id: int) -> ProductionTemplate:
        template = self.db.get(ProductionTemplate, template_id)
        if template is None or template.business_id != self.ctx.business_id or not template.is_active:
            raise NotFoundError("Production template not found")
        return template

    def list_templates(self, composite_item_id: Optional[int] = None) -> List[ProductionTemplate]:
        query = select(ProductionTemplate).where(
            ProductionTemplate.business_id == self.ctx.business_id,
            ProductionTemplate.is_active.is_(True),
        )
        if composite_item_id is not None:
            query = query.where(ProductionTemplate.composite_item_id == composite_item_id)
        return list(self.db.scalars(query.order_by(ProductionTemplate.name)).all())

    def create_template(self, data: dict) -> ProductionTemplate:
        composite = self.catalog.get_composite(data["composite_item_id"])
        if data.get("default_batch_count", 1) <= 0:
            raise InventoryError("default_batch_count must be greater than 0")
        template = ProductionTemplate(
            business_id=self.ctx.business_id,
            composite_item_id=composite.id,
            name=data["name"].strip(),
            name_ar=data.get("name_ar"),
            default_batch_count=data.get("default_batch_count", 1),
            notes=data.get("notes"),
            created_by=self.ctx.user_id,
        )
        self.db.add(template)
        self.db.flush()
        return template

    def update_template(self, template: ProductionTemplate, data: dict) -> ProductionTemplate:
        if "composite_item_id" in data and data["composite_item_id"] is not None:
            template.composite_item_id = self.catalog.get_composite(data["composite_item_id"]).id
        if data.get("default_batch_count") is not None and data["default_batch_count"] <= 0:
            raise InventoryError("default_batch_count must be greater than 0")
        for field in ("name", "name_ar", "default_batch_count", "notes"):
            if field in data and (data[field] is not None or field in ("name_ar", "notes")):
                setattr(template, field, data[field])
        return template

    def delete_template(self, template: ProductionTemplate) -> None:
        template.is_active = False


def production_to_dict(production: Production) -> Dict[str, Any]:
    return {
        "id": production.id,
        "composite_item_id": production.composite_item_id,
        "composite_item_name": production.composite_item.name if production.composite_item else None,
        "composite_item_name_ar": production.composite_item.name_ar if production.composite_item else None,
        "branch_id": production.branch_id,
        "template_id": production.template_id,
        "batch_count": float(production.batch_count),
        "total_yield": float(production.total_yield),
        "yield_unit": production.yield_unit,
        "total_cost": float(production.total_cost),
        "cost_per_batch": float(production.cost_per_batch),
        "status": production.status.value,
        "notes": production.notes,
        "production_date": production.production_date.isoformat() if production.production_date else None,
        "created_by": production.created_by,
        "consumed_items": [
            {
                "item_id": line.item_id,
                "item_name": line.item.name if line.item else None,
                "quantity": float(line.quantity),
                "unit": line.unit,
                "cost_per_unit": float(line.cost_per_unit),
                "total_cost": float(line.total_cost),
            }
            for line in production.consumed_items
        ],
    }
