"""PO Template Service - saved vendor + item lists for recurring purchase orders."""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from silo.core.context import RequestContext
from silo.models.purchase_order import POStatus, POTemplate, POTemplateItem, PurchaseOrder
from silo.services.exceptions import InventoryError, NotFoundError
from silo.services.purchase_order_service import PurchaseOrderService

logger = logging.getLogger(__name__)


class POTemplateService:
    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx
        self.orders = PurchaseOrderService(db, ctx)

    def get(self, template_id: int) -> POTemplate:
        template = self.db.get(POTemplate, template_id)
        if template is None or template.business_id != self.ctx.business_id or not template.is_active:
            raise NotFoundError("Template not found")
        return template

    def list_templates(self, vendor_id: Optional[int] = None) -> List[POTemplate]:
        query = select(POTemplate).where(
            POTemplate.business_id == self.ctx.business_id,
            POTemplate.is_active.is_(True),
        )
        if vendor_id is not None:
            query = query.where(POTemplate.vendor_id == vendor_id)
        return list(self.db.scalars(query.order_by(POTemplate.name)).all())

    def _set_items(self, template: POTemplate, items: List[dict]) -> None:
        self.orders._validate_lines(items)
        template.items.clear()
        self.db.flush()
        for row in items:
            template.items.append(POTemplateItem(
                item_id=row["item_id"],
                quantity=Decimal(str(row["quantity"])),
            ))

    def create(self, data: dict) -> POTemplate:
        self.orders.get_vendor(data["vendor_id"])
        template = POTemplate(
            business_id=self.ctx.business_id,
            vendor_id=data["vendor_id"],
            name=data["name"].strip(),
            name_ar=data.get("name_ar"),
            notes=data.get("notes"),
            created_by=self.ctx.user_id,
        )
        self.db.add(template)
        self._set_items(template, data.get("items") or [])
        self.db.flush()
        logger.info(f"PO template {template.id} '{template.name}' created")
        return template

    def update(self, template: POTemplate, data: dict) -> POTemplate:
        if data.get("vendor_id") is not None:
            self.orders.get_vendor(data["vendor_id"])
            template.vendor_id = data["vendor_id"]
        if data.get("name") is not None:
            template.name = data["name"].strip()
        for field in ("name_ar", "notes"):
            if field in data:
                setattr(template, field, data[field])
        if data.get("items") is not None:
            self._set_items(template, data["items"])
        self.db.flush()
        return template

    def delete(self, template: POTemplate) -> None:
        template.is_active = False

    def from_order(self, po: PurchaseOrder, name: str) -> POTemplate:
        if not name or not name.strip():
            raise InventoryError("Template name is required")
        return self.create({
            "vendor_id": po.vendor_id,
            "name": name,
            "notes": po.notes,
            "items": [{"item_id": line.item_id, "quantity": line.quantity} for line in po.items],
        })

    def create_order(self, template: POTemplate, expected_date=None, notes: Optional[str] = None) -> PurchaseOrder:
        return self.orders.create(
            vendor_id=template.vendor_id,
            items=[{"item_id": line.item_id, "quantity": line.quantity} for line in template.items],
            expected_date=expected_date,
            notes=notes if notes is not None else template.notes,
            status=POStatus.PENDING,
        )
