"""Vendor Service - vendor records scoped to a business and optionally a branch."""

import logging
import re
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from silo.core.config import settings
from silo.core.context import RequestContext
from silo.models.business import Branch
from silo.models.vendor import Vendor, VendorStatus
from silo.services.exceptions import InventoryError, NotFoundError
from silo.services.purchase_order_service import vendor_has_orders

logger = logging.getLogger(__name__)

_CODE_PATTERN = re.compile(r"^VND-(\d+)$")


class VendorService:
    """CRUD over vendors for the context business."""

    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx

    def get(self, vendor_id: int) -> Vendor:
        vendor = self.db.get(Vendor, vendor_id)
        if vendor is None or vendor.business_id != self.ctx.business_id:
            raise NotFoundError("Vendor not found")
        return vendor

    def list_vendors(self, search: Optional[str] = None, status: Optional[VendorStatus] = None) -> List[Vendor]:
        query = select(Vendor).where(Vendor.business_id == self.ctx.business_id)
        if self.ctx.branch_id is not None:
            query = query.where(or_(Vendor.branch_id.is_(None), Vendor.branch_id == self.ctx.branch_id))
        if status:
            query = query.where(Vendor.status == status)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                Vendor.name.ilike(pattern),
                Vendor.name_ar.ilike(pattern),
                Vendor.code.ilike(pattern),
                Vendor.contact_person.ilike(pattern),
            ))
        return list(self.db.scalars(query.order_by(Vendor.name)).all())

    def next_code(self) -> str:
        codes = self.db.scalars(
            select(Vendor.code).where(Vendor.business_id == self.ctx.business_id, Vendor.code.like("VND-%"))
        ).all()
        numbers = [int(m.group(1)) for m in (_CODE_PATTERN.match(c) for c in codes) if m]
        return f"VND-{(max(numbers) if numbers else 0) + 1:04d}"

    def _check_code(self, code: str, exclude_id: Optional[int] = None) -> None:
        query = select(func.count(Vendor.id)).where(
            Vendor.business_id == self.ctx.business_id, Vendor.code == code
        )
        if exclude_id is not None:
            query = query.where(Vendor.id != exclude_id)
        if self.db.scalar(query):
            raise InventoryError(f"Vendor code '{code}' already exists")

    def _check_branch(self, branch_id: Optional[int]) -> None:
        if branch_id is None:
            return
        branch = self.db.get(Branch, branch_id)
        if branch is None or branch.business_id != self.ctx.business_id:
            raise InventoryError("Branch does not belong to this business")

    def create(self, data: dict) -> Vendor:
        code = (data.get("code") or "").strip() or self.next_code()
        self._check_code(code)
        self._check_branch(data.get("branch_id"))
        vendor = Vendor(
            business_id=self.ctx.business_id,
            branch_id=data.get("branch_id"),
            code=code,
            name=data["name"],
            name_ar=data.get("name_ar"),
            contact_person=data.get("contact_person"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            city=data.get("city"),
            country=data.get("country") or settings.default_country,
            tax_number=data.get("tax_number"),
            payment_terms=(
                data["payment_terms"] if data.get("payment_terms") is not None else settings.default_payment_terms
            ),
            notes=data.get("notes"),
            status=VendorStatus.ACTIVE,
        )
        self.db.add(vendor)
        self.db.flush()
        logger.info(f"Vendor {vendor.code} '{vendor.name}' created for business {self.ctx.business_id}")
        return vendor

    def update(self, vendor: Vendor, data: dict) -> Vendor:
        if "code" in data and data["code"]:
            code = data["code"].strip()
            self._check_code(code, exclude_id=vendor.id)
            vendor.code = code
        if "branch_id" in data:
            self._check_branch(data["branch_id"])
            vendor.branch_id = data["branch_id"]
        for field in ("name_ar", "contact_person", "email", "phone", "address", "city", "tax_number", "notes"):
            if field in data:
                setattr(vendor, field, data[field])
        for field in ("name", "country", "payment_terms", "status"):
            if data.get(field) is not None:
                setattr(vendor, field, data[field])
        return vendor

    def delete(self, vendor: Vendor) -> bool:
        """Delete a vendor; returns True when it was only deactivated."""
        if vendor_has_orders(self.db, vendor.id):
            vendor.status = VendorStatus.INACTIVE
            logger.info(f"Vendor {vendor.code} deactivated (has purchase orders)")
            return True
        self.db.delete(vendor)
        logger.info(f"Vendor {vendor.code} deleted")
        return False
