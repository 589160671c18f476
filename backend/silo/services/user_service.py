"""User Service - business user accounts managed by the owner.

The owner account is fixed: its role and status never change and it cannot be
deleted. New accounts receive the configured default password.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from silo.core.config import settings
from silo.core.context import RequestContext
from silo.core.rbac import UserRole
from silo.core.security import get_password_hash
from silo.models.business import Branch, Business
from silo.models.user import User, UserStatus
from silo.services.exceptions import InventoryError, NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("first_name", "last_name", "email", "phone")


class UserService:
    def __init__(self, db: Session, ctx: RequestContext):
        self.db = db
        self.ctx = ctx
        if not ctx.user.is_owner:
            raise PermissionDeniedError("Only owners can manage users")

    @property
    def business(self) -> Business:
        business = self.db.get(Business, self.ctx.business_id)
        if business is None:
            raise NotFoundError("Business not found")
        return business

    def max_users(self) -> int:
        return self.business.max_users or settings.default_max_users

    def user_count(self) -> int:
        return self.db.scalar(
            select(func.count(User.id)).where(User.business_id == self.ctx.business_id)
        ) or 0

    def list_users(self) -> List[User]:
        return list(self.db.scalars(
            select(User).where(User.business_id == self.ctx.business_id).order_by(User.id)
        ).all())

    def get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None or user.business_id != self.ctx.business_id:
            raise NotFoundError("User not found")
        return user

    def _check_branch(self, branch_id: Optional[int]) -> None:
        if branch_id is None:
            return
        branch = self.db.get(Branch, branch_id)
        if branch is None or branch.business_id != self.ctx.business_id:
            raise InventoryError("Branch does not belong to this business")

    def create(self, data: dict) -> User:
        role = UserRole(data["role"])
        if role == UserRole.OWNER:
            raise InventoryError("Cannot create another owner")

        limit = self.max_users()
        if self.user_count() >= limit:
            raise InventoryError(f"Maximum {limit} users allowed for this business")

        username = data["username"].strip().lower()
        if self.db.scalar(select(func.count(User.id)).where(func.lower(User.username) == username)):
            raise InventoryError("Username already exists")
        self._check_branch(data.get("branch_id"))

        user = User(
            business_id=self.ctx.business_id,
            branch_id=data.get("branch_id"),
            username=username,
            password_hash=get_password_hash(settings.default_user_password),
            role=role,
            status=UserStatus.ACTIVE,
            **{field: data.get(field) for field in CONTACT_FIELDS},
        )
        self.db.add(user)
        self.db.flush()
        logger.info(f"User {user.username} ({role.value}) created for business {self.ctx.business_id}")
        return user

    def update(self, user: User, data: dict) -> User:
        if user.role == UserRole.OWNER:
            if data.get("role") not in (None, UserRole.OWNER.value) or data.get("status") not in (
                None, UserStatus.ACTIVE.value,
            ):
                raise InventoryError("Cannot change owner role or status")
        if data.get("role") is not None:
            role = UserRole(data["role"])
            if role == UserRole.OWNER and user.role != UserRole.OWNER:
                raise InventoryError("Cannot assign the owner role")
            user.role = role
        if data.get("status") is not None:
            user.status = UserStatus(data["status"])
        if "branch_id" in data and user.role != UserRole.OWNER:
            self._check_branch(data["branch_id"])
            user.branch_id = data["branch_id"]
        for field in CONTACT_FIELDS:
            if field in data:
                setattr(user, field, data[field])
        logger.info(f"User {user.username} updated by {self.ctx.user.username}")
        return user

    def delete(self, user: User) -> None:
        if user.id == self.ctx.user_id:
            raise PermissionDeniedError("You cannot delete your own account")
        if user.role == UserRole.OWNER:
            raise PermissionDeniedError("The owner account cannot be deleted")
        self.db.delete(user)
        logger.info(f"User {user.username} deleted by {self.ctx.user.username}")

    def reset_password(self, user: User) -> str:
        user.password_hash = get_password_hash(settings.default_user_password)
        logger.info(f"Password reset for user {user.username}")
        return settings.default_user_password
