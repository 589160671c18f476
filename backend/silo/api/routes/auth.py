"""Authentication routes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import func, select

from silo.core.rate_limit import limiter
from silo.core.rbac import CurrentUser
from silo.core.security import get_password_hash, token_for_user, verify_password
from silo.db.session import DbSession
from silo.models.business import Business
from silo.models.user import User, UserStatus
from silo.schemas.auth import ChangePasswordRequest, LoginRequest

logger = logging.getLogger("auth")

router = APIRouter()


def user_to_response(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "status": user.status.value,
        "business_id": user.business_id,
        "branch_id": user.branch_id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "phone": user.phone,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _business_to_response(business: Business) -> dict:
    return {
        "id": business.id,
        "name": business.name,
        "name_ar": business.name_ar,
        "currency": business.currency,
        "vat_enabled": business.vat_enabled,
        "tax_rate": float(business.tax_rate or 0),
        "max_users": business.max_users,
    }


@router.post("/login")
@limiter.limit("5/minute")
def login(request: Request, login_request: LoginRequest, db: DbSession):
    """Authenticate a business user and return a JWT token."""
    client_ip = request.client.host if request.client else "unknown"
    username = login_request.username.strip().lower()
    user = db.scalars(select(User).where(func.lower(User.username) == username)).first()

    if not user or not verify_password(login_request.password, user.password_hash):
        logger.warning(f"Failed login attempt for username: {username} from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )
    if user.status != UserStatus.ACTIVE:
        logger.warning(f"Login attempt for {user.status.value} user: {username} (ID: {user.id}) from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive",
        )

    user.last_login = datetime.now(timezone.utc)
    db.commit()
    logger.info(f"Successful login: {user.username} (ID: {user.id}, role: {user.role.value}) from IP: {client_ip}")

    business = db.get(Business, user.business_id)
    return {
        "access_token": token_for_user(user),
        "token_type": "bearer",
        "user": user_to_response(user),
        "business": _business_to_response(business) if business else None,
    }


@router.get("/me")
@limiter.limit("60/minute")
def get_me(request: Request, current_user: CurrentUser, db: DbSession):
    """Get current user info."""
    user = db.get(User, current_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_to_response(user)


@router.post("/change-password")
@limiter.limit("5/minute")
def change_password(request: Request, body: ChangePasswordRequest, current_user: CurrentUser, db: DbSession):
    """Change the current user's password."""
    user = db.get(User, current_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_password(body.current_password, user.password_hash):
        logger.warning(f"Failed password change for user {user.username}")
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    user.password_hash = get_password_hash(body.new_password)
    db.commit()
    logger.info(f"Password changed for user {user.username}")
    return {"success": True, "message": "Password changed successfully"}
