"""Business user management routes (owner only)."""

from fastapi import APIRouter, Request

from silo.api.routes.auth import user_to_response
from silo.core.config import settings
from silo.core.context import Context
from silo.core.rate_limit import limiter
from silo.core.responses import list_response
from silo.core.validators import PositiveIntId
from silo.db.session import DbSession
from silo.schemas.user import UserCreate, UserUpdate
from silo.services.user_service import UserService

router = APIRouter()


@router.get("/")
@limiter.limit("60/minute")
def list_users(request: Request, db: DbSession, ctx: Context):
    """Users of the business, with the seat limit used by the Add button."""
    service = UserService(db, ctx)
    users = service.list_users()
    return list_response(
        [user_to_response(u) for u in users],
        max_users=service.max_users(),
        user_count=len(users),
        current_user_id=ctx.user_id,
    )


@router.get("/{user_id}")
@limiter.limit("60/minute")
def get_user(request: Request, user_id: PositiveIntId, db: DbSession, ctx: Context):
    return user_to_response(UserService(db, ctx).get(user_id))


@router.post("/", status_code=201)
@limiter.limit("30/minute")
def create_user(request: Request, body: UserCreate, db: DbSession, ctx: Context):
    """Create a user with the default password, returned once in the response."""
    user = UserService(db, ctx).create(body.model_dump())
    db.commit()
    db.refresh(user)
    return {**user_to_response(user), "default_password": settings.default_user_password}


@router.patch("/{user_id}")
@limiter.limit("30/minute")
def update_user(request: Request, user_id: PositiveIntId, body: UserUpdate, db: DbSession, ctx: Context):
    service = UserService(db, ctx)
    user = service.update(service.get(user_id), body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(user)
    return user_to_response(user)


@router.delete("/{user_id}")
@limiter.limit("30/minute")
def delete_user(request: Request, user_id: PositiveIntId, db: DbSession, ctx: Context):
    service = UserService(db, ctx)
    service.delete(service.get(user_id))
    db.commit()
    return {"deleted": True, "id": user_id}


@router.post("/{user_id}/reset-password")
@limiter.limit("30/minute")
def reset_password(request: Request, user_id: PositiveIntId, db: DbSession, ctx: Context):
    service = UserService(db, ctx)
    password = service.reset_password(service.get(user_id))
    db.commit()
    return {"success": True, "default_password": password}
