"""Role-Based Access Control (RBAC) utilities."""

import logging
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from silo.core.security import decode_access_token
from silo.db.session import DbSession

auth_logger = logging.getLogger("auth")


class UserRole(str, Enum):
    """Business user roles."""

    OWNER = "owner"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    POS = "pos"


# Role hierarchy: owner > manager > employee > pos
ROLE_HIERARCHY = {
    UserRole.OWNER: 4,
    UserRole.MANAGER: 3,
    UserRole.EMPLOYEE: 2,
    UserRole.POS: 1,
}


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        username: Login name, unique across the system.
        role: The user's role.
        business_id: The business the user belongs to.
        branch_id: Branch the user is pinned to, if any.
    """

    def __init__(self, user_id: int, username: str, role: UserRole,
                 business_id: int, branch_id: Optional[int] = None):
        self.user_id = user_id
        self.id = user_id
        self.username = username
        self.role = role
        self.business_id = business_id
        self.branch_id = branch_id

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER


def _extract_token_payload(request: Request) -> Optional[dict]:
    """Read a JWT payload from the Authorization header or the access_token cookie."""
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        cookie_token = request.cookies.get("access_token")
        if cookie_token:
            payload = decode_access_token(cookie_token)

    return payload


def get_current_user(request: Request, db: DbSession) -> TokenData:
    """Get the current authenticated user from JWT token.

    Checks in order:
    1. Authorization: Bearer <token> header
    2. access_token cookie (HttpOnly)

    The account must still exist and be active. Role, business and branch pin
    are read from the stored account, so changes apply to tokens already issued.
    """
    payload = _extract_token_payload(request)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    username = payload.get("username")
    role = payload.get("role")
    business_id = payload.get("business_id")

    if user_id is None or username is None or role is None or business_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
        )

    from silo.models.user import User, UserStatus

    user = db.get(User, int(user_id))
    if user is None or user.status != UserStatus.ACTIVE:
        auth_logger.warning(f"Rejected token for disabled or missing user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is disabled",
        )

    if user.role != user_role or user.business_id != int(business_id):
        auth_logger.info(f"Token for user {user_id} predates a role or business change; using stored values")

    return TokenData(
        user_id=user.id,
        username=user.username,
        role=user.role,
        business_id=user.business_id,
        branch_id=user.branch_id,
    )


def require_role(minimum_role: UserRole):
    """Dependency to require a minimum role level."""

    def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        user_level = ROLE_HIERARCHY.get(current_user.role, 0)
        required_level = ROLE_HIERARCHY.get(minimum_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {minimum_role.value} or higher",
            )
        return current_user

    return role_checker


# Common role dependencies
RequireManager = Annotated[TokenData, Depends(require_role(UserRole.MANAGER))]
RequireEmployee = Annotated[TokenData, Depends(require_role(UserRole.EMPLOYEE))]
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
