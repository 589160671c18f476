"""Per-request business/branch context.

Every service call receives a ``RequestContext`` explicitly. The context is
resolved from the access token and the optional ``X-Business-Id`` /
``X-Branch-Id`` headers sent by the dashboard when the user switches
workspace or branch.
"""

from typing import Annotated, List, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from silo.core.rbac import CurrentUser, TokenData
from silo.db.session import DbSession

BUSINESS_HEADER = "X-Business-Id"
BRANCH_HEADER = "X-Branch-Id"


class RequestContext:
    """Resolved tenant scope for one request."""

    def __init__(self, user: TokenData, business_id: int, branch_id: Optional[int] = None):
        self.user = user
        self.business_id = business_id
        self.branch_id = branch_id

    @property
    def user_id(self) -> int:
        return self.user.user_id

    def require_branch(self, db: Session) -> int:
        """Return the context branch, falling back to the business's main branch."""
        if self.branch_id is not None:
            return self.branch_id

        from silo.models.business import Branch

        branch = db.scalars(
            select(Branch)
            .where(Branch.business_id == self.business_id, Branch.is_active.is_(True))
            .order_by(Branch.is_main.desc(), Branch.id)
        ).first()
        if branch is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Business has no active branch",
            )
        self.branch_id = branch.id
        return branch.id

    def __repr__(self) -> str:
        return (
            f"<RequestContext user={self.user.user_id} "
            f"business={self.business_id} branch={self.branch_id}>"
        )


def accessible_business_ids(db: Session, user: TokenData) -> List[int]:
    """Businesses the user may act in: owned businesses for owners, else their own."""
    if not user.is_owner:
        return [user.business_id]

    from silo.models.business import Business

    owned = db.scalars(
        select(Business.id).where(
            or_(Business.owner_id == user.user_id, Business.id == user.business_id)
        ).order_by(Business.id)
    ).all()
    return list(owned)


def _header_int(request: Request, name: str) -> Optional[int]:
    raw = request.headers.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} header",
        )


def get_request_context(request: Request, current_user: CurrentUser, db: DbSession) -> RequestContext:
    """Build the request context from the token and the workspace headers."""
    from silo.models.business import Branch

    business_id = _header_int(request, BUSINESS_HEADER) or current_user.business_id
    if business_id != current_user.business_id:
        if business_id not in accessible_business_ids(db, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied to this business",
            )

    branch_id = _header_int(request, BRANCH_HEADER)
    if branch_id is None and business_id == current_user.business_id:
        branch_id = current_user.branch_id

    if branch_id is not None:
        if current_user.branch_id is not None and branch_id != current_user.branch_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied to this branch",
            )
        branch = db.get(Branch, branch_id)
        if branch is None or branch.business_id != business_id:
            raise HTTPException(status_code=404, detail="Branch not found")

    return RequestContext(current_user, business_id, branch_id)


Context = Annotated[RequestContext, Depends(get_request_context)]
