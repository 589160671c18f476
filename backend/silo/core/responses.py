"""List envelopes shared by the inventory routes.

Plain lists:      {"items": [...], "total": n}
Paged lists:      {"items": [...], "total": n, "skip": s, "limit": l, "has_more": bool}

Single objects (an order, a transfer, a count) are returned unwrapped.
"""

from typing import Any, Optional


def list_response(items: list, total: Optional[int] = None, **extra: Any) -> dict:
    """Envelope for a complete list.

    Screen-specific counters ride along as extra keys, e.g. ``max_users`` on
    the users screen.
    """
    return {"items": items, "total": len(items) if total is None else total, **extra}


def paginated_response(items: list, total: int, skip: int = 0, limit: int = 50) -> dict:
    """Envelope for one page of a longer list, such as purchase orders."""
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "has_more": skip + len(items) < total,
    }
