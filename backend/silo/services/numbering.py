"""Sequential document numbers: PO-2610-0001, TRF-2610-0001, CNT-2610-0001."""

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session


def generate_document_number(db: Session, column, prefix: str, business_column, business_id: int) -> str:
    """Next ``PREFIX-YYMM-0001`` style number for a business in the current month."""
    stamp = datetime.now(timezone.utc).strftime("%y%m")
    base = f"{prefix}-{stamp}-"
    last = db.scalar(
        select(func.max(column)).where(business_column == business_id, column.like(f"{base}%"))
    )
    seq = 1
    if last:
        try:
            seq = int(last.rsplit("-", 1)[1]) + 1
        except (IndexError, ValueError):
            seq = 1
    return f"{base}{seq:04d}"
