from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.orm import Session


def next_reference(session: Session, column, prefix: str, now: datetime | None = None) -> str:
    """Return the next monthly sequence number, e.g. EXP-202510-0007.

    Sequences restart every month; the last issued number for the month is read
    from `column` (a unique string column of the owning model).
    """
    now = now or datetime.now(timezone.utc)
    stem = f"{prefix}-{now:%Y%m}-"
    last = session.execute(
        select(column).where(column.like(f"{stem}%")).order_by(column.desc()).limit(1)
    ).scalar_one_or_none()
    seq = 1
    if last:
        try:
            seq = int(last.rsplit('-', 1)[-1]) + 1
        except ValueError:
            seq = 1
    return f"{stem}{seq:04d}"
