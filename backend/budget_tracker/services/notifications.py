from __future__ import annotations
"""In-app notifications.

The `notify_*` helpers are fire-and-forget: they run after the main transaction
has committed, and any failure is logged and swallowed so the caller's
operation still succeeds.
"""
from datetime import datetime, timezone
from typing import Iterable, Optional
from flask import current_app
from sqlalchemy import select, func, update
from budget_tracker import get_db
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.notification import Notification


def create_notification(user_id: int, title: str, message: str, type: str = Notification.TYPE_INFO,
                        reference_type: Optional[str] = None, reference_id: Optional[int] = None,
                        meta: Optional[dict] = None) -> Notification:
    session = get_db()
    n = Notification(user_id=user_id, title=title, message=message, type=type,
                     reference_type=reference_type, reference_id=reference_id, meta=meta or {})
    session.add(n)
    session.commit()
    return n


def _safe_notify(user_ids: Iterable[int], title: str, message: str, **kw):
    session = get_db()
    for uid in user_ids:
        try:
            create_notification(uid, title, message, **kw)
        except Exception:
            session.rollback()
            current_app.logger.exception('notification to user %s failed: %s', uid, title)


def list_for_user(user_id: int, unread_only: bool = False, limit: int = 50, offset: int = 0):
    session = get_db()
    q = session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    total = q.count()
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    session = get_db()
    n = session.execute(select(Notification).where(
        Notification.id == notification_id, Notification.user_id == user_id)).scalar_one_or_none()
    if not n:
        raise EntityNotFound('Notification')
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.now(timezone.utc)
        session.commit()
    return n


def mark_all_as_read(user_id: int) -> int:
    session = get_db()
    res = session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    session.commit()
    return res.rowcount or 0


def get_stats(user_id: int) -> dict:
    session = get_db()
    total = session.execute(select(func.count(Notification.id)).where(Notification.user_id == user_id)).scalar_one()
    unread_q = select(Notification).where(Notification.user_id == user_id, Notification.is_read.is_(False))
    unread = session.execute(select(func.count()).select_from(unread_q.subquery())).scalar_one()
    recent = session.execute(
        unread_q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(5)
    ).scalars().all()
    return {'total': total, 'unread': unread, 'recent_unread': recent}


# --- Templates -------------------------------------------------------------

def _label(entity_type: str) -> str:
    return entity_type.capitalize()


def notify_approval_request(approver_id: int, entity_type: str, entity_id: int, step: int, total_steps: int):
    _safe_notify(
        [approver_id],
        f'Approval Request - {_label(entity_type)} #{entity_id}',
        f'A {entity_type} requires your approval (step {step} of {total_steps}).',
        type=Notification.TYPE_APPROVAL_REQUEST, reference_type=entity_type, reference_id=entity_id,
        meta={'step': step, 'total_steps': total_steps},
    )


def notify_approval_complete(user_id: int, entity_type: str, entity_id: int):
    _safe_notify(
        [user_id],
        f'{_label(entity_type)} Approved - #{entity_id}',
        f'Your {entity_type} #{entity_id} has been fully approved.',
        type=Notification.TYPE_APPROVAL_COMPLETE, reference_type=entity_type, reference_id=entity_id,
    )


def notify_rejection(user_id: int, entity_type: str, entity_id: int, reason: Optional[str]):
    _safe_notify(
        [user_id],
        f'{_label(entity_type)} Rejected - #{entity_id}',
        f'Your {entity_type} #{entity_id} was rejected.' + (f' Reason: {reason}' if reason else ''),
        type=Notification.TYPE_REJECTION, reference_type=entity_type, reference_id=entity_id,
        meta={'reason': reason},
    )


def notify_budget_warning(user_ids: Iterable[int], warning: dict):
    _safe_notify(
        user_ids,
        f"Budget Warning: {warning['threshold']}% Utilization",
        f"Line item {warning['line_item_code']} ({warning['line_item_name']}) has reached "
        f"{warning['utilization_percentage']}% utilization. Remaining balance: {warning['balance']}.",
        type=Notification.TYPE_WARNING, reference_type='budget_line_item', reference_id=warning['line_item_id'],
        meta={'level': warning['level']},
    )


def notify_retirement_status(user_id: int, retirement_id: int, retirement_number: str, status: str):
    kind = Notification.TYPE_REJECTION if status == 'rejected' else Notification.TYPE_INFO
    _safe_notify(
        [user_id],
        f'Retirement {retirement_number} {status.replace("_", " ")}',
        f'Retirement {retirement_number} is now {status.replace("_", " ")}.',
        type=kind, reference_type='retirement', reference_id=retirement_id,
    )
