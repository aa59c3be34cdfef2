from __future__ import annotations
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from budget_tracker.config.pagination import MAX_LIMIT
from budget_tracker.decorators.auth import current_user_id
from budget_tracker.errors import AppError
from budget_tracker.models.notification import Notification
from budget_tracker.services import notifications
from budget_tracker.utils.serialization import iso, json_safe

notif_bp = Blueprint('notifications', __name__)


@notif_bp.get('')
@jwt_required()
def list_notifications():
    unread_only = (request.args.get('unread_only') or '').lower() in ('1', 'true', 'yes')
    try:
        limit = min(int(request.args.get('limit', 50)), MAX_LIMIT)
        offset = max(int(request.args.get('offset', 0)), 0)
    except ValueError:
        raise AppError('limit/offset must be int', 400)
    rows, total = notifications.list_for_user(current_user_id(), unread_only, limit, offset)
    return {
        'data': [_notification_json(n) for n in rows],
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    }


@notif_bp.get('/stats')
@jwt_required()
def notification_stats():
    stats = notifications.get_stats(current_user_id())
    stats['recent_unread'] = [_notification_json(n) for n in stats['recent_unread']]
    return stats


@notif_bp.put('/<int:notification_id>/read')
@jwt_required()
def mark_read(notification_id: int):
    return _notification_json(notifications.mark_as_read(notification_id, current_user_id()))


@notif_bp.put('/read-all')
@jwt_required()
def mark_all_read():
    return {'updated': notifications.mark_all_as_read(current_user_id())}


def _notification_json(n: Notification):
    return {
        'id': n.id,
        'title': n.title,
        'message': n.message,
        'type': n.type,
        'reference_type': n.reference_type,
        'reference_id': n.reference_id,
        'metadata': json_safe(n.meta or {}),
        'is_read': n.is_read,
        'read_at': iso(n.read_at),
        'created_at': iso(n.created_at),
    }
