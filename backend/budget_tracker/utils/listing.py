from __future__ import annotations
"""Paginated list responses shared by the collection endpoints.

Envelope:
    {"data": [...], "pagination": {"total", "page", "limit", "total_pages", "returned"}}
"""
import math
from typing import Callable, List, Tuple
from flask import request
from sqlalchemy.orm import Query
from budget_tracker.config.pagination import normalize_pagination
from budget_tracker.errors import AppError


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        page, limit, offset = normalize_pagination(request.args.get('page'), request.args.get('limit'))
    except ValueError as e:
        raise AppError(str(e), 400)
    total = q.count()
    return q.offset(offset).limit(limit), total, page, limit


def build_list_payload(rows: list, total: int, page: int, limit: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'page': page,
            'limit': limit,
            'total_pages': math.ceil(total / limit) if limit else 0,
            'returned': len(rows)
        }
    }


def paginated_response(q: Query, serializer: Callable) -> dict:
    paged_q, total, page, limit = apply_pagination(q)
    rows: List[dict] = [serializer(r) for r in paged_q.all()]
    return build_list_payload(rows, total, page, limit)

__all__ = ['apply_pagination', 'build_list_payload', 'paginated_response']
