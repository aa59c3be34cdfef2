from __future__ import annotations
"""Reusable validation helpers for request payloads and domain models.

All helpers raise AppError(400) so handlers and services share one error shape.
"""
from decimal import Decimal, InvalidOperation
from datetime import date
from typing import Any, Iterable, Mapping, Optional
from budget_tracker.errors import AppError


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or raises 400.
    """
    if new_status not in allowed:
        raise AppError(f"{field_name} invalid", 400)
    return new_status


def require_fields(data: Mapping[str, Any], *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise AppError(f"{', '.join(missing)} required", 400)


def parse_amount(raw: Any, field_name: str = 'amount', allow_zero: bool = False) -> Decimal:
    """Parse a monetary value into a 2-place Decimal."""
    if isinstance(raw, bool) or raw is None:
        raise AppError(f"{field_name} must be a number", 400)
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise AppError(f"{field_name} must be a number", 400)
    if not value.is_finite() or value < 0 or (value == 0 and not allow_zero):
        raise AppError(f"{field_name} must be {'non-negative' if allow_zero else 'positive'}", 400)
    return value.quantize(Decimal('0.01'))


def parse_int(raw: Any, field_name: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise AppError(f"{field_name} must be int", 400)


def parse_date(raw: Optional[str], field_name: str = 'date') -> Optional[date]:
    if raw in (None, ''):
        return None
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise AppError(f"{field_name} must be an ISO date (YYYY-MM-DD)", 400)

__all__ = ['validate_status', 'require_fields', 'parse_amount', 'parse_int', 'parse_date']
