from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


def money(value) -> Optional[float]:
    return float(value) if value is not None else None


def iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat().replace('+00:00', 'Z')
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def json_safe(obj):
    """Recursively convert Decimal/date values inside nested dicts and lists."""
    if isinstance(obj, dict):
        return {k: json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [json_safe(v) for v in obj]
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (date, datetime)):
        return iso(obj)
    return obj
