from __future__ import annotations
from typing import Any, Dict
from budget_tracker.errors import AppError

def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Dict[str, Any]):
    """Generic filter builder.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }
    Empty strings are treated as absent so `?status=` does not filter.
    """
    for name, meta in specs.items():
        val = params.get(name)
        if val is None or val == '':
            continue
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                raise AppError(f'{name} invalid', 400)
        if 'validate' in meta and not meta['validate'](val):
            raise AppError(f'{name} invalid', 400)
        query = meta['op'](query, val)
    return query


def search_filter(*columns):
    """Build an 'op' matching the value case-insensitively against any of columns."""
    from sqlalchemy import or_

    def op(query, value):
        pattern = f'%{value}%'
        return query.filter(or_(*[c.ilike(pattern) for c in columns]))
    return op
