from __future__ import annotations
"""Audit logging decorator so mutating handlers do not call add_audit() by hand.

Usage examples:

@audit_log('BUDGET.CREATE', entity='Budget', entity_id_key='id', meta_keys=['code', 'total_amount'])
def create_budget():
    ... return _budget_json(budget), 201

@audit_log('EXP.APPROVE', entity='Expenditure', entity_id_key='expenditure.id',
           meta_builder=lambda data, rv, args, kwargs: {'status': data['expenditure']['status']})
def approve_expenditure(expenditure_id): ...

Parameters:
  action: required audit action code (e.g. BUDGET.SUBMIT)
  entity: optional entity label (Budget, Expenditure, Retirement)
  entity_id_key: key (dotted for nested payloads) in the returned JSON whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: keys (dotted allowed) projected from the returned JSON into meta.
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs).
  diff_keys / pre_fetch: record {'changes': {key: {before, after}}} against a snapshot taken before the call.

Only successful calls are audited: an exception raised by the handler propagates
untouched and nothing is written.
"""

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import current_app
from budget_tracker.services.audit import add_audit
from budget_tracker import get_db


def _extract_payload(rv: Any):
    """Return the JSON-able dict for inspection from dict / (dict, status[, headers])."""
    if isinstance(rv, tuple) and rv:
        return rv[0]
    return rv


def _dig(data: dict, dotted: str):
    cur: Any = data
    for part in dotted.split('.'):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data = _extract_payload(rv)
            if not isinstance(data, dict):
                data = {}
            entity_id = _dig(data, entity_id_key) if entity_id_key else None
            if entity_id is None and entity_id_arg:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs)
            else:
                meta = {k: _dig(data, k) for k in (meta_keys or [])}
            if diff_keys and before:
                changes = {}
                for k in diff_keys:
                    after = _dig(data, k)
                    if k in before and before[k] != after:
                        changes[k] = {'before': before[k], 'after': after}
                if changes:
                    meta = dict(meta or {}, changes=changes)
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except Exception:
                # the main change is already committed; a lost audit row is logged, not raised
                session.rollback()
                current_app.logger.exception('audit write failed for %s', action)
            return rv
        return wrapper
    return outer
