from __future__ import annotations
from typing import Any, Dict, Optional
from flask import has_request_context, request
from flask_jwt_extended import get_jwt_identity, get_jwt
from budget_tracker import get_db
from budget_tracker.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. BUDGET.SUBMIT, EXP.APPROVE, USER.ROLES.SET
      entity: optional entity name (Budget, Expenditure, etc.)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    claims = get_jwt() or {}
    ident = get_jwt_identity()
    actor = int(ident) if ident is not None else 0
    log = AuditLog(
        actor_user_id=actor,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        perms_snapshot={'perms': claims.get('perms', []), 'roles': claims.get('roles', [])},
        meta=dict(meta or {}),
        ip_address=request.remote_addr if has_request_context() else None,
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
