from __future__ import annotations
from typing import Set
from flask import abort
from flask_jwt_extended import get_jwt
from sqlalchemy import select
from budget_tracker.models.authz import User, UserRole, RolePermission, Permission, Role
from budget_tracker.constants.permissions import ADMIN_ROLES
from budget_tracker import get_db


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def is_admin() -> bool:
    claims = get_jwt()
    return any(r in ADMIN_ROLES for r in claims.get('roles', []))


def compute_effective_permissions(user_id: int):
    session = get_db()
    role_ids = {r.role_id for r in session.execute(select(UserRole).where(UserRole.user_id==user_id)).scalars()}
    roles = session.execute(select(Role).where(Role.id.in_(role_ids))).scalars().all() if role_ids else []
    role_names = sorted(r.name for r in roles)
    perm_codes = set()
    if any(name in ADMIN_ROLES for name in role_names):
        # admin roles expand to every permission (wildcard semantics)
        perm_codes.update(p.code for p in session.execute(select(Permission)).scalars())
    elif role_ids:
        perm_ids = [rp.permission_id for rp in session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars()]
        if perm_ids:
            perm_codes.update(p.code for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars())
    user = session.get(User, user_id)
    return {
        'roles': role_names,
        'perms': sorted(perm_codes),
        'mda_id': user.mda_id if user else None,
    }


def filter_query_by_mda(query, model_mda_column):
    """Restrict query to the caller's MDA unless admin or not MDA-bound."""
    claims = get_jwt()
    mda_id = claims.get('mda_id')
    if mda_id is None or is_admin():
        return query
    return query.filter(model_mda_column == mda_id)


def assert_mda_access(mda_id: int):
    claims = get_jwt()
    own = claims.get('mda_id')
    if own is None or is_admin():
        return  # No scoping
    if mda_id != own:
        abort(403, description='MDA access denied')
