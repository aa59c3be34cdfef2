from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy import select, delete
from budget_tracker import get_db
from budget_tracker.models.authz import User, Role, Permission, RolePermission, UserRole
from budget_tracker.models.audit import AuditLog
from budget_tracker.models.mda import Mda
from budget_tracker.services.policy import compute_effective_permissions
from budget_tracker.decorators.audit import audit_log
from budget_tracker.decorators.auth import require_permissions, current_user_id
from budget_tracker.utils.filters import apply_filters, search_filter
from budget_tracker.utils.listing import paginated_response
from budget_tracker.utils.serialization import iso
from budget_tracker.utils.validation import require_fields

iam_bp = Blueprint('iam', __name__)


# --- Auth ---

@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email==email)).scalar_one_or_none()
    if not user or not user.verify_password(password):
        abort(401, description='invalid credentials')
    if not user.is_active:
        abort(403, description='account disabled')
    eff = compute_effective_permissions(user.id)
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=eff)
    return {'access_token': token, 'user': _user_json(user)}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    session = get_db()
    user = session.get(User, current_user_id())
    if not user:
        abort(404)
    body = _user_json(user)
    body.update(compute_effective_permissions(user.id))
    return body


# --- Permissions & roles ---

@iam_bp.get('/permissions')
@require_permissions('ADMIN.ROLE.MANAGE')
def list_permissions():
    q = get_db().query(Permission).order_by(Permission.id.asc())
    return paginated_response(q, lambda p: {'id': p.id, 'code': p.code, 'service': p.service, 'action': p.action, 'description': p.description})


@iam_bp.get('/roles')
@require_permissions('ADMIN.ROLE.MANAGE')
def list_roles():
    q = get_db().query(Role).order_by(Role.id.asc())
    return paginated_response(q, _role_json)


@iam_bp.post('/roles')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    data = request.json or {}
    name = data.get('name')
    if not name:
        abort(400, description='name required')
    session = get_db()
    if session.execute(select(Role).where(Role.name==name)).scalar_one_or_none():
        abort(400, description='role exists')
    role = Role(name=name, is_system=False, description=data.get('description'))
    session.add(role)
    session.commit()
    return _role_json(role), 201


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log(
    'ROLE.PERM.REPLACE',
    entity='Role',
    entity_id_key='id',
    meta_builder=lambda data, rv, a, kw: {'count': len(data.get('permissions', []))},
)
def replace_role_permissions(role_id: int):
    session = get_db()
    role = session.get(Role, role_id)
    if not role:
        abort(404)
    codes = (request.json or {}).get('permissions') or []
    perms = session.execute(select(Permission).where(Permission.code.in_(codes))).scalars().all()
    missing = set(codes) - {p.code for p in perms}
    if missing:
        abort(400, description=f'Unknown permission codes: {sorted(missing)}')
    session.execute(delete(RolePermission).where(RolePermission.role_id==role.id))
    for p in perms:
        session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return {'id': role.id, 'permissions': sorted(codes)}


# --- Users ---

@iam_bp.get('/users')
@require_permissions('ADMIN.USER.MANAGE')
def list_users():
    q = get_db().query(User)
    filter_specs = {
        'mda_id': {'coerce': int, 'op': lambda qu, v: qu.filter(User.mda_id==v)},
        'role': {'op': lambda qu, v: qu.join(UserRole, UserRole.user_id==User.id).join(Role, Role.id==UserRole.role_id).filter(Role.name==v)},
        'search': {'op': search_filter(User.first_name, User.last_name, User.email)},
    }
    q = apply_filters(q, filter_specs, request.args).order_by(User.id.asc())
    return paginated_response(q, _user_json)


@iam_bp.post('/users')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.CREATE', entity='User', entity_id_key='id', meta_keys=['email', 'roles'])
def create_user():
    data = request.json or {}
    require_fields(data, 'email', 'password', 'first_name')
    session = get_db()
    if session.execute(select(User).where(User.email==data['email'])).scalar_one_or_none():
        abort(400, description='email already registered')
    mda_id = data.get('mda_id')
    if mda_id is not None and not session.get(Mda, mda_id):
        abort(404, description='MDA not found')
    user = User(first_name=data['first_name'], last_name=data.get('last_name') or '', email=data['email'],
                phone=data.get('phone'), mda_id=mda_id, password_hash='')
    user.set_password(data['password'])
    session.add(user)
    session.flush()
    for role in _roles_by_name(session, data.get('roles') or []):
        session.add(UserRole(user_id=user.id, role_id=role.id))
    session.commit()
    session.refresh(user)
    return _user_json(user), 201


@iam_bp.put('/users/<int:user_id>/roles')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.ROLES.SET', entity='User', entity_id_key='id', meta_keys=['roles'])
def set_user_roles(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404)
    roles = _roles_by_name(session, (request.json or {}).get('roles') or [])
    session.execute(delete(UserRole).where(UserRole.user_id==user.id))
    for role in roles:
        session.add(UserRole(user_id=user.id, role_id=role.id))
    session.commit()
    session.refresh(user)
    return _user_json(user)


# --- Audit ---

@iam_bp.get('/audit/logs')
@require_permissions('ADMIN.AUDIT.READ')
def list_audit_logs():
    q = get_db().query(AuditLog)
    filter_specs = {
        'actor_user_id': {'coerce': int, 'op': lambda qu, v: qu.filter(AuditLog.actor_user_id==v)},
        'action': {'op': lambda qu, v: qu.filter(AuditLog.action==v)},
        'entity': {'op': lambda qu, v: qu.filter(AuditLog.entity==v)},
        'entity_id': {'op': lambda qu, v: qu.filter(AuditLog.entity_id==v)},
    }
    q = apply_filters(q, filter_specs, request.args).order_by(AuditLog.id.desc())
    return paginated_response(q, lambda r: {
        'id': r.id,
        'actor_user_id': r.actor_user_id,
        'action': r.action,
        'entity': r.entity,
        'entity_id': r.entity_id,
        'meta': r.meta,
        'ip_address': r.ip_address,
        'created_at': iso(r.created_at),
    })


def _roles_by_name(session, names):
    roles = session.execute(select(Role).where(Role.name.in_(list(names)))).scalars().all() if names else []
    missing = set(names) - {r.name for r in roles}
    if missing:
        abort(400, description=f'Unknown roles: {sorted(missing)}')
    return roles


def _role_json(r: Role):
    return {'id': r.id, 'name': r.name, 'is_system': r.is_system, 'description': r.description,
            'permissions': sorted(rp.permission.code for rp in r.permissions)}


def _user_json(u: User):
    return {
        'id': u.id,
        'first_name': u.first_name,
        'last_name': u.last_name,
        'name': u.full_name,
        'email': u.email,
        'phone': u.phone,
        'mda_id': u.mda_id,
        'is_active': u.is_active,
        'roles': u.role_names,
    }
