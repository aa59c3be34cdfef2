from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions
from budget_tracker.decorators.audit import audit_log
from budget_tracker.errors import AppError, EntityNotFound
from budget_tracker.models.mda import Mda
from budget_tracker.utils.filters import apply_filters, search_filter
from budget_tracker.utils.listing import paginated_response
from budget_tracker.utils.sorting import apply_multi_sort
from budget_tracker.utils.validation import require_fields

mda_bp = Blueprint('mdas', __name__)


@mda_bp.get('')
@require_permissions('MDA.READ')
def list_mdas():
    session = get_db()
    q = session.query(Mda)
    filter_specs = {
        'is_active': {'coerce': lambda v: v.lower() in ('1', 'true', 'yes'), 'op': lambda qu, v: qu.filter(Mda.is_active.is_(v))},
        'search': {'op': search_filter(Mda.name, Mda.code)},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), {'name': Mda.name, 'code': Mda.code, 'id': Mda.id}, Mda.id, default_desc=False)
    return paginated_response(q, _mda_json)


@mda_bp.get('/<int:mda_id>')
@require_permissions('MDA.READ')
def get_mda(mda_id: int):
    return _mda_json(_get_mda(mda_id))


@mda_bp.post('')
@require_permissions('MDA.MANAGE')
@audit_log('MDA.CREATE', entity='Mda', entity_id_key='id', meta_keys=['code'])
def create_mda():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'name', 'code')
    if session.execute(select(Mda.id).where(Mda.code==data['code'])).first():
        raise AppError('MDA code already exists', 400)
    mda = Mda(name=data['name'], code=data['code'], description=data.get('description'), is_active=bool(data.get('is_active', True)))
    session.add(mda)
    session.commit()
    return _mda_json(mda), 201


@mda_bp.put('/<int:mda_id>')
@require_permissions('MDA.MANAGE')
@audit_log('MDA.UPDATE', entity='Mda', entity_id_key='id', meta_keys=['is_active'])
def update_mda(mda_id: int):
    session = get_db()
    mda = _get_mda(mda_id)
    data = request.json or {}
    if 'code' in data and data['code'] != mda.code:
        if session.execute(select(Mda.id).where(Mda.code==data['code'])).first():
            raise AppError('MDA code already exists', 400)
        mda.code = data['code']
    for field in ('name', 'description', 'is_active'):
        if field in data:
            setattr(mda, field, data[field])
    session.commit()
    return _mda_json(mda)


def _get_mda(mda_id: int) -> Mda:
    mda = get_db().get(Mda, mda_id)
    if not mda:
        raise EntityNotFound('MDA')
    return mda


def _mda_json(m: Mda):
    return {'id': m.id, 'name': m.name, 'code': m.code, 'description': m.description, 'is_active': m.is_active}
