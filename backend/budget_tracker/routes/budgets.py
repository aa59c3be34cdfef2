from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select, func
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions, current_user_id
from budget_tracker.decorators.audit import audit_log
from budget_tracker.errors import AppError, EntityNotFound
from budget_tracker.models.budget import Budget
from budget_tracker.models.mda import Mda
from budget_tracker.routes.approvals import history_json
from budget_tracker.routes.line_items import line_item_json
from budget_tracker.services import snapshots, workflow
from budget_tracker.services.policy import assert_mda_access, filter_query_by_mda, is_admin
from budget_tracker.utils.filters import apply_filters, search_filter
from budget_tracker.utils.fsm import TransitionValidator
from budget_tracker.utils.listing import paginated_response
from budget_tracker.utils.serialization import iso, money
from budget_tracker.utils.sorting import apply_multi_sort
from budget_tracker.utils.validation import require_fields, parse_amount, parse_int

budget_bp = Blueprint('budgets', __name__)

# Edits and publishing; approval transitions are owned by services.workflow
BUDGET_FSM = TransitionValidator({
    Budget.STATUS_APPROVED: {Budget.STATUS_PUBLISHED},
})
EDITABLE = (Budget.STATUS_DRAFT, Budget.STATUS_REJECTED)


@budget_bp.get('')
@require_permissions('BUDGET.READ')
def list_budgets():
    session = get_db()
    q = filter_query_by_mda(session.query(Budget), Budget.mda_id)
    filter_specs = {
        'status': {'op': lambda qu, v: qu.filter(Budget.status==v), 'validate': lambda v: v in Budget.ALL_STATUSES},
        'mda_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Budget.mda_id==v)},
        'fiscal_year': {'coerce': int, 'op': lambda qu, v: qu.filter(Budget.fiscal_year==v)},
        'search': {'op': search_filter(Budget.title, Budget.code)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'code': Budget.code,
        'title': Budget.title,
        'fiscal_year': Budget.fiscal_year,
        'total_amount': Budget.total_amount,
        'status': Budget.status,
        'id': Budget.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Budget.id)
    return paginated_response(q, _budget_json)


@budget_bp.get('/<int:budget_id>')
@require_permissions('BUDGET.READ')
def get_budget(budget_id: int):
    budget = _get_budget(budget_id)
    body = _budget_json(budget)
    body['line_items'] = [line_item_json(li) for li in budget.line_items]
    body['allocated_amount'] = money(sum((li.amount for li in budget.line_items), 0))
    return body


@budget_bp.post('')
@require_permissions('BUDGET.CREATE')
@audit_log('BUDGET.CREATE', entity='Budget', entity_id_key='id', meta_keys=['code', 'total_amount'])
def create_budget():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'mda_id', 'code', 'title', 'fiscal_year', 'total_amount')
    mda_id = parse_int(data['mda_id'], 'mda_id')
    if not session.get(Mda, mda_id):
        raise EntityNotFound('MDA')
    assert_mda_access(mda_id)
    if session.execute(select(Budget.id).where(Budget.code==data['code'])).first():
        raise AppError('Budget code already exists', 400)
    budget = Budget(
        mda_id=mda_id,
        code=data['code'],
        title=data['title'],
        fiscal_year=parse_int(data['fiscal_year'], 'fiscal_year'),
        description=data.get('description'),
        total_amount=parse_amount(data['total_amount'], 'total_amount'),
        status=Budget.STATUS_DRAFT,
        created_by=current_user_id(),
    )
    session.add(budget)
    session.commit()
    return _budget_json(budget), 201


@budget_bp.put('/<int:budget_id>')
@require_permissions('BUDGET.UPDATE')
@audit_log('BUDGET.UPDATE', entity='Budget', entity_id_key='id', diff_keys=['title', 'total_amount', 'fiscal_year'],
           pre_fetch=lambda a, kw: _prefetch_budget(kw.get('budget_id')))
def update_budget(budget_id: int):
    session = get_db()
    budget = _get_budget(budget_id)
    if budget.status not in EDITABLE:
        raise AppError('Only draft or rejected budgets can be updated', 400)
    data = request.json or {}
    for field in ('title', 'description'):
        if field in data:
            setattr(budget, field, data[field])
    if 'fiscal_year' in data:
        budget.fiscal_year = parse_int(data['fiscal_year'], 'fiscal_year')
    if 'total_amount' in data:
        budget.total_amount = parse_amount(data['total_amount'], 'total_amount')
    session.commit()
    return _budget_json(budget)


@budget_bp.delete('/<int:budget_id>')
@require_permissions('BUDGET.DELETE')
@audit_log('BUDGET.DELETE', entity='Budget', entity_id_arg='budget_id')
def delete_budget(budget_id: int):
    session = get_db()
    budget = _get_budget(budget_id)
    if budget.status != Budget.STATUS_DRAFT:
        raise AppError('Only draft budgets can be deleted', 400)
    session.delete(budget)
    session.commit()
    return {'deleted': True, 'id': budget_id}


@budget_bp.post('/<int:budget_id>/submit')
@require_permissions('BUDGET.SUBMIT')
@audit_log('BUDGET.SUBMIT', entity='Budget', entity_id_key='budget.id', meta_keys=['budget.status', 'budget.current_approver_id'])
def submit_budget(budget_id: int):
    assert_mda_access(_get_budget(budget_id).mda_id)
    data = request.get_json(silent=True) or {}
    budget, history = workflow.submit_for_approval('budget', budget_id, current_user_id(), data.get('comments'))
    return {'budget': _budget_json(budget), 'approval': history_json(history)}


@budget_bp.post('/<int:budget_id>/approve')
@require_permissions('BUDGET.APPROVE')
@audit_log('BUDGET.APPROVE', entity='Budget', entity_id_key='budget.id', meta_keys=['budget.status', 'budget.current_approver_id'])
def approve_budget(budget_id: int):
    data = request.get_json(silent=True) or {}
    budget, history = workflow.approve('budget', budget_id, current_user_id(), data.get('comments'))
    return {'budget': _budget_json(budget), 'approval': history_json(history)}


@budget_bp.post('/<int:budget_id>/reject')
@require_permissions('BUDGET.APPROVE')
@audit_log('BUDGET.REJECT', entity='Budget', entity_id_key='budget.id', meta_keys=['budget.rejection_reason'])
def reject_budget(budget_id: int):
    data = request.get_json(silent=True) or {}
    budget, history = workflow.reject(
        'budget', budget_id, current_user_id(), data.get('comments'),
        rejection_reason=data.get('rejection_reason'), is_admin=is_admin(),
    )
    return {'budget': _budget_json(budget), 'approval': history_json(history)}


@budget_bp.post('/<int:budget_id>/publish')
@require_permissions('BUDGET.PUBLISH')
@audit_log('BUDGET.PUBLISH', entity='Budget', entity_id_key='id', meta_keys=['status'])
def publish_budget(budget_id: int):
    session = get_db()
    budget = _get_budget(budget_id)
    BUDGET_FSM.assert_can_transition(budget.status, Budget.STATUS_PUBLISHED)
    budget.status = Budget.STATUS_PUBLISHED
    session.commit()
    return _budget_json(budget)


@budget_bp.get('/stats')
@require_permissions('BUDGET.READ')
def budget_stats():
    session = get_db()
    q = filter_query_by_mda(
        session.query(Budget.status, func.count(Budget.id), func.coalesce(func.sum(Budget.total_amount), 0)),
        Budget.mda_id,
    )
    if request.args.get('mda_id'):
        q = q.filter(Budget.mda_id == parse_int(request.args['mda_id'], 'mda_id'))
    rows = q.group_by(Budget.status).all()
    by_status = {status: {'count': count, 'total_amount': money(total)} for status, count, total in rows}
    return {
        'total_budgets': sum(v['count'] for v in by_status.values()),
        'total_amount': sum(v['total_amount'] for v in by_status.values()),
        'by_status': by_status,
    }


# --- Snapshots ---

@budget_bp.post('/<int:budget_id>/snapshots')
@require_permissions('BUDGET.UPDATE')
@audit_log('BUDGET.SNAPSHOT', entity='Budget', entity_id_arg='budget_id', meta_keys=['id', 'snapshot_type', 'is_baseline'])
def create_snapshot(budget_id: int):
    _get_budget(budget_id)
    snapshot = snapshots.create_snapshot(budget_id, request.get_json(silent=True) or {}, current_user_id())
    return snapshot_json(snapshot), 201


@budget_bp.get('/<int:budget_id>/snapshots')
@require_permissions('BUDGET.READ')
def list_snapshots(budget_id: int):
    _get_budget(budget_id)
    rows = snapshots.list_snapshots(
        budget_id, request.args.get('snapshot_type'), request.args.get('date_from'), request.args.get('date_to'),
    )
    return {'data': [snapshot_json(s, with_data=False) for s in rows]}


@budget_bp.get('/<int:budget_id>/snapshots/baseline')
@require_permissions('BUDGET.READ')
def baseline_snapshot(budget_id: int):
    _get_budget(budget_id)
    return snapshot_json(snapshots.get_baseline(budget_id))


@budget_bp.get('/snapshots/<int:snapshot_id>')
@require_permissions('BUDGET.READ')
def get_snapshot(snapshot_id: int):
    snapshot = snapshots.get_snapshot(snapshot_id)
    _get_budget(snapshot.budget_id)
    return snapshot_json(snapshot)


@budget_bp.get('/snapshots/compare')
@require_permissions('BUDGET.READ')
def compare_snapshots():
    require_fields(request.args, 'from', 'to')
    from_id, to_id = parse_int(request.args['from'], 'from'), parse_int(request.args['to'], 'to')
    _get_budget(snapshots.get_snapshot(from_id).budget_id)
    return snapshots.compare_snapshots(from_id, to_id)


def snapshot_json(s, with_data: bool = True):
    body = {
        'id': s.id,
        'budget_id': s.budget_id,
        'snapshot_type': s.snapshot_type,
        'fiscal_year': s.fiscal_year,
        'notes': s.notes,
        'is_baseline': s.is_baseline,
        'meta': s.meta or {},
        'created_by': s.created_by,
        'created_at': iso(s.created_at),
    }
    if with_data:
        body['data'] = s.data
    return body


def _get_budget(budget_id: int) -> Budget:
    budget = get_db().execute(select(Budget).where(Budget.id==budget_id)).scalar_one_or_none()
    if not budget:
        raise EntityNotFound('Budget')
    assert_mda_access(budget.mda_id)
    return budget


def _budget_json(b: Budget):
    return {
        'id': b.id,
        'mda_id': b.mda_id,
        'code': b.code,
        'title': b.title,
        'fiscal_year': b.fiscal_year,
        'description': b.description,
        'total_amount': money(b.total_amount),
        'status': b.status,
        'current_approver_id': b.current_approver_id,
        'submitted_at': iso(b.submitted_at),
        'submitted_by': b.submitted_by,
        'approved_at': iso(b.approved_at),
        'approved_by': b.approved_by,
        'rejected_at': iso(b.rejected_at),
        'rejected_by': b.rejected_by,
        'rejection_reason': b.rejection_reason,
        'created_by': b.created_by,
    }


def _prefetch_budget(budget_id: int):
    budget = get_db().get(Budget, budget_id)
    if not budget:
        return {}
    return {'title': budget.title, 'total_amount': money(budget.total_amount), 'fiscal_year': budget.fiscal_year}
