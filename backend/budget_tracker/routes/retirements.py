from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions, current_user_id
from budget_tracker.decorators.audit import audit_log
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.models.retirement import ExpenditureRetirement as Retirement, RetirementAttachment
from budget_tracker.routes.expenditures import attachment_json
from budget_tracker.services import attachments, retirements
from budget_tracker.services.policy import assert_mda_access, filter_query_by_mda, is_admin
from budget_tracker.utils.filters import apply_filters, search_filter
from budget_tracker.utils.listing import paginated_response
from budget_tracker.utils.serialization import iso, money
from budget_tracker.utils.sorting import apply_multi_sort
from budget_tracker.utils.validation import parse_int

ret_bp = Blueprint('retirements', __name__)


@ret_bp.get('')
@require_permissions('RET.READ')
def list_retirements():
    session = get_db()
    q = filter_query_by_mda(session.query(Retirement).join(Expenditure, Expenditure.id==Retirement.expenditure_id), Expenditure.mda_id)
    filter_specs = {
        'status': {'op': lambda qu, v: qu.filter(Retirement.status==v), 'validate': lambda v: v in Retirement.ALL_STATUSES},
        'expenditure_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Retirement.expenditure_id==v)},
        'mda_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Expenditure.mda_id==v)},
        'search': {'op': search_filter(Retirement.retirement_number, Retirement.purpose)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'retirement_number': Retirement.retirement_number,
        'amount_retired': Retirement.amount_retired,
        'retirement_date': Retirement.retirement_date,
        'status': Retirement.status,
        'id': Retirement.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Retirement.id)
    return paginated_response(q, _retirement_json)


@ret_bp.get('/stats')
@require_permissions('RET.READ')
def retirement_stats():
    mda_id = request.args.get('mda_id')
    return retirements.get_stats(parse_int(mda_id, 'mda_id') if mda_id else None)


@ret_bp.get('/<int:retirement_id>')
@require_permissions('RET.READ')
def get_retirement(retirement_id: int):
    ret = _get_retirement(retirement_id)
    body = _retirement_json(ret)
    body['attachments'] = [attachment_json(a) for a in ret.attachments]
    return body


@ret_bp.post('')
@require_permissions('RET.CREATE')
@audit_log('RET.CREATE', entity='Retirement', entity_id_key='id', meta_keys=['retirement_number', 'amount_retired'])
def create_retirement():
    data = request.json or {}
    if data.get('expenditure_id') is not None:
        exp = get_db().get(Expenditure, parse_int(data['expenditure_id'], 'expenditure_id'))
        if exp:
            assert_mda_access(exp.mda_id)
    ret = retirements.create_retirement(data, current_user_id())
    return _retirement_json(ret), 201


@ret_bp.put('/<int:retirement_id>')
@require_permissions('RET.UPDATE')
@audit_log('RET.UPDATE', entity='Retirement', entity_id_key='id', diff_keys=['amount_retired'],
           pre_fetch=lambda a, kw: _prefetch_retirement(kw.get('retirement_id')))
def update_retirement(retirement_id: int):
    _get_retirement(retirement_id)
    ret = retirements.update_retirement(retirement_id, request.json or {}, current_user_id())
    return _retirement_json(ret)


@ret_bp.post('/<int:retirement_id>/submit')
@require_permissions('RET.SUBMIT')
@audit_log('RET.SUBMIT', entity='Retirement', entity_id_key='id', meta_keys=['status'])
def submit_retirement(retirement_id: int):
    _get_retirement(retirement_id)
    return _retirement_json(retirements.submit_retirement(retirement_id, current_user_id()))


@ret_bp.post('/<int:retirement_id>/review')
@require_permissions('RET.REVIEW')
@audit_log('RET.REVIEW', entity='Retirement', entity_id_key='id', meta_keys=['status', 'remarks'])
def review_retirement(retirement_id: int):
    _get_retirement(retirement_id)
    data = request.get_json(silent=True) or {}
    ret = retirements.review_retirement(retirement_id, current_user_id(), data.get('status'), data.get('remarks'))
    return _retirement_json(ret)


@ret_bp.post('/<int:retirement_id>/approve')
@require_permissions('RET.APPROVE')
@audit_log('RET.APPROVE', entity='Retirement', entity_id_key='id', meta_keys=['status'])
def approve_retirement(retirement_id: int):
    _get_retirement(retirement_id)
    data = request.get_json(silent=True) or {}
    return _retirement_json(retirements.approve_retirement(retirement_id, current_user_id(), data.get('remarks')))


@ret_bp.post('/<int:retirement_id>/reject')
@require_permissions('RET.APPROVE')
@audit_log('RET.REJECT', entity='Retirement', entity_id_key='id', meta_keys=['rejection_reason'])
def reject_retirement(retirement_id: int):
    _get_retirement(retirement_id)
    data = request.get_json(silent=True) or {}
    return _retirement_json(retirements.reject_retirement(retirement_id, current_user_id(), data.get('rejection_reason')))


@ret_bp.post('/<int:retirement_id>/complete')
@require_permissions('RET.APPROVE')
@audit_log('RET.COMPLETE', entity='Retirement', entity_id_key='id', meta_keys=['status'])
def complete_retirement(retirement_id: int):
    _get_retirement(retirement_id)
    return _retirement_json(retirements.complete_retirement(retirement_id, current_user_id()))


# --- Attachments ---

@ret_bp.get('/<int:retirement_id>/attachments')
@require_permissions('RET.READ')
def list_retirement_attachments(retirement_id: int):
    ret = _get_retirement(retirement_id)
    return {'data': [attachment_json(a) for a in ret.attachments]}


@ret_bp.post('/<int:retirement_id>/attachments')
@require_permissions('RET.UPDATE')
@audit_log('RET.ATTACHMENT.ADD', entity='RetirementAttachment', entity_id_key='id', meta_keys=['retirement_id', 'file_name', 'file_size'])
def upload_retirement_attachment(retirement_id: int):
    _get_retirement(retirement_id)
    att = attachments.add_retirement_attachment(
        retirement_id, request.files.get('file'), current_user_id(),
        document_type=request.form.get('document_type'), description=request.form.get('description'),
    )
    return attachment_json(att), 201


@ret_bp.delete('/attachments/<int:attachment_id>')
@require_permissions('RET.UPDATE')
@audit_log('RET.ATTACHMENT.DELETE', entity='RetirementAttachment', entity_id_arg='attachment_id')
def delete_retirement_attachment(attachment_id: int):
    attachments.delete_attachment(RetirementAttachment, attachment_id, current_user_id(), is_admin=is_admin())
    return {'deleted': True, 'id': attachment_id}


@ret_bp.post('/attachments/<int:attachment_id>/verify')
@require_permissions('RET.VERIFY')
@audit_log('RET.ATTACHMENT.VERIFY', entity='RetirementAttachment', entity_id_key='id', meta_keys=['verified'])
def verify_retirement_attachment(attachment_id: int):
    data = request.get_json(silent=True) or {}
    att = attachments.verify_retirement_attachment(
        attachment_id, current_user_id(), verified=data.get('verified', True), notes=data.get('verification_notes'),
    )
    return attachment_json(att)


def _get_retirement(retirement_id: int) -> Retirement:
    ret = get_db().execute(select(Retirement).where(Retirement.id==retirement_id)).scalar_one_or_none()
    if not ret:
        raise EntityNotFound('Retirement')
    assert_mda_access(ret.expenditure.mda_id)
    return ret


def _retirement_json(r: Retirement):
    return {
        'id': r.id,
        'retirement_number': r.retirement_number,
        'expenditure_id': r.expenditure_id,
        'retirement_date': iso(r.retirement_date),
        'amount_retired': money(r.amount_retired),
        'balance_unretired': money(r.balance_unretired),
        'purpose': r.purpose,
        'remarks': r.remarks,
        'rejection_reason': r.rejection_reason,
        'status': r.status,
        'reviewed_by': r.reviewed_by,
        'reviewed_at': iso(r.reviewed_at),
        'approved_by': r.approved_by,
        'approved_at': iso(r.approved_at),
        'created_by': r.created_by,
    }


def _prefetch_retirement(retirement_id: int):
    r = get_db().get(Retirement, retirement_id)
    if not r:
        return {}
    return {'amount_retired': money(r.amount_retired)}
