from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions, current_user_id
from budget_tracker.decorators.audit import audit_log
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.budget import BudgetLineItem
from budget_tracker.models.expenditure import Expenditure, Attachment
from budget_tracker.routes.approvals import history_json
from budget_tracker.services import attachments, expenditures, workflow
from budget_tracker.services.policy import assert_mda_access, filter_query_by_mda, is_admin
from budget_tracker.utils.filters import apply_filters, search_filter
from budget_tracker.utils.listing import paginated_response
from budget_tracker.utils.serialization import iso, money
from budget_tracker.utils.sorting import apply_multi_sort
from budget_tracker.utils.validation import parse_date, parse_int

exp_bp = Blueprint('expenditures', __name__)


@exp_bp.get('')
@require_permissions('EXP.READ')
def list_expenditures():
    session = get_db()
    q = filter_query_by_mda(session.query(Expenditure), Expenditure.mda_id)
    filter_specs = {
        'status': {'op': lambda qu, v: qu.filter(Expenditure.status==v), 'validate': lambda v: v in Expenditure.ALL_STATUSES},
        'mda_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Expenditure.mda_id==v)},
        'budget_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Expenditure.budget_id==v)},
        'budget_line_item_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Expenditure.budget_line_item_id==v)},
        'date_from': {'coerce': lambda v: parse_date(v, 'date_from'), 'op': lambda qu, v: qu.filter(Expenditure.expense_date >= v)},
        'date_to': {'coerce': lambda v: parse_date(v, 'date_to'), 'op': lambda qu, v: qu.filter(Expenditure.expense_date <= v)},
        'search': {'op': search_filter(Expenditure.reference_number, Expenditure.description, Expenditure.beneficiary_name)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'reference_number': Expenditure.reference_number,
        'amount': Expenditure.amount,
        'date': Expenditure.expense_date,
        'status': Expenditure.status,
        'created_at': Expenditure.created_at,
        'id': Expenditure.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Expenditure.id)
    return paginated_response(q, _expenditure_json)


@exp_bp.get('/stats')
@require_permissions('EXP.READ')
def expenditure_stats():
    mda_id = request.args.get('mda_id')
    return expenditures.get_stats(parse_int(mda_id, 'mda_id') if mda_id else None)


@exp_bp.get('/<int:expenditure_id>')
@require_permissions('EXP.READ')
def get_expenditure(expenditure_id: int):
    exp = _get_expenditure(expenditure_id)
    body = _expenditure_json(exp)
    body['attachments'] = [attachment_json(a) for a in exp.attachments]
    return body


@exp_bp.post('')
@require_permissions('EXP.CREATE')
@audit_log('EXP.CREATE', entity='Expenditure', entity_id_key='id', meta_keys=['reference_number', 'amount'])
def create_expenditure():
    data = request.json or {}
    if data.get('budget_line_item_id') is not None:
        line_item = get_db().get(BudgetLineItem, parse_int(data['budget_line_item_id'], 'budget_line_item_id'))
        if line_item:
            assert_mda_access(line_item.mda_id)
    exp = expenditures.create_expenditure(data, current_user_id())
    return _expenditure_json(exp), 201


@exp_bp.put('/<int:expenditure_id>')
@require_permissions('EXP.UPDATE')
@audit_log('EXP.UPDATE', entity='Expenditure', entity_id_key='id', diff_keys=['amount', 'budget_line_item_id'],
           pre_fetch=lambda a, kw: _prefetch_expenditure(kw.get('expenditure_id')))
def update_expenditure(expenditure_id: int):
    _get_expenditure(expenditure_id)
    exp = expenditures.update_expenditure(expenditure_id, request.json or {}, current_user_id())
    return _expenditure_json(exp)


@exp_bp.delete('/<int:expenditure_id>')
@require_permissions('EXP.DELETE')
@audit_log('EXP.DELETE', entity='Expenditure', entity_id_arg='expenditure_id')
def delete_expenditure(expenditure_id: int):
    _get_expenditure(expenditure_id)
    expenditures.delete_expenditure(expenditure_id)
    return {'deleted': True, 'id': expenditure_id}


@exp_bp.post('/<int:expenditure_id>/submit')
@require_permissions('EXP.SUBMIT')
@audit_log('EXP.SUBMIT', entity='Expenditure', entity_id_key='expenditure.id', meta_keys=['expenditure.status', 'expenditure.current_approver_id'])
def submit_expenditure(expenditure_id: int):
    _get_expenditure(expenditure_id)
    data = request.get_json(silent=True) or {}
    exp, history = workflow.submit_for_approval('expenditure', expenditure_id, current_user_id(), data.get('comments'))
    return {'expenditure': _expenditure_json(exp), 'approval': history_json(history)}


@exp_bp.post('/<int:expenditure_id>/approve')
@require_permissions('EXP.APPROVE')
@audit_log('EXP.APPROVE', entity='Expenditure', entity_id_key='expenditure.id', meta_keys=['expenditure.status', 'expenditure.current_approver_id'])
def approve_expenditure(expenditure_id: int):
    data = request.get_json(silent=True) or {}
    exp, history = workflow.approve('expenditure', expenditure_id, current_user_id(), data.get('comments'))
    return {'expenditure': _expenditure_json(exp), 'approval': history_json(history)}


@exp_bp.post('/<int:expenditure_id>/reject')
@require_permissions('EXP.APPROVE')
@audit_log('EXP.REJECT', entity='Expenditure', entity_id_key='expenditure.id', meta_keys=['expenditure.rejection_reason'])
def reject_expenditure(expenditure_id: int):
    data = request.get_json(silent=True) or {}
    exp, history = workflow.reject(
        'expenditure', expenditure_id, current_user_id(), data.get('comments'),
        rejection_reason=data.get('rejection_reason'), is_admin=is_admin(),
    )
    return {'expenditure': _expenditure_json(exp), 'approval': history_json(history)}


# --- Attachments ---

@exp_bp.get('/<int:expenditure_id>/attachments')
@require_permissions('EXP.READ')
def list_expenditure_attachments(expenditure_id: int):
    exp = _get_expenditure(expenditure_id)
    return {'data': [attachment_json(a) for a in exp.attachments]}


@exp_bp.post('/<int:expenditure_id>/attachments')
@require_permissions('EXP.UPDATE')
@audit_log('EXP.ATTACHMENT.ADD', entity='Attachment', entity_id_key='id', meta_keys=['expenditure_id', 'file_name', 'file_size'])
def upload_expenditure_attachment(expenditure_id: int):
    _get_expenditure(expenditure_id)
    att = attachments.add_expenditure_attachment(
        expenditure_id, request.files.get('file'), current_user_id(),
        document_type=request.form.get('document_type'), description=request.form.get('description'),
    )
    return attachment_json(att), 201


@exp_bp.delete('/attachments/<int:attachment_id>')
@require_permissions('EXP.UPDATE')
@audit_log('EXP.ATTACHMENT.DELETE', entity='Attachment', entity_id_arg='attachment_id')
def delete_expenditure_attachment(attachment_id: int):
    attachments.delete_attachment(Attachment, attachment_id, current_user_id(), is_admin=is_admin())
    return {'deleted': True, 'id': attachment_id}


def _get_expenditure(expenditure_id: int) -> Expenditure:
    exp = get_db().execute(select(Expenditure).where(Expenditure.id==expenditure_id)).scalar_one_or_none()
    if not exp:
        raise EntityNotFound('Expenditure')
    assert_mda_access(exp.mda_id)
    return exp


def _expenditure_json(e: Expenditure):
    return {
        'id': e.id,
        'reference_number': e.reference_number,
        'budget_line_item_id': e.budget_line_item_id,
        'budget_id': e.budget_id,
        'mda_id': e.mda_id,
        'amount': money(e.amount),
        'description': e.description,
        'date': iso(e.expense_date),
        'status': e.status,
        'beneficiary_name': e.beneficiary_name,
        'beneficiary_account_number': e.beneficiary_account_number,
        'beneficiary_bank': e.beneficiary_bank,
        'payment_voucher_number': e.payment_voucher_number,
        'payment_voucher_date': iso(e.payment_voucher_date),
        'current_approver_id': e.current_approver_id,
        'submitted_at': iso(e.submitted_at),
        'submitted_by': e.submitted_by,
        'approved_at': iso(e.approved_at),
        'approved_by': e.approved_by,
        'rejected_at': iso(e.rejected_at),
        'rejected_by': e.rejected_by,
        'rejection_reason': e.rejection_reason,
        'created_by': e.created_by,
    }


def attachment_json(a):
    body = {
        'id': a.id,
        'file_name': a.file_name,
        'file_type': a.file_type,
        'file_size': a.file_size,
        'document_type': a.document_type,
        'description': a.description,
        'uploaded_by': a.uploaded_by,
        'created_at': iso(a.created_at),
    }
    if hasattr(a, 'expenditure_id'):
        body['expenditure_id'] = a.expenditure_id
    if hasattr(a, 'retirement_id'):
        body.update({
            'retirement_id': a.retirement_id,
            'verified': a.verified,
            'verified_by': a.verified_by,
            'verified_at': iso(a.verified_at),
            'verification_notes': a.verification_notes,
        })
    return body


def _prefetch_expenditure(expenditure_id: int):
    e = get_db().get(Expenditure, expenditure_id)
    if not e:
        return {}
    return {'amount': money(e.amount), 'budget_line_item_id': e.budget_line_item_id}
