from __future__ import annotations
from flask import Blueprint
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions, current_user_id
from budget_tracker.models.approval import ApprovalHistory, ApprovalWorkflow
from budget_tracker.models.budget import Budget
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.services import workflow
from budget_tracker.utils.serialization import iso, money, json_safe

approval_bp = Blueprint('approvals', __name__)


@approval_bp.get('/history/<entity_type>/<int:entity_id>')
@require_permissions('RPT.READ')
def approval_history(entity_type: str, entity_id: int):
    rows = workflow.get_approval_history(entity_type, entity_id)
    wf = workflow.latest_workflow(entity_type, entity_id)
    return {
        'data': [history_json(h) for h in rows],
        'workflow': workflow_json(wf) if wf else None,
    }


@approval_bp.get('/pending')
@require_permissions('RPT.READ')
def my_pending_approvals():
    """Budgets and expenditures currently waiting on the caller."""
    session = get_db()
    uid = current_user_id()
    budgets = session.execute(
        select(Budget).where(Budget.current_approver_id == uid, Budget.status == Budget.STATUS_PENDING).order_by(Budget.submitted_at.asc())
    ).scalars().all()
    exps = session.execute(
        select(Expenditure).where(Expenditure.current_approver_id == uid, Expenditure.status == Expenditure.STATUS_SUBMITTED).order_by(Expenditure.submitted_at.asc())
    ).scalars().all()
    items = [
        {'entity_type': 'budget', 'entity_id': b.id, 'reference': b.code, 'title': b.title,
         'amount': money(b.total_amount), 'submitted_at': iso(b.submitted_at)}
        for b in budgets
    ] + [
        {'entity_type': 'expenditure', 'entity_id': e.id, 'reference': e.reference_number, 'title': e.description,
         'amount': money(e.amount), 'submitted_at': iso(e.submitted_at)}
        for e in exps
    ]
    return {'data': items, 'total': len(items)}


def history_json(h: ApprovalHistory):
    return {
        'id': h.id,
        'entity_type': h.entity_type,
        'entity_id': h.entity_id,
        'action': h.action,
        'status': h.status,
        'user_id': h.user_id,
        'user_name': h.user.full_name if h.user else None,
        'comments': h.comments,
        'metadata': json_safe(h.meta or {}),
        'created_at': iso(h.created_at),
    }


def workflow_json(wf: ApprovalWorkflow):
    return {
        'id': wf.id,
        'state': wf.state,
        'current_step': wf.current_step,
        'total_steps': len(wf.steps),
        'approvers': wf.chain(),
        'closed_at': iso(wf.closed_at),
    }
