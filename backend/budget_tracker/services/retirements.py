from __future__ import annotations
"""Expenditure retirement lifecycle.

draft -> submitted -> under_review -> approved -> completed
submitted / under_review -> rejected
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import select, func, case
from budget_tracker import get_db
from budget_tracker.constants.permissions import ROLE_BUDGET_REVIEWER, ROLE_DIRECTOR
from budget_tracker.errors import AppError, EntityNotFound
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.models.retirement import ExpenditureRetirement as Retirement
from budget_tracker.services import notifications
from budget_tracker.services.early_warning import stakeholder_ids
from budget_tracker.utils.fsm import TransitionValidator
from budget_tracker.utils.numbering import next_reference
from budget_tracker.utils.transactions import transaction
from budget_tracker.utils.validation import require_fields, parse_amount, parse_date

RETIREMENT_FSM = TransitionValidator({
    Retirement.STATUS_DRAFT: {Retirement.STATUS_SUBMITTED},
    Retirement.STATUS_SUBMITTED: {Retirement.STATUS_UNDER_REVIEW, Retirement.STATUS_REJECTED},
    Retirement.STATUS_UNDER_REVIEW: {Retirement.STATUS_APPROVED, Retirement.STATUS_REJECTED},
    Retirement.STATUS_APPROVED: {Retirement.STATUS_COMPLETED},
    Retirement.STATUS_REJECTED: set(),
    Retirement.STATUS_COMPLETED: set(),
})

REVIEW_OUTCOMES = (Retirement.STATUS_UNDER_REVIEW, Retirement.STATUS_REJECTED)


def _now():
    return datetime.now(timezone.utc)


def _validated_amount(raw, expenditure: Expenditure) -> Decimal:
    amount = parse_amount(raw, 'amount_retired', allow_zero=True)
    if amount > Decimal(expenditure.amount):
        raise AppError('Amount retired cannot exceed expenditure amount', 400)
    return amount


def _get(session, retirement_id: int) -> Retirement:
    ret = session.execute(
        select(Retirement).where(Retirement.id == retirement_id).with_for_update()
    ).scalar_one_or_none()
    if not ret:
        raise EntityNotFound('Retirement')
    return ret


def create_retirement(data: dict, user_id: int) -> Retirement:
    require_fields(data, 'expenditure_id', 'amount_retired', 'purpose')
    with transaction() as session:
        exp = session.get(Expenditure, data['expenditure_id'])
        if not exp:
            raise EntityNotFound('Expenditure')
        if exp.status != Expenditure.STATUS_APPROVED:
            raise AppError('Only approved expenditures can be retired', 400)
        if session.execute(select(Retirement.id).where(Retirement.expenditure_id == exp.id)).first():
            raise AppError('Retirement already exists for this expenditure', 400)
        amount = _validated_amount(data['amount_retired'], exp)
        ret = Retirement(
            retirement_number=next_reference(session, Retirement.retirement_number, 'RET'),
            expenditure_id=exp.id, amount_retired=amount, balance_unretired=Decimal(exp.amount) - amount,
            purpose=data['purpose'], remarks=data.get('remarks'), status=Retirement.STATUS_DRAFT, created_by=user_id,
        )
        if data.get('retirement_date'):
            ret.retirement_date = parse_date(data['retirement_date'], 'retirement_date')
        session.add(ret)
    return ret


def update_retirement(retirement_id: int, data: dict, user_id: int) -> Retirement:
    with transaction() as session:
        ret = _get(session, retirement_id)
        if ret.status != Retirement.STATUS_DRAFT:
            raise AppError('Only draft retirements can be updated', 400)
        if 'amount_retired' in data:
            ret.amount_retired = _validated_amount(data['amount_retired'], ret.expenditure)
            ret.balance_unretired = Decimal(ret.expenditure.amount) - ret.amount_retired
        for f in ('purpose', 'remarks'):
            if f in data:
                setattr(ret, f, data[f])
        if not ret.purpose:
            raise AppError('purpose required', 400)
        if data.get('retirement_date'):
            ret.retirement_date = parse_date(data['retirement_date'], 'retirement_date')
        ret.updated_by = user_id
    return ret


def _transition(retirement_id: int, target: str, user_id: int, apply=None) -> Retirement:
    with transaction() as session:
        ret = _get(session, retirement_id)
        RETIREMENT_FSM.assert_can_transition(ret.status, target)
        ret.status = target
        ret.updated_by = user_id
        if apply:
            apply(ret)
    return ret


def submit_retirement(retirement_id: int, user_id: int) -> Retirement:
    ret = _transition(retirement_id, Retirement.STATUS_SUBMITTED, user_id)
    reviewers = stakeholder_ids(ret.expenditure.mda_id, roles=(ROLE_BUDGET_REVIEWER, ROLE_DIRECTOR))
    for uid in reviewers:
        notifications.notify_retirement_status(uid, ret.id, ret.retirement_number, ret.status)
    return ret


def review_retirement(retirement_id: int, user_id: int, outcome: str, remarks: Optional[str] = None) -> Retirement:
    if outcome not in REVIEW_OUTCOMES:
        raise AppError(f"status must be one of {', '.join(REVIEW_OUTCOMES)}", 400)

    def apply(ret):
        ret.reviewed_by = user_id
        ret.reviewed_at = _now()
        if remarks is not None:
            ret.remarks = remarks
        if outcome == Retirement.STATUS_REJECTED:
            ret.rejection_reason = remarks

    ret = _transition(retirement_id, outcome, user_id, apply)
    notifications.notify_retirement_status(ret.created_by, ret.id, ret.retirement_number, ret.status)
    return ret


def approve_retirement(retirement_id: int, user_id: int, remarks: Optional[str] = None) -> Retirement:
    def apply(ret):
        ret.approved_by = user_id
        ret.approved_at = _now()
        if remarks is not None:
            ret.remarks = remarks

    ret = _transition(retirement_id, Retirement.STATUS_APPROVED, user_id, apply)
    notifications.notify_retirement_status(ret.created_by, ret.id, ret.retirement_number, ret.status)
    return ret


def reject_retirement(retirement_id: int, user_id: int, reason: Optional[str]) -> Retirement:
    if not reason:
        raise AppError('Rejection reason is required', 400)

    def apply(ret):
        ret.rejection_reason = reason
        ret.reviewed_by = user_id
        ret.reviewed_at = _now()

    ret = _transition(retirement_id, Retirement.STATUS_REJECTED, user_id, apply)
    notifications.notify_retirement_status(ret.created_by, ret.id, ret.retirement_number, ret.status)
    return ret


def complete_retirement(retirement_id: int, user_id: int) -> Retirement:
    return _transition(retirement_id, Retirement.STATUS_COMPLETED, user_id)


def get_stats(mda_id: Optional[int] = None) -> dict:
    session = get_db()
    pending = Retirement.status.in_([Retirement.STATUS_SUBMITTED, Retirement.STATUS_UNDER_REVIEW])
    q = select(
        func.count(Retirement.id),
        func.coalesce(func.sum(case((Retirement.status == Retirement.STATUS_APPROVED, 1), else_=0)), 0),
        func.coalesce(func.sum(case((pending, 1), else_=0)), 0),
        func.coalesce(func.sum(Retirement.amount_retired), 0),
    )
    if mda_id is not None:
        q = q.join(Expenditure, Expenditure.id == Retirement.expenditure_id).where(Expenditure.mda_id == mda_id)
    total, approved, n_pending, amount = session.execute(q).one()
    return {
        'total_retirements': int(total),
        'approved_retirements': int(approved),
        'pending_retirements': int(n_pending),
        'total_amount_retired': float(amount),
    }
