from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy import select, func, case
from budget_tracker import get_db
from budget_tracker.errors import AppError, EntityNotFound, InsufficientBalance
from budget_tracker.models.budget import Budget, BudgetLineItem
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.services.balance import calculate_balance, can_accommodate
from budget_tracker.utils.numbering import next_reference
from budget_tracker.utils.transactions import transaction
from budget_tracker.utils.validation import require_fields, parse_amount, parse_date

SPENDABLE_BUDGET_STATUSES = (Budget.STATUS_APPROVED, Budget.STATUS_PUBLISHED)
TEXT_FIELDS = (
    'description', 'beneficiary_name', 'beneficiary_account_number', 'beneficiary_bank', 'payment_voucher_number',
)


def _spendable_line_item(session, line_item_id) -> BudgetLineItem:
    line_item = session.get(BudgetLineItem, line_item_id)
    if not line_item:
        raise EntityNotFound('Budget line item')
    if not line_item.is_active:
        raise AppError('Budget line item is inactive', 400)
    if line_item.budget.status not in SPENDABLE_BUDGET_STATUSES:
        raise AppError('Expenditures can only be raised against approved budgets', 400)
    return line_item


def _check_balance(session, line_item: BudgetLineItem, amount: Decimal):
    if not can_accommodate(line_item, amount, session):
        raise InsufficientBalance(calculate_balance(line_item, session), amount)


def _apply_dates(exp: Expenditure, data: dict):
    if data.get('date'):
        exp.expense_date = parse_date(data['date'], 'date')
    if 'payment_voucher_date' in data:
        exp.payment_voucher_date = parse_date(data['payment_voucher_date'], 'payment_voucher_date')


def create_expenditure(data: dict, user_id: int) -> Expenditure:
    require_fields(data, 'budget_line_item_id', 'amount', 'description')
    amount = parse_amount(data['amount'])
    with transaction() as session:
        line_item = _spendable_line_item(session, data['budget_line_item_id'])
        _check_balance(session, line_item, amount)
        exp = Expenditure(
            reference_number=next_reference(session, Expenditure.reference_number, 'EXP'),
            budget_line_item_id=line_item.id, budget_id=line_item.budget_id, mda_id=line_item.mda_id,
            amount=amount, status=Expenditure.STATUS_DRAFT, created_by=user_id,
            **{f: data.get(f) for f in TEXT_FIELDS},
        )
        _apply_dates(exp, data)
        session.add(exp)
    return exp


def _get_draft(session, expenditure_id: int, verb: str) -> Expenditure:
    exp = session.get(Expenditure, expenditure_id)
    if not exp:
        raise EntityNotFound('Expenditure')
    if exp.status != Expenditure.STATUS_DRAFT:
        raise AppError(f'Only draft expenditures can be {verb}', 400)
    return exp


def update_expenditure(expenditure_id: int, data: dict, user_id: int) -> Expenditure:
    with transaction() as session:
        exp = _get_draft(session, expenditure_id, 'updated')
        if 'budget_line_item_id' in data and data['budget_line_item_id'] != exp.budget_line_item_id:
            line_item = _spendable_line_item(session, data['budget_line_item_id'])
            exp.budget_line_item_id = line_item.id
            exp.budget_id = line_item.budget_id
            exp.mda_id = line_item.mda_id
        else:
            line_item = session.get(BudgetLineItem, exp.budget_line_item_id)
        if 'amount' in data:
            exp.amount = parse_amount(data['amount'])
        # drafts are not part of approved spend, so the live balance already excludes this amount
        _check_balance(session, line_item, exp.amount)
        for f in TEXT_FIELDS:
            if f in data:
                setattr(exp, f, data[f])
        if 'description' in data and not data['description']:
            raise AppError('description required', 400)
        _apply_dates(exp, data)
        exp.updated_by = user_id
    return exp


def delete_expenditure(expenditure_id: int):
    with transaction() as session:
        exp = _get_draft(session, expenditure_id, 'deleted')
        session.delete(exp)


def get_stats(mda_id: Optional[int] = None) -> dict:
    session = get_db()
    approved = Expenditure.status == Expenditure.STATUS_APPROVED
    q = select(
        func.count(Expenditure.id),
        func.coalesce(func.sum(case((approved, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Expenditure.status == Expenditure.STATUS_SUBMITTED, 1), else_=0)), 0),
        func.coalesce(func.sum(Expenditure.amount), 0),
        func.coalesce(func.sum(case((approved, Expenditure.amount), else_=0)), 0),
    )
    if mda_id is not None:
        q = q.where(Expenditure.mda_id == mda_id)
    total, n_approved, n_pending, total_amount, approved_amount = session.execute(q).one()
    return {
        'total_expenditures': int(total),
        'approved_expenditures': int(n_approved),
        'pending_expenditures': int(n_pending),
        'total_amount': float(total_amount),
        'approved_amount': float(approved_amount),
    }
