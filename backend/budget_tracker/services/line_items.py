from __future__ import annotations
from typing import Optional
from sqlalchemy import select, func
from budget_tracker.errors import AppError, EntityNotFound
from budget_tracker.models.budget import Budget, BudgetLineItem
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.services.balance import approved_spend
from budget_tracker.utils.transactions import transaction
from budget_tracker.utils.validation import require_fields, parse_amount, validate_status

UPDATABLE = ('name', 'description', 'category', 'is_active')


def _assert_unique_code(session, code: str, exclude_id: Optional[int] = None):
    q = select(BudgetLineItem.id).where(BudgetLineItem.code == code)
    if exclude_id is not None:
        q = q.where(BudgetLineItem.id != exclude_id)
    if session.execute(q).first():
        raise AppError('Line item code already exists', 400)


def create_line_item(data: dict, user_id: int) -> BudgetLineItem:
    require_fields(data, 'budget_id', 'code', 'name', 'category', 'amount')
    amount = parse_amount(data['amount'])
    category = validate_status(data['category'], BudgetLineItem.ALL_CATEGORIES, 'category')
    with transaction() as session:
        budget = session.get(Budget, data['budget_id'])
        if not budget:
            raise EntityNotFound('Budget')
        _assert_unique_code(session, data['code'])
        line_item = BudgetLineItem(
            budget_id=budget.id, mda_id=budget.mda_id, code=data['code'], name=data['name'],
            category=category, description=data.get('description'),
            amount=amount, balance=amount, created_by=user_id,
        )
        session.add(line_item)
    return line_item


def update_line_item(line_item_id: int, data: dict, user_id: int) -> BudgetLineItem:
    with transaction() as session:
        line_item = session.execute(
            select(BudgetLineItem).where(BudgetLineItem.id == line_item_id).with_for_update()
        ).scalar_one_or_none()
        if not line_item:
            raise EntityNotFound('Budget line item')
        if 'code' in data and data['code'] != line_item.code:
            _assert_unique_code(session, data['code'], exclude_id=line_item.id)
            line_item.code = data['code']
        if 'category' in data:
            validate_status(data['category'], BudgetLineItem.ALL_CATEGORIES, 'category')
        for field in UPDATABLE:
            if field in data:
                setattr(line_item, field, data[field])
        if 'amount' in data:
            amount = parse_amount(data['amount'])
            spent = approved_spend(line_item.id, session)
            if amount < spent:
                raise AppError(f'Amount cannot be less than the amount already spent ({spent})', 400)
            line_item.amount = amount
            line_item.balance = amount - spent
        line_item.updated_by = user_id
    return line_item


def delete_line_item(line_item_id: int):
    with transaction() as session:
        line_item = session.get(BudgetLineItem, line_item_id)
        if not line_item:
            raise EntityNotFound('Budget line item')
        count = session.execute(
            select(func.count(Expenditure.id)).where(Expenditure.budget_line_item_id == line_item.id)
        ).scalar_one()
        if count:
            raise AppError('Cannot delete line item with existing expenditures', 400)
        session.delete(line_item)
