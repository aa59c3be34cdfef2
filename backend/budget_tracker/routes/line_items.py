from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.decorators.auth import require_permissions, current_user_id
from budget_tracker.decorators.audit import audit_log
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.budget import Budget, BudgetLineItem
from budget_tracker.services import balance, line_items
from budget_tracker.services.policy import assert_mda_access, filter_query_by_mda
from budget_tracker.utils.filters import apply_filters, search_filter
from budget_tracker.utils.listing import paginated_response
from budget_tracker.utils.serialization import money
from budget_tracker.utils.sorting import apply_multi_sort
from budget_tracker.utils.validation import parse_int

line_item_bp = Blueprint('line_items', __name__)


@line_item_bp.get('')
@require_permissions('BUDGET.READ')
def list_line_items():
    session = get_db()
    q = filter_query_by_mda(session.query(BudgetLineItem), BudgetLineItem.mda_id)
    filter_specs = {
        'budget_id': {'coerce': int, 'op': lambda qu, v: qu.filter(BudgetLineItem.budget_id==v)},
        'mda_id': {'coerce': int, 'op': lambda qu, v: qu.filter(BudgetLineItem.mda_id==v)},
        'category': {'op': lambda qu, v: qu.filter(BudgetLineItem.category==v), 'validate': lambda v: v in BudgetLineItem.ALL_CATEGORIES},
        'is_active': {'coerce': lambda v: v.lower() in ('1', 'true', 'yes'), 'op': lambda qu, v: qu.filter(BudgetLineItem.is_active.is_(v))},
        'search': {'op': search_filter(BudgetLineItem.name, BudgetLineItem.code)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'code': BudgetLineItem.code,
        'name': BudgetLineItem.name,
        'amount': BudgetLineItem.amount,
        'balance': BudgetLineItem.balance,
        'category': BudgetLineItem.category,
        'id': BudgetLineItem.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, BudgetLineItem.id)
    return paginated_response(q, line_item_json)


@line_item_bp.get('/<int:line_item_id>')
@require_permissions('BUDGET.READ')
def get_line_item(line_item_id: int):
    line_item = _get_line_item(line_item_id)
    body = line_item_json(line_item)
    body['utilization'] = balance.get_utilization_stats(line_item.id)
    return body


@line_item_bp.get('/<int:line_item_id>/utilization')
@require_permissions('BUDGET.READ')
def line_item_utilization(line_item_id: int):
    _get_line_item(line_item_id)
    return balance.get_utilization_stats(line_item_id)


@line_item_bp.post('')
@require_permissions('BUDGET.UPDATE')
@audit_log('LINE_ITEM.CREATE', entity='BudgetLineItem', entity_id_key='id', meta_keys=['code', 'amount'])
def create_line_item():
    data = request.json or {}
    if data.get('budget_id') is not None:
        budget = get_db().get(Budget, parse_int(data['budget_id'], 'budget_id'))
        if budget:
            assert_mda_access(budget.mda_id)
    line_item = line_items.create_line_item(data, current_user_id())
    return line_item_json(line_item), 201


@line_item_bp.put('/<int:line_item_id>')
@require_permissions('BUDGET.UPDATE')
@audit_log('LINE_ITEM.UPDATE', entity='BudgetLineItem', entity_id_key='id', diff_keys=['amount', 'balance'],
           pre_fetch=lambda a, kw: _prefetch_line_item(kw.get('line_item_id')))
def update_line_item(line_item_id: int):
    _get_line_item(line_item_id)
    line_item = line_items.update_line_item(line_item_id, request.json or {}, current_user_id())
    return line_item_json(line_item)


@line_item_bp.delete('/<int:line_item_id>')
@require_permissions('BUDGET.DELETE')
@audit_log('LINE_ITEM.DELETE', entity='BudgetLineItem', entity_id_arg='line_item_id')
def delete_line_item(line_item_id: int):
    _get_line_item(line_item_id)
    line_items.delete_line_item(line_item_id)
    return {'deleted': True, 'id': line_item_id}


@line_item_bp.post('/<int:line_item_id>/recalculate')
@require_permissions('BUDGET.UPDATE')
@audit_log('LINE_ITEM.RECALCULATE', entity='BudgetLineItem', entity_id_key='id', meta_keys=['balance'])
def recalculate_line_item(line_item_id: int):
    _get_line_item(line_item_id)
    session = get_db()
    line_item = balance.recalculate_balance(line_item_id, session)
    session.commit()
    return line_item_json(line_item)


def _get_line_item(line_item_id: int) -> BudgetLineItem:
    line_item = get_db().execute(select(BudgetLineItem).where(BudgetLineItem.id==line_item_id)).scalar_one_or_none()
    if not line_item:
        raise EntityNotFound('Budget line item')
    assert_mda_access(line_item.mda_id)
    return line_item


def line_item_json(li: BudgetLineItem):
    spent = balance.approved_spend(li.id)
    ratio = balance.utilization_ratio(li.amount, Decimal(li.amount) - spent)
    return {
        'id': li.id,
        'budget_id': li.budget_id,
        'mda_id': li.mda_id,
        'code': li.code,
        'name': li.name,
        'category': li.category,
        'description': li.description,
        'amount': money(li.amount),
        'balance': money(li.balance),
        'spent': money(spent),
        'utilization_percentage': float(balance.round_percentage(ratio)),
        'warning_status': balance.classify_utilization(ratio).level,
        'is_active': li.is_active,
    }


def _prefetch_line_item(line_item_id: int):
    li = get_db().get(BudgetLineItem, line_item_id)
    if not li:
        return {}
    return {'amount': money(li.amount), 'balance': money(li.balance)}
