from __future__ import annotations
"""Point-in-time budget snapshots, their comparison and the per-budget baseline."""
from datetime import datetime, time
from typing import List, Optional
from sqlalchemy import select, update
from budget_tracker import get_db
from budget_tracker.errors import AppError, EntityNotFound
from budget_tracker.models.budget import Budget
from budget_tracker.models.mda import Mda
from budget_tracker.models.snapshot import BudgetSnapshot
from budget_tracker.services.balance import approved_spend, budget_line_items
from budget_tracker.utils.serialization import iso, json_safe
from budget_tracker.utils.transactions import transaction
from budget_tracker.utils.validation import parse_date, validate_status

BUDGET_FIELDS = ('id', 'mda_id', 'code', 'title', 'fiscal_year', 'description', 'total_amount', 'status')
LINE_ITEM_FIELDS = ('id', 'code', 'name', 'category', 'description', 'amount', 'balance', 'is_active')


def capture(budget: Budget, session) -> dict:
    data = {f: getattr(budget, f) for f in BUDGET_FIELDS}
    items = []
    for li in budget_line_items(budget.id, session):
        item = {f: getattr(li, f) for f in LINE_ITEM_FIELDS}
        item['spent'] = approved_spend(li.id, session)
        items.append(item)
    data['line_items'] = items
    return json_safe(data)


def create_snapshot(budget_id: int, data: dict, user_id: int) -> BudgetSnapshot:
    snapshot_type = validate_status(data.get('snapshot_type') or BudgetSnapshot.TYPE_AD_HOC, BudgetSnapshot.ALL_TYPES, 'snapshot_type')
    with transaction() as session:
        budget = session.get(Budget, budget_id)
        if not budget:
            raise EntityNotFound('Budget')
        mda = session.get(Mda, budget.mda_id)
        snapshot = BudgetSnapshot(
            budget_id=budget.id,
            snapshot_type=snapshot_type,
            fiscal_year=budget.fiscal_year,
            data=capture(budget, session),
            meta={'mda_name': mda.name, 'mda_code': mda.code, 'budget_title': budget.title, 'budget_code': budget.code},
            notes=data.get('notes'),
            created_by=user_id,
        )
        session.add(snapshot)
        session.flush()
        if data.get('is_baseline'):
            # a budget has at most one baseline
            session.execute(
                update(BudgetSnapshot)
                .where(BudgetSnapshot.budget_id == budget.id, BudgetSnapshot.id != snapshot.id)
                .values(is_baseline=False)
            )
            snapshot.is_baseline = True
    return snapshot


def list_snapshots(budget_id: int, snapshot_type: Optional[str] = None,
                   date_from: Optional[str] = None, date_to: Optional[str] = None) -> List[BudgetSnapshot]:
    q = select(BudgetSnapshot).where(BudgetSnapshot.budget_id == budget_id)
    if snapshot_type:
        q = q.where(BudgetSnapshot.snapshot_type == validate_status(snapshot_type, BudgetSnapshot.ALL_TYPES, 'snapshot_type'))
    start = parse_date(date_from, 'date_from')
    if start:
        q = q.where(BudgetSnapshot.created_at >= datetime.combine(start, time.min))
    end = parse_date(date_to, 'date_to')
    if end:
        q = q.where(BudgetSnapshot.created_at <= datetime.combine(end, time.max))
    return list(get_db().execute(q.order_by(BudgetSnapshot.created_at.desc(), BudgetSnapshot.id.desc())).scalars())


def get_snapshot(snapshot_id: int) -> BudgetSnapshot:
    snapshot = get_db().get(BudgetSnapshot, snapshot_id)
    if not snapshot:
        raise EntityNotFound('Budget snapshot')
    return snapshot


def get_baseline(budget_id: int) -> BudgetSnapshot:
    snapshot = get_db().execute(
        select(BudgetSnapshot).where(BudgetSnapshot.budget_id == budget_id, BudgetSnapshot.is_baseline.is_(True))
    ).scalar_one_or_none()
    if not snapshot:
        raise EntityNotFound('Baseline snapshot')
    return snapshot


def _field_changes(old: dict, new: dict, skip=()) -> List[dict]:
    keys = [k for k in list(old) + [k for k in new if k not in old] if k not in skip]
    return [
        {'field': k, 'old_value': old.get(k), 'new_value': new.get(k)}
        for k in keys if old.get(k) != new.get(k)
    ]


def _compare_line_items(old_items: List[dict], new_items: List[dict]) -> dict:
    old_by_id = {i['id']: i for i in old_items}
    new_by_id = {i['id']: i for i in new_items}
    result = {'added': [], 'removed': [], 'modified': [], 'unchanged': []}
    for item_id, item in new_by_id.items():
        before = old_by_id.get(item_id)
        if before is None:
            result['added'].append(item)
            continue
        changes = _field_changes(before, item)
        if changes:
            result['modified'].append({'id': item_id, 'code': item['code'], 'name': item['name'], 'changes': changes})
        else:
            result['unchanged'].append(item)
    result['removed'] = [i for item_id, i in old_by_id.items() if item_id not in new_by_id]
    return result


def compare_snapshots(from_id: int, to_id: int) -> dict:
    first, second = get_snapshot(from_id), get_snapshot(to_id)
    if first.budget_id != second.budget_id:
        raise AppError('Cannot compare snapshots from different budgets', 400)
    old_items = first.data.get('line_items', [])
    new_items = second.data.get('line_items', [])
    line_items = _compare_line_items(old_items, new_items)
    return {
        'from': {'id': first.id, 'snapshot_type': first.snapshot_type, 'created_at': iso(first.created_at)},
        'to': {'id': second.id, 'snapshot_type': second.snapshot_type, 'created_at': iso(second.created_at)},
        'budget_changes': _field_changes(first.data, second.data, skip=('line_items',)),
        'line_item_comparison': line_items,
        'summary': {
            'total_items_from': len(old_items),
            'total_items_to': len(new_items),
            **{k: len(v) for k, v in line_items.items()},
        },
    }
