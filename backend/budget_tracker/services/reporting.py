from __future__ import annotations
"""Budget performance reports built on the live approved-spend sums."""
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.budget import Budget
from budget_tracker.models.mda import Mda
from budget_tracker.services.balance import ZERO, approved_spend, budget_line_items, round_percentage, utilization_ratio


def _rate(total, spent) -> float:
    return float(round_percentage(utilization_ratio(total, Decimal(total) - spent)))


def budget_spend(budget: Budget) -> Decimal:
    return sum((approved_spend(li.id) for li in budget_line_items(budget.id)), ZERO)


def budget_vs_actual(budget_id: int) -> dict:
    """Allocation against approved spend, per line item and in total."""
    budget = get_db().get(Budget, budget_id)
    if not budget:
        raise EntityNotFound('Budget')
    total_budget = total_spent = ZERO
    line_items = []
    for li in budget_line_items(budget.id):
        spent = approved_spend(li.id)
        amount = Decimal(li.amount)
        total_budget += amount
        total_spent += spent
        line_items.append({
            'id': li.id,
            'code': li.code,
            'name': li.name,
            'category': li.category,
            'budget_amount': float(amount),
            'amount_spent': float(spent),
            'amount_remaining': float(amount - spent),
            'utilization_percentage': _rate(amount, spent),
        })
    return {
        'budget': {
            'id': budget.id,
            'code': budget.code,
            'title': budget.title,
            'fiscal_year': budget.fiscal_year,
            'mda_id': budget.mda_id,
            'status': budget.status,
            'total_budget': float(total_budget),
            'total_spent': float(total_spent),
            'total_remaining': float(total_budget - total_spent),
            'total_utilization_percentage': _rate(total_budget, total_spent),
        },
        'line_items': line_items,
    }


def _budgets(fiscal_year: Optional[int], mda_id: Optional[int]) -> List[Budget]:
    q = select(Budget)
    if fiscal_year is not None:
        q = q.where(Budget.fiscal_year == fiscal_year)
    if mda_id is not None:
        q = q.where(Budget.mda_id == mda_id)
    return list(get_db().execute(q.order_by(Budget.id)).scalars())


def execution_rate(fiscal_year: Optional[int] = None, mda_id: Optional[int] = None) -> List[dict]:
    """Approved spend as a share of each budget's total amount, largest budgets first."""
    rows = []
    for budget in _budgets(fiscal_year, mda_id):
        spent = budget_spend(budget)
        rows.append({
            'id': budget.id,
            'code': budget.code,
            'title': budget.title,
            'fiscal_year': budget.fiscal_year,
            'mda_id': budget.mda_id,
            'status': budget.status,
            'total_budget': float(budget.total_amount),
            'total_spent': float(spent),
            'execution_rate': _rate(budget.total_amount, spent),
        })
    rows.sort(key=lambda r: r['total_budget'], reverse=True)
    return rows


def utilization_by_mda(fiscal_year: Optional[int] = None, mda_id: Optional[int] = None) -> List[dict]:
    totals = {}
    for budget in _budgets(fiscal_year, mda_id):
        budget_total, spent = totals.get(budget.mda_id, (ZERO, ZERO))
        totals[budget.mda_id] = (budget_total + Decimal(budget.total_amount), spent + budget_spend(budget))
    session = get_db()
    rows = []
    for key, (budget_total, spent) in totals.items():
        mda = session.get(Mda, key)
        rows.append({
            'mda_id': key,
            'mda_name': mda.name,
            'mda_code': mda.code,
            'total_budget': float(budget_total),
            'total_spent': float(spent),
            'utilization_percentage': _rate(budget_total, spent),
        })
    rows.sort(key=lambda r: r['mda_name'])
    return rows
