from __future__ import annotations
"""Line item balance and utilization arithmetic.

`BudgetLineItem.balance` is only a cache: every correctness check goes through
`calculate_balance`, which sums approved expenditures inside the caller's session.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, NamedTuple, Optional
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from budget_tracker import get_db
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.budget import BudgetLineItem
from budget_tracker.models.expenditure import Expenditure

ZERO = Decimal('0')
CENT = Decimal('0.01')


class WarningTier(NamedTuple):
    level: str
    threshold: int


NORMAL = WarningTier('normal', 0)
MEDIUM = WarningTier('medium', 75)
HIGH = WarningTier('high', 85)
CRITICAL = WarningTier('critical', 95)
# Highest first: the first tier whose threshold is met wins
TIERS = (CRITICAL, HIGH, MEDIUM)


def approved_spend(line_item_id: int, session: Optional[Session] = None) -> Decimal:
    session = session or get_db()
    total = session.execute(
        select(func.coalesce(func.sum(Expenditure.amount), 0)).where(
            Expenditure.budget_line_item_id == line_item_id,
            Expenditure.status == Expenditure.STATUS_APPROVED,
        )
    ).scalar_one()
    return Decimal(str(total)).quantize(CENT)


def budget_line_items(budget_id: int, session: Optional[Session] = None) -> List[BudgetLineItem]:
    session = session or get_db()
    q = select(BudgetLineItem).where(BudgetLineItem.budget_id == budget_id).order_by(BudgetLineItem.id)
    return list(session.execute(q).scalars())


def calculate_balance(line_item: BudgetLineItem, session: Optional[Session] = None) -> Decimal:
    return Decimal(line_item.amount) - approved_spend(line_item.id, session)


def utilization_ratio(amount, balance) -> Decimal:
    """Unrounded spent / amount * 100. Tier classification runs on this value."""
    amount = Decimal(amount or 0)
    if amount == ZERO:
        return ZERO
    spent = amount - Decimal(balance or 0)
    return spent / amount * 100


def utilization_percentage(amount, balance) -> Decimal:
    return round_percentage(utilization_ratio(amount, balance))


def round_percentage(ratio) -> Decimal:
    return Decimal(ratio).quantize(CENT, rounding=ROUND_HALF_UP)


def classify_utilization(pct) -> WarningTier:
    pct = Decimal(str(pct))
    for tier in TIERS:
        if pct >= tier.threshold:
            return tier
    return NORMAL


def can_accommodate(line_item: BudgetLineItem, amount, session: Optional[Session] = None) -> bool:
    """True when `amount` fits the live balance."""
    return Decimal(amount) <= calculate_balance(line_item, session)


def recalculate_balance(line_item_id: int, session: Optional[Session] = None) -> BudgetLineItem:
    """Refresh the cached balance from the live sum. Caller commits."""
    session = session or get_db()
    line_item = session.get(BudgetLineItem, line_item_id)
    if not line_item:
        raise EntityNotFound('Budget line item')
    line_item.balance = calculate_balance(line_item, session)
    return line_item


def get_utilization_stats(line_item_id: int) -> dict:
    session = get_db()
    line_item = session.get(BudgetLineItem, line_item_id)
    if not line_item:
        raise EntityNotFound('Budget line item')
    balance = calculate_balance(line_item, session)
    amount = Decimal(line_item.amount)
    ratio = utilization_ratio(amount, balance)
    return {
        'amount': float(amount),
        'balance': float(balance),
        'spent': float(amount - balance),
        'utilization_percentage': float(round_percentage(ratio)),
        'warning_status': classify_utilization(ratio).level,
    }
