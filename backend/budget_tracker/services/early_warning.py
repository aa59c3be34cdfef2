from __future__ import annotations
"""Budget utilization warnings for line items (75 / 85 / 95 percent tiers)."""
from decimal import Decimal
from typing import Iterable, List, Optional
from flask import current_app
from sqlalchemy import select
from budget_tracker import get_db
from budget_tracker.constants.permissions import WARNING_STAKEHOLDER_ROLES
from budget_tracker.errors import EntityNotFound
from budget_tracker.models.authz import User, UserRole, Role
from budget_tracker.models.budget import BudgetLineItem
from budget_tracker.services import notifications
from budget_tracker.services.balance import (
    NORMAL, TIERS, calculate_balance, classify_utilization, recalculate_balance, round_percentage, utilization_ratio,
)


def _warning_payload(line_item: BudgetLineItem, balance: Decimal, ratio: Decimal) -> dict:
    tier = classify_utilization(ratio)
    return {
        'line_item_id': line_item.id,
        'line_item_code': line_item.code,
        'line_item_name': line_item.name,
        'mda_id': line_item.mda_id,
        'utilization_percentage': float(round_percentage(ratio)),
        'threshold': tier.threshold,
        'level': tier.level,
        'amount': float(line_item.amount),
        'balance': float(balance),
    }


def stakeholder_ids(mda_id: int, roles: Iterable[str] = WARNING_STAKEHOLDER_ROLES) -> List[int]:
    session = get_db()
    q = (
        select(User.id)
        .join(UserRole, UserRole.user_id == User.id)
        .join(Role, Role.id == UserRole.role_id)
        .where(Role.name.in_(list(roles)), User.mda_id == mda_id, User.is_active.is_(True))
        .distinct()
    )
    return sorted(session.execute(q).scalars().all())


def check_budget_thresholds(line_item_id: int) -> Optional[dict]:
    """Refresh the cached balance, and notify MDA stakeholders when a warning tier is reached.

    Returns the warning payload, or None while utilization is below 75%.
    """
    session = get_db()
    line_item = recalculate_balance(line_item_id, session)
    session.commit()
    ratio = utilization_ratio(line_item.amount, line_item.balance)
    if classify_utilization(ratio) == NORMAL:
        return None
    warning = _warning_payload(line_item, line_item.balance, ratio)
    current_app.logger.warning(
        'line item %s (%s) at %s%% utilization [%s]', line_item.id, line_item.code, warning['utilization_percentage'], warning['level']
    )
    notifications.notify_budget_warning(stakeholder_ids(line_item.mda_id), warning)
    return warning


def get_warnings_by_mda(mda_id: Optional[int] = None) -> List[dict]:
    """Active line items at or above 75% utilization, highest first. mda_id=None covers every MDA."""
    session = get_db()
    q = select(BudgetLineItem).where(BudgetLineItem.is_active.is_(True))
    if mda_id is not None:
        q = q.where(BudgetLineItem.mda_id == mda_id)
    warnings = []
    for line_item in session.execute(q).scalars():
        balance = calculate_balance(line_item, session)
        ratio = utilization_ratio(line_item.amount, balance)
        if classify_utilization(ratio) != NORMAL:
            warnings.append(_warning_payload(line_item, balance, ratio))
    warnings.sort(key=lambda w: w['utilization_percentage'], reverse=True)
    return warnings


def get_warnings_summary(mda_id: Optional[int] = None) -> dict:
    warnings = get_warnings_by_mda(mda_id)
    summary = {'total': len(warnings)}
    for tier in TIERS:
        summary[tier.level] = sum(1 for w in warnings if w['level'] == tier.level)
    summary['warnings'] = warnings
    return summary


def has_new_threshold_crossed(line_item_id: int, previous_utilization) -> bool:
    """True when utilization moved from below a tier threshold to at or above it."""
    session = get_db()
    line_item = session.get(BudgetLineItem, line_item_id)
    if not line_item:
        raise EntityNotFound('Budget line item')
    current = utilization_ratio(line_item.amount, calculate_balance(line_item, session))
    previous = Decimal(str(previous_utilization))
    return any(previous < tier.threshold <= current for tier in TIERS)
