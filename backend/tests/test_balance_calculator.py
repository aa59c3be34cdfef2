from decimal import Decimal
import pytest
from budget_tracker.services.balance import (
    classify_utilization, utilization_percentage, utilization_ratio, can_accommodate, calculate_balance, get_utilization_stats,
)
from budget_tracker.models.expenditure import Expenditure
from tests.test_utils_seed import create_expenditure
from tests.test_lifecycle_helpers import seed_spendable_line_item


@pytest.mark.parametrize('pct, level, threshold', [
    ('0', 'normal', 0),
    ('74.99', 'normal', 0),
    ('75', 'medium', 75),
    ('75.00', 'medium', 75),
    ('84.99', 'medium', 75),
    ('85.00', 'high', 85),
    ('94.99', 'high', 85),
    ('95.00', 'critical', 95),
    ('100', 'critical', 95),
    ('120.5', 'critical', 95),
])
def test_warning_tier_boundaries(pct, level, threshold):
    tier = classify_utilization(Decimal(pct))
    assert tier.level == level
    assert tier.threshold == threshold


def test_utilization_percentage():
    assert utilization_percentage(Decimal('1000'), Decimal('250')) == Decimal('75.00')
    assert utilization_percentage(Decimal('3'), Decimal('2')) == Decimal('33.33')
    assert utilization_percentage(Decimal('1000'), Decimal('1000')) == Decimal('0.00')


def test_tier_uses_unrounded_ratio():
    ratio = utilization_ratio(Decimal('100000'), Decimal('25005'))
    assert ratio == Decimal('74.995')
    assert utilization_percentage(Decimal('100000'), Decimal('25005')) == Decimal('75.00')
    assert classify_utilization(ratio).level == 'normal'


def test_zero_amount_yields_zero_utilization():
    assert utilization_percentage(Decimal('0'), Decimal('0')) == Decimal('0')
    assert classify_utilization(utilization_percentage(0, 0)).level == 'normal'


def test_live_balance_counts_only_approved(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    create_expenditure(li, officer, '100', status=Expenditure.STATUS_APPROVED)
    create_expenditure(li, officer, '200', status=Expenditure.STATUS_SUBMITTED)
    create_expenditure(li, officer, '300', status=Expenditure.STATUS_DRAFT)
    create_expenditure(li, officer, '400', status=Expenditure.STATUS_REJECTED)
    assert calculate_balance(li) == Decimal('900.00')
    assert can_accommodate(li, Decimal('900'))
    assert not can_accommodate(li, Decimal('900.01'))


def test_utilization_stats_use_live_sum(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    create_expenditure(li, officer, '750', status=Expenditure.STATUS_APPROVED)
    # cached balance is still 1000; stats must not trust it
    stats = get_utilization_stats(li.id)
    assert stats == {
        'amount': 1000.0,
        'balance': 250.0,
        'spent': 750.0,
        'utilization_percentage': 75.0,
        'warning_status': 'medium',
    }


def test_utilization_stats_just_below_medium(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='100000')
    create_expenditure(li, officer, '74995', status=Expenditure.STATUS_APPROVED)
    stats = get_utilization_stats(li.id)
    assert stats['utilization_percentage'] == 75.0
    assert stats['warning_status'] == 'normal'
