from decimal import Decimal
from budget_tracker import get_db
from budget_tracker.models.budget import BudgetLineItem
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.models.notification import Notification
from budget_tracker.services.early_warning import (
    check_budget_thresholds, get_warnings_by_mda, get_warnings_summary, has_new_threshold_crossed, stakeholder_ids,
)
from tests.test_utils_seed import create_line_item, create_expenditure, seed_user_with_role
from tests.test_lifecycle_helpers import headers_for, seed_spendable_line_item


def _spend(li, user, amount):
    create_expenditure(li, user, amount, status=Expenditure.STATUS_APPROVED)


def test_check_below_threshold_only_refreshes_balance(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    _spend(li, officer, '749')
    assert check_budget_thresholds(li.id) is None
    assert get_db().get(BudgetLineItem, li.id).balance == Decimal('251.00')
    assert get_db().query(Notification).filter_by(reference_type='budget_line_item', reference_id=li.id).count() == 0


def test_check_just_below_medium_is_silent(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='100000')
    _spend(li, officer, '74995')
    assert check_budget_thresholds(li.id) is None
    assert get_warnings_by_mda(mda.id) == []
    assert not has_new_threshold_crossed(li.id, 70)
    assert get_db().query(Notification).filter_by(reference_type='budget_line_item', reference_id=li.id).count() == 0


def test_check_notifies_stakeholders(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    manager = seed_user_with_role('budget_manager', mda_id=mda.id)
    outsider = seed_user_with_role('budget_manager')
    _spend(li, officer, '950')
    warning = check_budget_thresholds(li.id)
    assert warning['level'] == 'critical'
    assert warning['threshold'] == 95
    assert warning['utilization_percentage'] == 95.0
    assert warning['balance'] == 50.0
    assert warning['line_item_code'] == li.code
    assert stakeholder_ids(mda.id) == sorted([director.id, manager.id])
    recipients = {n.user_id for n in get_db().query(Notification).filter_by(reference_type='budget_line_item', reference_id=li.id)}
    assert recipients == {director.id, manager.id}
    assert outsider.id not in recipients


def test_warnings_sorted_and_summarised(app_context):
    mda, officer, director, li_high = seed_spendable_line_item(amount='1000')
    budget = li_high.budget
    li_medium = create_line_item(budget, officer, amount='1000')
    li_critical = create_line_item(budget, officer, amount='1000')
    li_normal = create_line_item(budget, officer, amount='1000')
    _spend(li_high, officer, '860')
    _spend(li_medium, officer, '750')
    _spend(li_critical, officer, '1000')
    _spend(li_normal, officer, '100')

    warnings = get_warnings_by_mda(mda.id)
    assert [w['line_item_id'] for w in warnings] == [li_critical.id, li_high.id, li_medium.id]
    assert [w['level'] for w in warnings] == ['critical', 'high', 'medium']

    summary = get_warnings_summary(mda.id)
    assert (summary['total'], summary['critical'], summary['high'], summary['medium']) == (3, 1, 1, 1)


def test_inactive_line_items_are_ignored(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='100')
    _spend(li, officer, '99')
    li.is_active = False
    get_db().commit()
    assert get_warnings_by_mda(mda.id) == []


def test_threshold_crossing(app_context):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    _spend(li, officer, '860')
    assert has_new_threshold_crossed(li.id, 70)
    assert has_new_threshold_crossed(li.id, 80)
    assert not has_new_threshold_crossed(li.id, 85)
    assert not has_new_threshold_crossed(li.id, 90)


def test_dashboard_endpoints(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    _spend(li, officer, '900')
    h = headers_for(officer)

    body = client.get('/api/v1/dashboard/warnings', headers=h).get_json()
    assert [w['line_item_id'] for w in body['data']] == [li.id]

    summary = client.get('/api/v1/dashboard/warnings/summary', headers=h).get_json()
    assert summary['high'] == 1

    resp = client.get(f'/api/v1/dashboard/warnings/line-items/{li.id}/crossed?previous=50', headers=h)
    assert resp.get_json()['crossed'] is True
    assert client.get(f'/api/v1/dashboard/warnings/line-items/{li.id}/crossed', headers=h).status_code == 400

    resp = client.post(f'/api/v1/dashboard/warnings/line-items/{li.id}/check', headers=h)
    assert resp.get_json()['warning']['level'] == 'high'

    overview = client.get('/api/v1/dashboard/summary', headers=h).get_json()
    assert overview['expenditures']['approved_amount'] == 900.0
    assert overview['warnings']['total'] == 1
    assert 'warnings' not in overview['warnings']

    other_mda, *_ = seed_spendable_line_item(amount='10')
    resp = client.get(f'/api/v1/dashboard/warnings?mda_id={other_mda.id}', headers=h)
    assert resp.status_code == 403
