from budget_tracker import get_db
from budget_tracker.models.audit import AuditLog
from budget_tracker.models.expenditure import Expenditure
from tests.test_utils_seed import create_expenditure, create_line_item, seed_user_with_role
from tests.test_lifecycle_helpers import headers_for, seed_staffed_mda, seed_spendable_line_item


def _snapshot(client, budget_id, user, **payload):
    return client.post(f'/api/v1/budgets/{budget_id}/snapshots', json=payload, headers=headers_for(user))


def test_snapshot_captures_budget_and_spend(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    create_expenditure(li, officer, '400', status=Expenditure.STATUS_APPROVED)
    resp = _snapshot(client, li.budget_id, officer, snapshot_type='monthly', notes='October close')
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['snapshot_type'] == 'monthly'
    assert body['is_baseline'] is False
    assert body['fiscal_year'] == 2026
    assert body['meta']['mda_code'] == mda.code
    assert body['data']['total_amount'] == 1000.0
    assert body['data']['line_items'] == [{
        'id': li.id, 'code': li.code, 'name': li.name, 'category': li.category, 'description': None,
        'amount': 1000.0, 'balance': 1000.0, 'is_active': True, 'spent': 400.0,
    }]
    log = get_db().query(AuditLog).filter_by(action='BUDGET.SNAPSHOT', entity_id=str(li.budget_id)).one()
    assert log.meta['snapshot_type'] == 'monthly'


def test_snapshot_validation_and_scope(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    resp = _snapshot(client, li.budget_id, officer, snapshot_type='weekly')
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'snapshot_type invalid'
    assert _snapshot(client, 987654, officer).status_code == 404
    _, outsider, _ = seed_staffed_mda(with_director=False)
    assert _snapshot(client, li.budget_id, outsider).status_code == 403
    assert client.get(f'/api/v1/budgets/{li.budget_id}/snapshots', headers=headers_for(outsider)).status_code == 403


def test_only_one_baseline_per_budget(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    h = headers_for(officer)
    resp = client.get(f'/api/v1/budgets/{li.budget_id}/snapshots/baseline', headers=h)
    assert resp.status_code == 404
    assert resp.get_json()['message'] == 'Baseline snapshot not found'

    first = _snapshot(client, li.budget_id, officer, is_baseline=True).get_json()
    second = _snapshot(client, li.budget_id, officer, is_baseline=True).get_json()
    baseline = client.get(f'/api/v1/budgets/{li.budget_id}/snapshots/baseline', headers=h).get_json()
    assert baseline['id'] == second['id']
    assert client.get(f"/api/v1/budgets/snapshots/{first['id']}", headers=h).get_json()['is_baseline'] is False


def test_list_newest_first_with_type_filter(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    h = headers_for(officer)
    ids = [_snapshot(client, li.budget_id, officer, snapshot_type=t).get_json()['id'] for t in ('monthly', 'annual', 'monthly')]
    rows = client.get(f'/api/v1/budgets/{li.budget_id}/snapshots', headers=h).get_json()['data']
    assert [r['id'] for r in rows] == list(reversed(ids))
    assert 'data' not in rows[0]
    rows = client.get(f'/api/v1/budgets/{li.budget_id}/snapshots?snapshot_type=monthly', headers=h).get_json()['data']
    assert [r['id'] for r in rows] == [ids[2], ids[0]]
    assert client.get(f'/api/v1/budgets/{li.budget_id}/snapshots?date_from=nope', headers=h).status_code == 400


def test_compare_snapshots(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    h = headers_for(officer)
    before = _snapshot(client, li.budget_id, officer).get_json()
    create_expenditure(li, officer, '250', status=Expenditure.STATUS_APPROVED)
    added = create_line_item(li.budget, officer, amount='300')
    after = _snapshot(client, li.budget_id, officer).get_json()

    resp = client.get(f"/api/v1/budgets/snapshots/compare?from={before['id']}&to={after['id']}", headers=h)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['budget_changes'] == []
    comparison = body['line_item_comparison']
    assert [i['id'] for i in comparison['added']] == [added.id]
    assert comparison['removed'] == []
    assert comparison['modified'] == [{
        'id': li.id, 'code': li.code, 'name': li.name,
        'changes': [{'field': 'spent', 'old_value': 0.0, 'new_value': 250.0}],
    }]
    assert body['summary'] == {
        'total_items_from': 1, 'total_items_to': 2, 'added': 1, 'removed': 0, 'modified': 1, 'unchanged': 0,
    }


def test_compare_rejects_different_budgets(client):
    _, _, _, li = seed_spendable_line_item(amount='1000')
    _, _, _, other = seed_spendable_line_item(amount='1000')
    admin = seed_user_with_role('admin')
    one = _snapshot(client, li.budget_id, admin).get_json()
    two = _snapshot(client, other.budget_id, admin).get_json()
    h = headers_for(admin)
    resp = client.get(f"/api/v1/budgets/snapshots/compare?from={one['id']}&to={two['id']}", headers=h)
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Cannot compare snapshots from different budgets'
    resp = client.get(f"/api/v1/budgets/snapshots/compare?from={one['id']}&to=987654", headers=h)
    assert resp.status_code == 404
    resp = client.get(f"/api/v1/budgets/snapshots/compare?from={one['id']}", headers=h)
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'to required'
