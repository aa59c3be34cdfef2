from tests.test_utils_seed import create_budget, ensure_mda
from tests.test_lifecycle_helpers import headers_for, jwt_headers, seed_staffed_mda, seed_spendable_line_item


def test_missing_permission_is_forbidden(client):
    mda, officer, _ = seed_staffed_mda()
    h = headers_for(officer, ['BUDGET.READ'])
    resp = client.post('/api/v1/budgets', json={'mda_id': mda.id, 'code': 'X', 'title': 'X', 'fiscal_year': 2026,
                                                 'total_amount': 10}, headers=h)
    assert resp.status_code == 403
    assert resp.get_json()['message'] == 'Missing permission'
    assert client.get('/api/v1/audit/logs', headers=h).status_code == 403
    assert client.get('/api/v1/users', headers=h).status_code == 403


def test_mda_scope_blocks_foreign_records(client):
    mda, officer, director, li = seed_spendable_line_item()
    foreign = seed_staffed_mda()[1]
    h = headers_for(foreign)
    for url in (f'/api/v1/budgets/{li.budget_id}', f'/api/v1/line-items/{li.id}', f'/api/v1/line-items/{li.id}/utilization'):
        resp = client.get(url, headers=h)
        assert resp.status_code == 403
        assert resp.get_json()['message'] == 'MDA access denied'
    resp = client.post('/api/v1/expenditures', json={'budget_line_item_id': li.id, 'amount': 5, 'description': 'x'}, headers=h)
    assert resp.status_code == 403


def test_cannot_create_budget_for_other_mda(client):
    mda, officer, _ = seed_staffed_mda()
    other = ensure_mda()
    resp = client.post('/api/v1/budgets', json={'mda_id': other.id, 'code': 'B-OTHER', 'title': 'Other', 'fiscal_year': 2026,
                                                 'total_amount': 100}, headers=headers_for(officer))
    assert resp.status_code == 403


def test_unscoped_user_sees_every_mda(client):
    mda, officer, _ = seed_staffed_mda()
    budget = create_budget(mda, officer)
    resp = client.get(f'/api/v1/budgets/{budget.id}', headers=jwt_headers(officer.id, mda_id=None))
    assert resp.status_code == 200
