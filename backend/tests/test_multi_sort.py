from tests.test_utils_seed import create_budget, create_line_item
from tests.test_lifecycle_helpers import headers_for, seed_staffed_mda


def test_line_items_multi_sort(client):
    mda, officer, _ = seed_staffed_mda()
    budget = create_budget(mda, officer)
    a = create_line_item(budget, officer, amount='500')
    b = create_line_item(budget, officer, amount='500')
    c = create_line_item(budget, officer, amount='900')
    h = headers_for(officer)
    resp = client.get(f'/api/v1/line-items?budget_id={budget.id}&sort=-amount,id', headers=h)
    assert resp.status_code == 200
    assert [li['id'] for li in resp.get_json()['data']] == [c.id, a.id, b.id]


def test_default_sort_is_newest_first(client):
    mda, officer, _ = seed_staffed_mda()
    first = create_budget(mda, officer)
    second = create_budget(mda, officer)
    resp = client.get(f'/api/v1/budgets?mda_id={mda.id}', headers=headers_for(officer))
    assert [b['id'] for b in resp.get_json()['data']] == [second.id, first.id]


def test_unknown_sort_field_rejected(client):
    mda, officer, _ = seed_staffed_mda()
    resp = client.get('/api/v1/budgets?sort=-password', headers=headers_for(officer))
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Invalid sort field password'
