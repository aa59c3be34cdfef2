from tests.test_utils_seed import create_budget, ensure_mda
from tests.test_lifecycle_helpers import headers_for, seed_staffed_mda


def test_budget_filters(client):
    mda, officer, _ = seed_staffed_mda()
    h = headers_for(officer)
    create_budget(mda, officer, fiscal_year=2025)
    create_budget(mda, officer, fiscal_year=2026, status='approved')
    create_budget(mda, officer, fiscal_year=2026)

    by_year = client.get('/api/v1/budgets?fiscal_year=2026', headers=h).get_json()
    assert by_year['pagination']['total'] == 2
    approved = client.get('/api/v1/budgets?status=approved', headers=h).get_json()
    assert [b['status'] for b in approved['data']] == ['approved']
    # empty values are ignored
    assert client.get('/api/v1/budgets?status=', headers=h).get_json()['pagination']['total'] == 3
    assert client.get('/api/v1/budgets?status=archived', headers=h).status_code == 400
    assert client.get('/api/v1/budgets?fiscal_year=abc', headers=h).status_code == 400


def test_budget_search_matches_code_case_insensitively(client):
    mda, officer, _ = seed_staffed_mda()
    budget = create_budget(mda, officer)
    h = headers_for(officer)
    hit = client.get(f'/api/v1/budgets?search={budget.code.lower()}', headers=h).get_json()
    assert [b['id'] for b in hit['data']] == [budget.id]


def test_list_is_scoped_to_callers_mda(client):
    mda, officer, _ = seed_staffed_mda()
    other = ensure_mda()
    create_budget(mda, officer)
    create_budget(other, officer)
    body = client.get('/api/v1/budgets', headers=headers_for(officer)).get_json()
    assert {b['mda_id'] for b in body['data']} == {mda.id}
    # an explicit filter for another MDA still stays inside the caller's scope
    body = client.get(f'/api/v1/budgets?mda_id={other.id}', headers=headers_for(officer)).get_json()
    assert body['pagination']['total'] == 0
