from budget_tracker.models.budget import Budget, BudgetLineItem
from budget_tracker.models.expenditure import Expenditure
from tests.test_utils_seed import create_budget, create_expenditure, create_line_item, seed_user_with_role
from tests.test_lifecycle_helpers import headers_for, seed_staffed_mda, seed_spendable_line_item


def _approved_budget(mda, officer, total, fiscal_year):
    budget = create_budget(mda, officer, total_amount=total, status=Budget.STATUS_APPROVED, fiscal_year=fiscal_year)
    return budget, create_line_item(budget, officer, amount=total)


def test_budget_vs_actual_counts_only_approved_spend(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    budget = li.budget
    capital = create_line_item(budget, officer, amount='500', category=BudgetLineItem.CATEGORY_CAPITAL)
    create_expenditure(li, officer, '250', status=Expenditure.STATUS_APPROVED)
    create_expenditure(li, officer, '100', status=Expenditure.STATUS_SUBMITTED)
    create_expenditure(capital, officer, '500', status=Expenditure.STATUS_APPROVED)

    resp = client.get(f'/api/v1/dashboard/budgets/{budget.id}/vs-actual', headers=headers_for(officer))
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['budget']['id'] == budget.id
    assert body['budget']['total_budget'] == 1500.0
    assert body['budget']['total_spent'] == 750.0
    assert body['budget']['total_remaining'] == 750.0
    assert body['budget']['total_utilization_percentage'] == 50.0
    assert [i['id'] for i in body['line_items']] == [li.id, capital.id]
    assert body['line_items'][0]['amount_spent'] == 250.0
    assert body['line_items'][0]['amount_remaining'] == 750.0
    assert body['line_items'][0]['utilization_percentage'] == 25.0
    assert body['line_items'][1]['utilization_percentage'] == 100.0


def test_budget_vs_actual_guards(client):
    mda, officer, director, li = seed_spendable_line_item(amount='1000')
    resp = client.get('/api/v1/dashboard/budgets/987654/vs-actual', headers=headers_for(officer))
    assert resp.status_code == 404
    assert resp.get_json()['message'] == 'Budget not found'
    _, outsider, _ = seed_staffed_mda(with_director=False)
    resp = client.get(f'/api/v1/dashboard/budgets/{li.budget_id}/vs-actual', headers=headers_for(outsider))
    assert resp.status_code == 403


def test_execution_rate_per_budget(client):
    mda, officer, _ = seed_staffed_mda(with_director=False)
    big, big_li = _approved_budget(mda, officer, '2000', 2031)
    small, small_li = _approved_budget(mda, officer, '1000', 2031)
    _approved_budget(mda, officer, '5000', 2030)
    create_expenditure(big_li, officer, '500', status=Expenditure.STATUS_APPROVED)
    create_expenditure(small_li, officer, '600', status=Expenditure.STATUS_APPROVED)
    create_expenditure(small_li, officer, '300', status=Expenditure.STATUS_REJECTED)

    resp = client.get('/api/v1/dashboard/execution-rate?fiscal_year=2031', headers=headers_for(officer))
    assert resp.status_code == 200
    rows = resp.get_json()['data']
    assert [r['id'] for r in rows] == [big.id, small.id]
    assert rows[0]['total_spent'] == 500.0
    assert rows[0]['execution_rate'] == 25.0
    assert rows[1]['total_spent'] == 600.0
    assert rows[1]['execution_rate'] == 60.0
    assert client.get('/api/v1/dashboard/execution-rate?fiscal_year=abc', headers=headers_for(officer)).status_code == 400


def test_utilization_by_mda_is_scoped(client):
    mda_a, officer_a, _ = seed_staffed_mda(with_director=False)
    mda_b, officer_b, _ = seed_staffed_mda(with_director=False)
    _, li_a = _approved_budget(mda_a, officer_a, '1000', 2032)
    _approved_budget(mda_a, officer_a, '1000', 2032)
    _, li_b = _approved_budget(mda_b, officer_b, '4000', 2032)
    create_expenditure(li_a, officer_a, '500', status=Expenditure.STATUS_APPROVED)
    create_expenditure(li_b, officer_b, '1000', status=Expenditure.STATUS_APPROVED)

    rows = client.get('/api/v1/dashboard/utilization-by-mda?fiscal_year=2032', headers=headers_for(officer_a)).get_json()['data']
    assert rows == [{
        'mda_id': mda_a.id,
        'mda_name': mda_a.name,
        'mda_code': mda_a.code,
        'total_budget': 2000.0,
        'total_spent': 500.0,
        'utilization_percentage': 25.0,
    }]
    resp = client.get(f'/api/v1/dashboard/utilization-by-mda?mda_id={mda_b.id}', headers=headers_for(officer_a))
    assert resp.status_code == 403

    admin = seed_user_with_role('admin')
    rows = client.get('/api/v1/dashboard/utilization-by-mda?fiscal_year=2032', headers=headers_for(admin)).get_json()['data']
    mine = {r['mda_id']: r for r in rows if r['mda_id'] in (mda_a.id, mda_b.id)}
    assert mine[mda_b.id]['utilization_percentage'] == 25.0
    assert [r['mda_name'] for r in rows] == sorted(r['mda_name'] for r in rows)
