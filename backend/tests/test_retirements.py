from budget_tracker import get_db
from budget_tracker.models.expenditure import Expenditure
from budget_tracker.models.notification import Notification
from tests.test_utils_seed import create_expenditure, seed_user_with_role
from tests.test_lifecycle_helpers import headers_for, seed_spendable_line_item


def _approved_expenditure(amount='10000'):
    mda, officer, director, li = seed_spendable_line_item(amount='100000')
    exp = create_expenditure(li, officer, amount, status=Expenditure.STATUS_APPROVED)
    return mda, officer, director, exp


def _create(client, exp, user, amount=8000, **over):
    payload = {'expenditure_id': exp.id, 'amount_retired': amount, 'purpose': 'Workshop logistics'}
    payload.update(over)
    return client.post('/api/v1/retirements', json=payload, headers=headers_for(user))


def test_create_computes_unretired_balance(client):
    mda, officer, director, exp = _approved_expenditure()
    resp = _create(client, exp, officer, amount=8000)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'draft'
    assert body['amount_retired'] == 8000.0
    assert body['balance_unretired'] == 2000.0
    assert body['retirement_number'].startswith('RET-')


def test_create_guards(client):
    mda, officer, director, exp = _approved_expenditure()
    resp = _create(client, exp, officer, amount=10000.01)
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Amount retired cannot exceed expenditure amount'
    assert _create(client, exp, officer).status_code == 201
    resp = _create(client, exp, officer)
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Retirement already exists for this expenditure'

    draft = create_expenditure(exp.line_item, officer, '500')
    resp = _create(client, draft, officer, amount=100)
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Only approved expenditures can be retired'


def test_update_cannot_exceed_expenditure_amount(client):
    mda, officer, director, exp = _approved_expenditure()
    ret = _create(client, exp, officer, amount=8000).get_json()
    base = f"/api/v1/retirements/{ret['id']}"
    resp = client.put(base, json={'amount_retired': 10000.01}, headers=headers_for(officer))
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Amount retired cannot exceed expenditure amount'
    body = client.get(base, headers=headers_for(officer)).get_json()
    assert body['status'] == 'draft'
    assert body['amount_retired'] == 8000.0
    assert body['balance_unretired'] == 2000.0


def test_full_lifecycle(client):
    mda, officer, director, exp = _approved_expenditure()
    reviewer = seed_user_with_role('budget_reviewer', mda_id=mda.id)
    ret = _create(client, exp, officer).get_json()
    base = f"/api/v1/retirements/{ret['id']}"

    resp = client.put(base, json={'amount_retired': 10000, 'remarks': 'All receipts attached'}, headers=headers_for(officer))
    assert resp.status_code == 200
    assert resp.get_json()['balance_unretired'] == 0.0

    resp = client.post(f'{base}/submit', headers=headers_for(officer))
    assert resp.get_json()['status'] == 'submitted'
    notified = {n.user_id for n in get_db().query(Notification).filter_by(reference_type='retirement', reference_id=ret['id'])}
    assert {reviewer.id, director.id} <= notified

    resp = client.put(base, json={'amount_retired': 1}, headers=headers_for(officer))
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Only draft retirements can be updated'

    resp = client.post(f'{base}/review', json={'status': 'under_review', 'remarks': 'Checking'}, headers=headers_for(reviewer))
    assert resp.get_json()['status'] == 'under_review'
    assert resp.get_json()['reviewed_by'] == reviewer.id
    resp = client.post(f'{base}/approve', headers=headers_for(director))
    assert resp.get_json()['status'] == 'approved'
    assert resp.get_json()['approved_by'] == director.id
    resp = client.post(f'{base}/complete', headers=headers_for(director))
    assert resp.get_json()['status'] == 'completed'

    # completed is terminal
    resp = client.post(f'{base}/reject', json={'rejection_reason': 'late'}, headers=headers_for(director))
    assert resp.status_code == 409


def test_invalid_transitions(client):
    mda, officer, director, exp = _approved_expenditure()
    ret = _create(client, exp, officer).get_json()
    base = f"/api/v1/retirements/{ret['id']}"
    h = headers_for(director)
    assert client.post(f'{base}/approve', headers=h).status_code == 409
    assert client.post(f'{base}/complete', headers=h).status_code == 409
    client.post(f'{base}/submit', headers=headers_for(officer))
    resp = client.post(f'{base}/review', json={'status': 'approved'}, headers=h)
    assert resp.status_code == 400
    resp = client.post(f'{base}/reject', json={}, headers=h)
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Rejection reason is required'
    resp = client.post(f'{base}/reject', json={'rejection_reason': 'Receipts missing'}, headers=h)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'rejected'
    assert body['rejection_reason'] == 'Receipts missing'
    note = get_db().query(Notification).filter_by(user_id=officer.id, reference_type='retirement', reference_id=ret['id']).one()
    assert note.type == Notification.TYPE_REJECTION


def test_stats_by_mda(client):
    mda, officer, director, exp = _approved_expenditure()
    _create(client, exp, officer, amount=4000)
    stats = client.get(f'/api/v1/retirements/stats?mda_id={mda.id}', headers=headers_for(officer)).get_json()
    assert stats == {
        'total_retirements': 1,
        'approved_retirements': 0,
        'pending_retirements': 0,
        'total_amount_retired': 4000.0,
    }
    listing = client.get(f'/api/v1/retirements?mda_id={mda.id}&status=draft', headers=headers_for(officer)).get_json()
    assert listing['pagination']['total'] == 1
