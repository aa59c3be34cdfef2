from budget_tracker import get_db
from budget_tracker.models.audit import AuditLog
from tests.test_utils_seed import ensure_permissions, ensure_role, ensure_mda, seed_user_with_role, unique
from tests.test_lifecycle_helpers import jwt_headers, headers_for

ADMIN_PERMS = ['ADMIN.ROLE.MANAGE', 'ADMIN.USER.MANAGE', 'ADMIN.AUDIT.READ']


def _admin_headers():
    ensure_permissions(ADMIN_PERMS + ['BUDGET.READ', 'EXP.READ'])
    admin = seed_user_with_role('admin')
    return admin, headers_for(admin, ADMIN_PERMS)


def test_role_crud_flow(client):
    admin, h = _admin_headers()
    name = unique('auditor')
    resp = client.post('/api/v1/roles', json={'name': name, 'description': 'Read only'}, headers=h)
    assert resp.status_code == 201, resp.get_json()
    role_id = resp.get_json()['id']
    assert client.post('/api/v1/roles', json={'name': name}, headers=h).status_code == 400

    resp = client.put(f'/api/v1/roles/{role_id}/permissions', json={'permissions': ['BUDGET.READ', 'EXP.READ']}, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['permissions'] == ['BUDGET.READ', 'EXP.READ']
    bad = client.put(f'/api/v1/roles/{role_id}/permissions', json={'permissions': ['NOPE.READ']}, headers=h)
    assert bad.status_code == 400

    roles = client.get('/api/v1/roles?limit=100', headers=h).get_json()['data']
    created = next(r for r in roles if r['id'] == role_id)
    assert created['permissions'] == ['BUDGET.READ', 'EXP.READ']

    audit = get_db().query(AuditLog).filter(AuditLog.action == 'ROLE.CREATE', AuditLog.entity_id == str(role_id)).one()
    assert audit.actor_user_id == admin.id
    assert audit.meta == {'name': name}


def test_user_creation_and_role_assignment(client):
    admin, h = _admin_headers()
    ensure_role('director')
    ensure_role('budget_officer')
    mda = ensure_mda()
    email = f"{unique('new')}@example.com"
    resp = client.post('/api/v1/users', json={
        'email': email, 'password': 'secret', 'first_name': 'Grace', 'last_name': 'Obi',
        'mda_id': mda.id, 'roles': ['budget_officer'],
    }, headers=h)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['name'] == 'Grace Obi'
    assert body['roles'] == ['budget_officer']
    assert body['mda_id'] == mda.id

    assert client.post('/api/v1/users', json={'email': email, 'password': 'x', 'first_name': 'Dup'}, headers=h).status_code == 400
    resp = client.post('/api/v1/users', json={'email': f"{unique('x')}@example.com", 'password': 'x', 'first_name': 'X',
                                              'roles': ['wizard']}, headers=h)
    assert resp.status_code == 400

    resp = client.put(f"/api/v1/users/{body['id']}/roles", json={'roles': ['director']}, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['roles'] == ['director']

    listed = client.get(f'/api/v1/users?mda_id={mda.id}&role=director', headers=h).get_json()
    assert [u['id'] for u in listed['data']] == [body['id']]
    login = client.post('/api/v1/auth/login', json={'email': email, 'password': 'secret'})
    assert login.status_code == 200


def test_audit_log_listing(client):
    admin, h = _admin_headers()
    client.post('/api/v1/roles', json={'name': unique('temp')}, headers=h)
    resp = client.get(f'/api/v1/audit/logs?actor_user_id={admin.id}&action=ROLE.CREATE', headers=h)
    assert resp.status_code == 200
    rows = resp.get_json()['data']
    assert rows and all(r['action'] == 'ROLE.CREATE' for r in rows)
    assert rows[0]['ip_address'] == '127.0.0.1'

    no_audit = jwt_headers(admin.id, ['ADMIN.ROLE.MANAGE'])
    assert client.get('/api/v1/audit/logs', headers=no_audit).status_code == 403


def test_failed_mutation_is_not_audited(client):
    admin, h = _admin_headers()
    before = get_db().query(AuditLog).filter(AuditLog.action == 'ROLE.CREATE').count()
    assert client.post('/api/v1/roles', json={}, headers=h).status_code == 400
    assert get_db().query(AuditLog).filter(AuditLog.action == 'ROLE.CREATE').count() == before
