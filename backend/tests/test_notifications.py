from budget_tracker.models.notification import Notification
from budget_tracker.services import notifications
from tests.test_utils_seed import seed_user_with_role
from tests.test_lifecycle_helpers import headers_for


def _seed_inbox(user, count=3):
    return [notifications.create_notification(user.id, f'Note {i}', f'Body {i}') for i in range(count)]


def test_list_newest_first_and_unread_filter(client):
    user = seed_user_with_role('budget_officer')
    notes = _seed_inbox(user, 3)
    notifications.mark_as_read(notes[0].id, user.id)
    h = headers_for(user)

    body = client.get('/api/v1/notifications', headers=h).get_json()
    assert body['pagination']['total'] == 3
    assert [n['id'] for n in body['data']] == [notes[2].id, notes[1].id, notes[0].id]

    body = client.get('/api/v1/notifications?unread_only=true&limit=1', headers=h).get_json()
    assert body['pagination'] == {'total': 2, 'limit': 1, 'offset': 0, 'returned': 1}
    assert body['data'][0]['is_read'] is False
    assert client.get('/api/v1/notifications?limit=abc', headers=h).status_code == 400


def test_mark_read_is_owner_only(client):
    owner = seed_user_with_role('budget_officer')
    other = seed_user_with_role('budget_officer')
    note = _seed_inbox(owner, 1)[0]
    assert client.put(f'/api/v1/notifications/{note.id}/read', headers=headers_for(other)).status_code == 404
    resp = client.put(f'/api/v1/notifications/{note.id}/read', headers=headers_for(owner))
    assert resp.status_code == 200
    assert resp.get_json()['is_read'] is True
    assert resp.get_json()['read_at'] is not None


def test_read_all_and_stats(client):
    user = seed_user_with_role('budget_officer')
    _seed_inbox(user, 7)
    h = headers_for(user)
    stats = client.get('/api/v1/notifications/stats', headers=h).get_json()
    assert stats['total'] == 7
    assert stats['unread'] == 7
    assert len(stats['recent_unread']) == 5

    assert client.put('/api/v1/notifications/read-all', headers=h).get_json() == {'updated': 7}
    stats = client.get('/api/v1/notifications/stats', headers=h).get_json()
    assert (stats['unread'], stats['recent_unread']) == (0, [])


def test_failed_delivery_is_swallowed(app_context, monkeypatch):
    user = seed_user_with_role('budget_officer')

    def boom(*args, **kwargs):
        raise RuntimeError('smtp down')

    monkeypatch.setattr(notifications, 'create_notification', boom)
    notifications.notify_approval_complete(user.id, 'budget', 1)
    monkeypatch.undo()
    assert notifications.list_for_user(user.id)[1] == 0


def test_rejection_template_includes_reason(app_context):
    user = seed_user_with_role('budget_officer')
    notifications.notify_rejection(user.id, 'expenditure', 42, 'Duplicate voucher')
    rows, total = notifications.list_for_user(user.id)
    assert total == 1
    assert rows[0].type == Notification.TYPE_REJECTION
    assert rows[0].title == 'Expenditure Rejected - #42'
    assert rows[0].message.endswith('Reason: Duplicate voucher')
