import uuid

from fastapi.testclient import TestClient

from dronegarden.main import app

client = TestClient(app)


def _booking(**overrides):
    body = {
        'service': 'fumigation',
        'scheduledDate': '2026-05-10',
        'scheduledTime': '09:00',
        'name': 'Finca Los Olivos',
        'email': 'olivos@example.com',
        'phone': '+34600111222',
        'location': 'Jaén',
        'area': '12',
    }
    body.update(overrides)
    return body


def test_client_books_and_lists_own_requests(user_headers):
    r = client.post('/api/service-requests', headers=user_headers, json=_booking())
    assert r.status_code == 201
    created = r.json()
    assert created['status'] == 'pending'
    assert created['scheduledDate'] == '2026-05-10'

    mine = client.get('/api/service-requests', headers=user_headers).json()
    assert [req['id'] for req in mine] == [created['id']]


def test_booking_validation(user_headers):
    r = client.post('/api/service-requests', headers=user_headers, json=_booking(service='crop-dusting'))
    assert r.status_code == 400
    assert 'unknown service' in r.json()['error']
    r2 = client.post('/api/service-requests', headers=user_headers, json=_booking(location='  '))
    assert r2.status_code == 400
    # unauthenticated
    assert client.post('/api/service-requests', json=_booking()).status_code == 401


def test_non_admin_gets_403_on_admin_routes(user_headers):
    for path in ('/api/admin/service-requests', '/api/admin/users', '/api/config'):
        r = client.get(path, headers=user_headers)
        assert r.status_code == 403
        assert r.json() == {'error': 'admin access required'}


def test_admin_status_workflow(user_headers, admin_headers):
    req = client.post('/api/service-requests', headers=user_headers, json=_booking(service='mapping')).json()

    r = client.put(f"/api/admin/service-requests/{req['id']}/status", headers=admin_headers, json={'status': 'confirmed'})
    assert r.status_code == 200
    assert r.json()['request']['status'] == 'confirmed'

    bad = client.put(f"/api/admin/service-requests/{req['id']}/status", headers=admin_headers, json={'status': 'lost'})
    assert bad.status_code == 400
    missing = client.put('/api/admin/service-requests/999999/status', headers=admin_headers, json={'status': 'confirmed'})
    assert missing.status_code == 404

    all_ids = [r['id'] for r in client.get('/api/admin/service-requests', headers=admin_headers).json()]
    assert req['id'] in all_ids

    assert client.delete(f"/api/admin/service-requests/{req['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/service-requests/{req['id']}", headers=admin_headers).status_code == 404


def test_admin_user_management(admin_headers):
    email = f"managed-{uuid.uuid4().hex[:8]}@example.com"
    r = client.post('/api/admin/users', headers=admin_headers, json={'email': email, 'password': 'pass123', 'name': 'Jan'})
    assert r.status_code == 201
    user = r.json()['user']
    assert user['role'] == 'client'

    emails = [u['email'] for u in client.get('/api/admin/users', headers=admin_headers).json()]
    assert email in emails

    r2 = client.put(f"/api/admin/users/{user['id']}/password", headers=admin_headers, json={'newPassword': 'other123'})
    assert r2.status_code == 200
    assert client.post('/api/auth/login', json={'email': email, 'password': 'other123'}).status_code == 200

    assert client.delete(f"/api/admin/users/{user['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/users/{user['id']}", headers=admin_headers).status_code == 404


def test_admin_cannot_delete_self(admin_headers):
    me = client.get('/api/auth/me', headers=admin_headers).json()['user']
    r = client.delete(f"/api/admin/users/{me['id']}", headers=admin_headers)
    assert r.status_code == 400


def test_send_reset_without_smtp_is_500(admin_headers, user_headers):
    me = client.get('/api/auth/me', headers=user_headers).json()['user']
    r = client.post(f"/api/admin/users/{me['id']}/send-reset", headers=admin_headers)
    assert r.status_code == 500
    assert r.json() == {'error': 'could not send the reset email'}


def test_clients_only_see_their_own_requests(user_headers):
    other = client.post('/api/auth/register', json={'email': f"other-{uuid.uuid4().hex[:8]}@example.com", 'password': 'pass123'})
    other_headers = {'Authorization': f"Bearer {other.json()['token']}"}
    client.post('/api/service-requests', headers=other_headers, json=_booking(service='rental'))

    assert client.get('/api/service-requests', headers=user_headers).json() == []
    assert len(client.get('/api/service-requests', headers=other_headers).json()) == 1
