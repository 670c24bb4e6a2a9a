import re
import uuid

import jwt
from fastapi.testclient import TestClient

from dronegarden.config import settings
from dronegarden.main import app

client = TestClient(app)


def _email():
    return f"client-{uuid.uuid4().hex[:8]}@example.com"


def test_register_login_and_me():
    email = _email()
    r = client.post('/api/auth/register', json={'email': email, 'password': 'pass123', 'name': 'Ana'})
    assert r.status_code == 201
    body = r.json()
    assert body['user']['email'] == email
    assert body['user']['role'] == 'client'
    assert body['token']

    r2 = client.post('/api/auth/login', json={'email': email.upper(), 'password': 'pass123'})
    assert r2.status_code == 200
    token = r2.json()['token']
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload['email'] == email

    r3 = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert r3.status_code == 200
    assert r3.json()['user']['is_admin'] is False


def test_duplicate_registration_rejected():
    email = _email()
    client.post('/api/auth/register', json={'email': email, 'password': 'pass123'})
    r = client.post('/api/auth/register', json={'email': email, 'password': 'pass123'})
    assert r.status_code == 400
    assert r.json() == {'error': 'email already registered'}


def test_short_password_is_a_400_with_error_shape():
    r = client.post('/api/auth/register', json={'email': _email(), 'password': '123'})
    assert r.status_code == 400
    assert 'password' in r.json()['error']


def test_wrong_password_and_missing_token():
    email = _email()
    client.post('/api/auth/register', json={'email': email, 'password': 'pass123'})
    r = client.post('/api/auth/login', json={'email': email, 'password': 'nope123'})
    assert r.status_code == 401
    assert r.json()['error'] == 'invalid credentials'

    assert client.get('/api/auth/me').status_code == 401
    bad = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert bad.status_code == 401
    assert bad.json() == {'error': 'invalid token'}


def test_admin_email_gets_admin_flag(admin_headers):
    r = client.get('/api/auth/me', headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['user']['is_admin'] is True


def test_change_password(user_headers):
    r = client.post('/api/auth/change-password', headers=user_headers,
                    json={'currentPassword': 'wrong1', 'newPassword': 'newpass1'})
    assert r.status_code == 400
    r2 = client.post('/api/auth/change-password', headers=user_headers,
                     json={'currentPassword': 'pass123', 'newPassword': 'newpass1'})
    assert r2.status_code == 200
    me = client.get('/api/auth/me', headers=user_headers).json()['user']
    login = client.post('/api/auth/login', json={'email': me['email'], 'password': 'newpass1'})
    assert login.status_code == 200


def test_profile_update_only_touches_given_fields(user_headers):
    r = client.put('/api/profile', headers=user_headers, json={'phone': '+34 600 000 000', 'language': 'en'})
    assert r.status_code == 200
    profile = r.json()['profile']
    assert profile['phone'] == '+34 600 000 000'
    assert profile['language'] == 'en'
    assert profile['name'] == 'Ana'

    r2 = client.put('/api/profile', headers=user_headers, json={'language': 'xx'})
    assert r2.status_code == 400


class _FakeMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html):
        self.sent.append((to, subject, html))
        return '<fake@dronegarden>'

    def verify(self):
        pass


def test_forgot_and_reset_password_single_use(monkeypatch):
    mailer = _FakeMailer()
    monkeypatch.setattr('dronegarden.main.get_mailer', lambda: mailer)
    email = _email()
    client.post('/api/auth/register', json={'email': email, 'password': 'pass123'})

    r = client.post('/api/auth/forgot-password', json={'email': email})
    assert r.status_code == 200
    assert len(mailer.sent) == 1
    token = re.search(r'token=([\w-]+)', mailer.sent[0][2]).group(1)

    r2 = client.post('/api/auth/reset-password', json={'token': token, 'newPassword': 'fresh123'})
    assert r2.status_code == 200
    assert client.post('/api/auth/login', json={'email': email, 'password': 'fresh123'}).status_code == 200

    # tokens are single use
    r3 = client.post('/api/auth/reset-password', json={'token': token, 'newPassword': 'again123'})
    assert r3.status_code == 400
    assert r3.json()['error'] == 'invalid or expired token'


def test_forgot_password_does_not_reveal_accounts(monkeypatch):
    mailer = _FakeMailer()
    monkeypatch.setattr('dronegarden.main.get_mailer', lambda: mailer)
    r = client.post('/api/auth/forgot-password', json={'email': 'nobody@example.com'})
    assert r.status_code == 200
    assert mailer.sent == []


def test_forgot_password_is_rate_limited(monkeypatch):
    monkeypatch.setattr('dronegarden.main.get_mailer', lambda: _FakeMailer())
    for _ in range(settings.FORGOT_PASSWORD_RATE_LIMIT):
        assert client.post('/api/auth/forgot-password', json={'email': 'x@example.com'}).status_code == 200
    r = client.post('/api/auth/forgot-password', json={'email': 'x@example.com'})
    assert r.status_code == 429
    assert 'Retry-After' in r.headers


def test_health():
    r = client.get('/api/health')
    assert r.json() == {'status': 'ok', 'service': 'DroneGarden API'}
    assert 'X-Request-ID' in r.headers
