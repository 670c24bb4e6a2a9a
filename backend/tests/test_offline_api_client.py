import uuid

import httpx
import pytest

from dronegarden.offline.api_client import CONNECTIVITY_ERROR, GENERIC_ERROR, ApiClient, ApiError
from dronegarden.offline.cache import CacheKeys
from dronegarden.offline.network import NetworkStatusMonitor
from dronegarden.offline.storage import MemoryStorage


class FakeBackend:
    """Routes requests to canned responses; `down` simulates a dead network."""

    def __init__(self):
        self.down = False
        self.routes = {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError('connection refused', request=request)
        return self.routes[(request.method, request.url.path)]()


def make_client(backend, storage=None):
    return ApiClient(
        base_url='http://api.test/api',
        storage=storage or MemoryStorage(),
        monitor=NetworkStatusMonitor(),
        transport=httpx.MockTransport(backend),
    )


@pytest.mark.asyncio
async def test_login_stores_token_and_sends_bearer():
    backend = FakeBackend()
    backend.routes[('POST', '/api/auth/login')] = lambda: httpx.Response(200, json={'user': {'id': 1}, 'token': 'jwt-1'})
    backend.routes[('GET', '/api/service-requests')] = lambda: httpx.Response(200, json=[])
    async with make_client(backend) as api:
        await api.login('a@example.com', 'pass123')
        assert api.get_token() == 'jwt-1'
        assert api.cache.get(CacheKeys.USER) == {'user': {'id': 1}}
        await api.get_my_requests()
    assert backend.requests[-1].headers['Authorization'] == 'Bearer jwt-1'


@pytest.mark.asyncio
async def test_offline_read_falls_back_to_cache():
    backend = FakeBackend()
    backend.routes[('GET', '/api/service-requests')] = lambda: httpx.Response(200, json=[{'id': 3}])
    async with make_client(backend) as api:
        assert await api.get_my_requests() == [{'id': 3}]

        backend.down = True
        assert await api.get_my_requests() == [{'id': 3}]
        assert not api.monitor.is_online

        backend.down = False
        await api.get_my_requests()
        assert api.monitor.is_online and api.monitor.was_offline


@pytest.mark.asyncio
async def test_offline_without_cache_raises_connectivity_error():
    backend = FakeBackend()
    backend.down = True
    async with make_client(backend) as api:
        with pytest.raises(ApiError) as excinfo:
            await api.list_users()
    assert excinfo.value.is_connectivity_error
    assert excinfo.value.message == CONNECTIVITY_ERROR


@pytest.mark.asyncio
async def test_server_errors_are_not_masked_by_cache():
    backend = FakeBackend()
    backend.routes[('GET', '/api/admin/service-requests')] = lambda: httpx.Response(200, json=[{'id': 1}])
    async with make_client(backend) as api:
        await api.get_all_requests()
        backend.routes[('GET', '/api/admin/service-requests')] = lambda: httpx.Response(500, json={'error': 'db down'})
        with pytest.raises(ApiError) as excinfo:
            await api.get_all_requests()
    assert excinfo.value.status_code == 500
    assert excinfo.value.message == 'db down'


@pytest.mark.asyncio
async def test_error_message_fallbacks():
    backend = FakeBackend()
    backend.routes[('POST', '/api/service-requests')] = lambda: httpx.Response(422, json={'detail': 'bad date'})
    backend.routes[('GET', '/api/profile')] = lambda: httpx.Response(502, text='<html>gateway</html>')
    async with make_client(backend) as api:
        with pytest.raises(ApiError, match='bad date'):
            await api.create_service_request({'service': 'mapping'})
        with pytest.raises(ApiError) as excinfo:
            await api.get_profile()
    assert excinfo.value.message == GENERIC_ERROR


@pytest.mark.asyncio
async def test_current_user_drops_invalid_session():
    storage = MemoryStorage()
    storage.set_item('auth_token', 'stale')
    backend = FakeBackend()
    backend.routes[('GET', '/api/auth/me')] = lambda: httpx.Response(401, json={'error': 'token expired'})
    async with make_client(backend, storage) as api:
        assert await api.get_current_user() is None
        assert not api.has_token()
        # no token means no request at all
        assert await api.get_current_user() is None
    assert len(backend.requests) == 1


@pytest.mark.asyncio
async def test_current_user_served_from_cache_offline():
    backend = FakeBackend()
    backend.routes[('GET', '/api/auth/me')] = lambda: httpx.Response(200, json={'user': {'id': 9, 'is_admin': False}})
    async with make_client(backend) as api:
        api.set_token('jwt')
        assert (await api.get_current_user())['id'] == 9
        backend.down = True
        assert (await api.get_current_user())['id'] == 9


@pytest.mark.asyncio
async def test_logout_clears_session_even_offline():
    storage = MemoryStorage()
    backend = FakeBackend()
    backend.down = True
    async with make_client(backend, storage) as api:
        api.set_token('jwt')
        api.cache.set(CacheKeys.SERVICE_REQUESTS, [{'id': 1}])
        await api.logout()
        assert not api.has_token()
    assert list(storage.keys()) == []


@pytest.mark.asyncio
async def test_client_against_the_real_app():
    from dronegarden.main import app

    email = f"field-{uuid.uuid4().hex[:8]}@example.com"
    async with ApiClient(base_url='http://testserver/api', transport=httpx.ASGITransport(app=app)) as api:
        await api.register(email, 'pass123', 'Marta')
        user = await api.get_current_user()
        assert user['email'] == email

        await api.create_service_request({
            'service': 'elevation',
            'scheduledDate': '2026-07-01',
            'scheduledTime': '08:30',
            'name': 'Marta',
            'email': email,
            'phone': '+48500100200',
            'location': 'Poznań',
        })
        requests = await api.get_my_requests()
        assert [r['service'] for r in requests] == ['elevation']
        assert api.cache.get(CacheKeys.SERVICE_REQUESTS) == requests

        with pytest.raises(ApiError) as excinfo:
            await api.list_users()
        assert excinfo.value.status_code == 403
        assert excinfo.value.message == 'admin access required'
