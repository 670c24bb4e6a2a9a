import pytest

from dronegarden.offline.cache import CACHE_TTL_MS, CacheKeys, PersistentCache
from dronegarden.offline.storage import JsonFileStorage, MemoryStorage


class Clock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


def test_set_get_roundtrip_and_timestamp():
    clock = Clock()
    cache = PersistentCache(MemoryStorage(), clock=clock)
    cache.set(CacheKeys.SERVICE_REQUESTS, [{'id': 1, 'status': 'pending'}])
    assert cache.get(CacheKeys.SERVICE_REQUESTS) == [{'id': 1, 'status': 'pending'}]
    assert cache.get_timestamp(CacheKeys.SERVICE_REQUESTS) == clock.now
    assert cache.get('never_set') is None
    assert cache.get_timestamp('never_set') is None


def test_entries_expire_after_ttl_and_are_removed():
    clock = Clock()
    storage = MemoryStorage()
    cache = PersistentCache(storage, clock=clock)
    cache.set('k', {'a': 1})

    clock.now += CACHE_TTL_MS
    assert cache.get('k') == {'a': 1}  # exactly at the TTL is still fresh

    clock.now += 1
    assert cache.get('k') is None
    assert storage.get_item('app_cache_k') is None
    # expiry is idempotent
    assert cache.get('k') is None


def test_clear_only_touches_prefixed_keys():
    storage = MemoryStorage()
    storage.set_item('auth_token', 'jwt')
    cache = PersistentCache(storage)
    cache.set(CacheKeys.USER, {'user': {'id': 1}})
    cache.set(CacheKeys.USERS, [])
    cache.clear()
    assert list(storage.keys()) == ['auth_token']


def test_malformed_entries_read_as_missing():
    storage = MemoryStorage()
    cache = PersistentCache(storage)
    storage.set_item('app_cache_bad', '{not json')
    storage.set_item('app_cache_shape', '{"data": 1}')
    assert cache.get('bad') is None
    assert cache.get('shape') is None


def test_quota_errors_are_swallowed():
    storage = MemoryStorage(quota_bytes=64)
    cache = PersistentCache(storage)
    cache.set('big', 'x' * 500)
    assert cache.get('big') is None
    cache.set('small', 1)
    assert cache.get('small') == 1


def test_unserializable_data_is_not_stored():
    cache = PersistentCache(MemoryStorage())
    cache.set('obj', object())
    assert cache.get('obj') is None


def test_file_storage_survives_restart(tmp_path):
    path = tmp_path / 'client' / 'storage.json'
    cache = PersistentCache(JsonFileStorage(path))
    cache.set(CacheKeys.ALL_SERVICE_REQUESTS, [{'id': 7}])

    reopened = PersistentCache(JsonFileStorage(path))
    assert reopened.get(CacheKeys.ALL_SERVICE_REQUESTS) == [{'id': 7}]


def test_file_storage_starts_empty_on_garbage(tmp_path):
    path = tmp_path / 'storage.json'
    path.write_text('garbage')
    storage = JsonFileStorage(path)
    assert list(storage.keys()) == []


def test_failed_flush_leaves_memory_and_disk_unchanged(tmp_path, monkeypatch):
    path = tmp_path / 'storage.json'
    storage = JsonFileStorage(path)
    storage.set_item('auth_token', 'jwt-1')

    def broken_replace(src, dst):
        raise OSError('disk full')

    monkeypatch.setattr('dronegarden.offline.storage.os.replace', broken_replace)
    with pytest.raises(OSError):
        storage.set_item('auth_token', 'jwt-2')
    with pytest.raises(OSError):
        storage.remove_item('auth_token')

    assert storage.get_item('auth_token') == 'jwt-1'
    assert JsonFileStorage(path).get_item('auth_token') == 'jwt-1'
    assert [p.name for p in tmp_path.iterdir()] == ['storage.json']
