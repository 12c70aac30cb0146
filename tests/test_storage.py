import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tourist_sentinel.exceptions import StorageError
from tourist_sentinel.schemas import SessionSnapshot
from tourist_sentinel.storage import InMemoryStore, RedisStore

from testkit.builders import fix_at, profile, walk


class _StubRedis:
    def __init__(self, fail: bool = False):
        self.data = {}
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def set(self, key, value):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data[key] = value

    async def close(self):
        return None


def _snapshot() -> SessionSnapshot:
    return SessionSnapshot(tourist_id="t-1", history=walk(3), profile=profile())


@pytest.mark.asyncio
async def test_in_memory_round_trip():
    store = InMemoryStore()
    assert await store.get("t-1") is None
    await store.put(_snapshot())
    assert "t-1" in store
    restored = await store.get("t-1")
    assert restored == _snapshot()


@pytest.mark.asyncio
async def test_redis_store_uses_tourist_keys():
    client = _StubRedis()
    store = RedisStore(client=client)
    await store.put(_snapshot())
    assert list(client.data) == ["tourist:t-1"]
    restored = await store.get("t-1")
    assert restored.history[0].timestamp == fix_at(0).timestamp
    assert restored.profile == profile()
    assert await store.get("t-2") is None


@pytest.mark.asyncio
async def test_redis_failures_become_storage_errors():
    store = RedisStore(client=_StubRedis(fail=True))
    with pytest.raises(StorageError):
        await store.get("t-1")
    with pytest.raises(StorageError):
        await store.put(_snapshot())


@pytest.mark.asyncio
async def test_corrupt_snapshot_is_a_storage_error():
    client = _StubRedis()
    client.data["tourist:t-1"] = "{not json"
    with pytest.raises(StorageError):
        await RedisStore(client=client).get("t-1")


def test_redis_store_needs_a_target():
    with pytest.raises(ValueError):
        RedisStore()
