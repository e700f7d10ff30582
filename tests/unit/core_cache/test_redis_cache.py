import pytest

from core_cache import RedisCache


class _Client:
    def __init__(self):
        self.store = {"a": b"1", "b": "2"}

    async def get(self, key):
        return self.store.get(key)

    async def mget(self, keys):
        return [self.store.get(k) for k in keys]

    async def ping(self):
        return True


def test_requires_client():
    with pytest.raises(ValueError):
        RedisCache(None)


@pytest.mark.asyncio
async def test_values_come_back_as_bytes():
    cache = RedisCache(_Client())
    assert await cache.get("a") == b"1"
    assert await cache.get("missing") is None
    assert await cache.mget(["b", "x", "a"]) == [b"2", None, b"1"]
    assert await cache.mget([]) == []
    assert await cache.ping() is True
