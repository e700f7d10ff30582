import asyncio
from types import SimpleNamespace

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from core_cache import RedisCache
from core_expand import BatchFetchError, EntryNotFound, ExpandConfig, FetchError, expand
from core_expand.cache_provider import CacheProvider
from core_utils import jsonx


class FakeRedis:
    """Just enough of redis.asyncio.Redis for read paths."""

    def __init__(self, data=None, *, down=False):
        self.data = {k: jsonx.dumpb(v) for k, v in (data or {}).items()}
        self.down = down
        self.calls = []

    def _check(self):
        if self.down:
            raise RedisConnectionError("connection refused")

    async def get(self, key):
        self.calls.append(("get", key))
        self._check()
        return self.data.get(key)

    async def mget(self, keys):
        self.calls.append(("mget", tuple(keys)))
        self._check()
        return [self.data.get(k) for k in keys]

    async def ping(self):
        self._check()
        return True


class Origin:
    """httpx.MockTransport handler serving a dict of path -> document."""

    def __init__(self, docs=None, *, broken=(), delay=0.0):
        self.docs = docs or {}
        self.broken = set(broken)
        self.delay = delay
        self.requests = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            path = request.url.path.lstrip("/")
            if path in self.broken:
                return httpx.Response(503)
            if path not in self.docs:
                return httpx.Response(404)
            return httpx.Response(200, content=jsonx.dumpb(self.docs[path]))
        finally:
            self.in_flight -= 1


def _provider(redis, origin=None, **kw):
    client = httpx.AsyncClient(transport=httpx.MockTransport(origin)) if origin else None
    return CacheProvider(
        RedisCache(redis),
        namespace="hx:v1",
        remote_base_url="http://origin.test/" if origin else None,
        http_client=client,
        **kw,
    )


@pytest.mark.asyncio
async def test_read_one_cache_hit_skips_origin():
    origin = Origin()
    provider = _provider(FakeRedis({"hx:v1:users/7": {"id": 7}}), origin)
    raw = await provider.read_one("users/7")
    assert jsonx.loads(raw) == {"id": 7}
    assert origin.requests == []


@pytest.mark.asyncio
async def test_read_one_miss_falls_back_to_origin_with_request_id():
    origin = Origin({"users/7": {"id": 7}})
    provider = _provider(FakeRedis(), origin)
    ctx = SimpleNamespace(headers={"x-request-id": "rid-123"})
    raw = await provider.read_one("users/7", ctx)
    assert jsonx.loads(raw) == {"id": 7}
    assert str(origin.requests[0].url) == "http://origin.test/users/7"
    assert origin.requests[0].headers["x-request-id"] == "rid-123"


@pytest.mark.asyncio
async def test_read_one_absent_everywhere():
    provider = _provider(FakeRedis(), Origin())
    with pytest.raises(EntryNotFound):
        await provider.read_one("users/404")


@pytest.mark.asyncio
async def test_read_one_absent_without_origin():
    provider = _provider(FakeRedis())
    with pytest.raises(EntryNotFound):
        await provider.read_one("users/404")


@pytest.mark.asyncio
async def test_read_one_origin_error_is_a_fetch_error():
    provider = _provider(FakeRedis(), Origin(broken=["users/7"]))
    with pytest.raises(FetchError) as exc_info:
        await provider.read_one("users/7")
    assert not isinstance(exc_info.value, EntryNotFound)
    assert exc_info.value.key == "users/7"


@pytest.mark.asyncio
async def test_redis_down_without_origin():
    provider = _provider(FakeRedis(down=True))
    with pytest.raises(FetchError):
        await provider.read_one("users/7")
    with pytest.raises(BatchFetchError):
        await provider.read_many(["users/7"])


@pytest.mark.asyncio
async def test_redis_down_with_origin_serves_from_origin():
    origin = Origin({"users/7": {"id": 7}})
    provider = _provider(FakeRedis(down=True), origin)
    found = await provider.read_many(["users/7"])
    assert jsonx.loads(found["hx:v1:users/7"]) == {"id": 7}


@pytest.mark.asyncio
async def test_read_many_one_mget_then_origin_for_misses():
    redis = FakeRedis({"hx:v1:a": {"v": 1}})
    origin = Origin({"b": {"v": 2}})
    provider = _provider(redis, origin)
    found = await provider.read_many(["a", "b", "c", "/a/"])
    assert redis.calls == [("mget", ("hx:v1:a", "hx:v1:b", "hx:v1:c"))]
    assert sorted(found) == ["hx:v1:a", "hx:v1:b"]
    assert sorted(r.url.path for r in origin.requests) == ["/b", "/c"]


@pytest.mark.asyncio
async def test_read_many_origin_failure_keeps_partial():
    redis = FakeRedis({"hx:v1:a": {"v": 1}})
    origin = Origin({"b": {"v": 2}}, broken=["c"])
    provider = _provider(redis, origin)
    with pytest.raises(BatchFetchError) as exc_info:
        await provider.read_many(["a", "b", "c"])
    err = exc_info.value
    assert err.keys == ("c",)
    assert sorted(err.partial) == ["hx:v1:a", "hx:v1:b"]


@pytest.mark.asyncio
async def test_read_many_bounds_origin_concurrency():
    keys = [f"k/{i}" for i in range(6)]
    origin = Origin({k: {"k": k} for k in keys}, delay=0.01)
    provider = _provider(FakeRedis(), origin, concurrency=2)
    found = await provider.read_many(keys)
    assert len(found) == 6
    assert origin.max_in_flight <= 2


@pytest.mark.asyncio
async def test_expand_through_cache_and_origin():
    redis = FakeRedis({
        "hx:v1:posts/1": {"id": 1, "_expand": {"author": "users/7"}},
        "hx:v1:posts/2": {"id": 2},
    })
    origin = Origin({"users/7": {"name": "Alice"}})
    provider = _provider(redis, origin)
    result = await expand(provider, b'{"feed":"home","_expand":["posts/1","posts/2"]}')
    assert jsonx.loads(result.data) == {
        "feed": "home",
        "_items": [{"id": 1, "author": {"name": "Alice"}}, {"id": 2}],
    }
    assert result.ok


@pytest.mark.asyncio
async def test_ping_reports_redis_health():
    assert await _provider(FakeRedis()).ping() is True
    with pytest.raises(RedisConnectionError):
        await _provider(FakeRedis(down=True)).ping()


def test_from_settings_without_origin(monkeypatch):
    monkeypatch.setenv("REMOTE_BASE_URL", "")
    monkeypatch.setenv("CACHE_NAMESPACE", "test:ns")
    monkeypatch.setenv("EXPAND_MAX_DEPTH", "2")
    provider = CacheProvider.from_settings(cache=RedisCache(FakeRedis()))
    assert provider.namespace == "test:ns"
    assert provider.config == ExpandConfig(max_depth=2)
    assert not provider.has_remote
