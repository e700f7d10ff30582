from __future__ import annotations

import asyncio
import time
from typing import Any, Optional, Sequence
from urllib.parse import quote

import httpx
from redis.exceptions import RedisError

import core_metrics
from core_cache import RedisCache
from core_cache.keys import logical_key
from core_cache.redis_client import get_redis_pool
from core_config import Settings, get_settings
from core_config.constants import CACHE_NAMESPACE
from core_http.client import fetch_bytes, get_http_client
from core_logging import get_logger, log_cache_hit, log_cache_miss, log_stage
from core_utils.ids import request_id_from

from .config import ExpandConfig
from .errors import BatchFetchError, EntryNotFound, FetchError
from .provider import JsonProvider

logger = get_logger("core_expand.cache")

_BACKEND = "redis"


class CacheProvider(JsonProvider):
    """
    Reads entries from Redis and falls back to a remote origin on a miss.

    The origin is addressed as ``GET {remote_base_url}/{logical key}``; when
    no base URL is configured a cache miss is final. ``read_many`` costs one
    ``MGET`` plus at most ``concurrency`` parallel origin requests at a time.
    Nothing is written back to the cache.
    """

    def __init__(
        self,
        cache: RedisCache,
        config: ExpandConfig | None = None,
        *,
        namespace: str = CACHE_NAMESPACE,
        remote_base_url: Optional[str] = None,
        http_client: httpx.AsyncClient | None = None,
        retry: int = 0,
        concurrency: int = 8,
    ):
        super().__init__(config, namespace=namespace)
        self._cache = cache
        self._remote = remote_base_url.rstrip("/") if remote_base_url else None
        self._http = http_client
        self._retry = retry
        self._concurrency = max(1, concurrency)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        cache: RedisCache | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "CacheProvider":
        s = settings or get_settings()
        return cls(
            cache or RedisCache(get_redis_pool()),
            ExpandConfig.from_settings(s),
            namespace=s.cache_namespace,
            remote_base_url=s.remote_base_url,
            http_client=http_client or (get_http_client(timeout_ms=s.timeout_fetch_ms) if s.remote_base_url else None),
            retry=s.http_retry,
            concurrency=s.remote_fetch_concurrency,
        )

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    async def ping(self) -> bool:
        return await self._cache.ping()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()

    async def read_one(self, key: str, ctx: Any = None) -> bytes:
        skey = self.normalize(key)
        t0 = time.perf_counter()
        try:
            raw = await self._cache.get(skey)
        except RedisError as exc:
            log_stage(logger, "cache", "cache.get_failed", error_type=type(exc).__name__)
            if not self.has_remote:
                raise FetchError(key, f"cache unavailable: {exc}") from exc
            raw = None
        latency_ms = (time.perf_counter() - t0) * 1000.0
        if raw is not None:
            log_cache_hit(logger, backend=_BACKEND, namespace=self.namespace, key=skey, latency_ms=latency_ms)
            core_metrics.counter("cache_fetch_total", 1, result="hit")
            return raw
        log_cache_miss(logger, backend=_BACKEND, namespace=self.namespace, key=skey, latency_ms=latency_ms)
        core_metrics.counter("cache_fetch_total", 1, result="miss")

        raw = await self._fetch_remote(skey, ctx)
        if raw is None:
            raise EntryNotFound(key)
        return raw

    async def read_many(self, keys: Sequence[str], ctx: Any = None) -> dict[str, bytes]:
        unique = list(dict.fromkeys(self.normalize(k) for k in keys))
        if not unique:
            return {}
        try:
            with log_stage(logger, "cache", "cache.mget").ctx(keys=len(unique)):
                values = await self._cache.mget(unique)
        except RedisError as exc:
            log_stage(logger, "cache", "cache.mget_failed", error_type=type(exc).__name__, keys=len(unique))
            if not self.has_remote:
                raise BatchFetchError(keys, f"cache unavailable: {exc}") from exc
            values = [None] * len(unique)

        found: dict[str, bytes] = {}
        misses: list[str] = []
        for skey, raw in zip(unique, values):
            if raw is None:
                log_cache_miss(logger, backend=_BACKEND, namespace=self.namespace, key=skey)
                misses.append(skey)
            else:
                log_cache_hit(logger, backend=_BACKEND, namespace=self.namespace, key=skey)
                found[skey] = raw
        core_metrics.counter("cache_fetch_total", len(found), result="hit")
        core_metrics.counter("cache_fetch_total", len(misses), result="miss")

        if not misses or not self.has_remote:
            return found

        sem = asyncio.Semaphore(self._concurrency)

        async def _guarded(skey: str) -> Optional[bytes]:
            async with sem:
                return await self._fetch_remote(skey, ctx)

        results = await asyncio.gather(*(_guarded(s) for s in misses), return_exceptions=True)
        failed: list[str] = []
        for skey, res in zip(misses, results):
            if isinstance(res, FetchError):
                failed.append(logical_key(skey, self.namespace))
            elif isinstance(res, BaseException):
                raise res
            elif res is not None:
                found[skey] = res
        if failed:
            raise BatchFetchError(failed, f"remote fetch failed for {len(failed)} key(s)", partial=found)
        return found

    async def _fetch_remote(self, skey: str, ctx: Any) -> Optional[bytes]:
        """Origin bytes for *skey*; ``None`` when the origin says 404."""
        if self._remote is None:
            return None
        key = logical_key(skey, self.namespace)
        url = f"{self._remote}/{quote(key, safe='/')}"
        try:
            raw = await fetch_bytes(
                url,
                client=self._http,
                retry=self._retry,
                request_id=request_id_from(ctx),
            )
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                core_metrics.counter("remote_fetch_total", 1, result="not_found")
                return None
            core_metrics.counter("remote_fetch_total", 1, result="error")
            raise FetchError(key, f"origin returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            core_metrics.counter("remote_fetch_total", 1, result="error")
            raise FetchError(key, f"origin unreachable: {type(exc).__name__}") from exc
        core_metrics.counter("remote_fetch_total", 1, result="ok")
        return raw


__all__ = ["CacheProvider"]
