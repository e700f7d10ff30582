from __future__ import annotations
from typing import Any, Optional, Sequence

class RedisCache:
    """
    Thin async wrapper over a provided redis.asyncio client.
    Read-only; no retries here, callers own policies and timeouts.
    """
    def __init__(self, client: Any):
        if client is None:
            raise ValueError("RedisCache requires a valid redis client")
        self._r = client

    @staticmethod
    def _as_bytes(value: Any) -> Optional[bytes]:
        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)

    async def get(self, key: str) -> Optional[bytes]:
        return self._as_bytes(await self._r.get(key))

    async def mget(self, keys: Sequence[str]) -> list[Optional[bytes]]:
        """One round trip for the whole batch; result aligned with *keys*."""
        if not keys:
            return []
        values = await self._r.mget(list(keys))
        return [self._as_bytes(v) for v in values]

    async def ping(self) -> bool:
        return bool(await self._r.ping())
