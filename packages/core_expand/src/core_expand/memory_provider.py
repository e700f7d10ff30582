from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from core_config.constants import CACHE_NAMESPACE

from .config import ExpandConfig
from .errors import BatchFetchError, EntryNotFound, FetchError
from .provider import JsonProvider
from .types import JsonValue


class MemoryProvider(JsonProvider):
    """
    Dict-backed provider for tests, fixtures and offline tooling.

    Entries are stored under their normalized key. Every read is recorded in
    ``calls`` as ``("read_one", (key,))`` / ``("read_many", keys)`` so tests
    can assert exactly what was fetched. Keys listed in ``failing`` behave
    like a backend error (not an absence); ``fail_batches`` makes every
    ``read_many`` fail outright.
    """

    def __init__(
        self,
        entries: Mapping[str, JsonValue | bytes] | None = None,
        config: ExpandConfig | None = None,
        *,
        namespace: str = CACHE_NAMESPACE,
        failing: Iterable[str] = (),
        fail_batches: bool = False,
    ):
        super().__init__(config, namespace=namespace)
        self._entries: dict[str, bytes] = {}
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.failing = {self.normalize(k) for k in failing}
        self.fail_batches = fail_batches
        for key, value in (entries or {}).items():
            self.put(key, value)

    def put(self, key: str, value: JsonValue | bytes) -> None:
        raw = value if isinstance(value, (bytes, bytearray)) else self.serialize(value)
        self._entries[self.normalize(key)] = bytes(raw)

    @property
    def fetched_keys(self) -> list[str]:
        return [k for _, keys in self.calls for k in keys]

    async def read_one(self, key: str, ctx: Any = None) -> bytes:
        self.calls.append(("read_one", (key,)))
        skey = self.normalize(key)
        if skey in self.failing:
            raise FetchError(key, f"backend failure for {key!r}")
        try:
            return self._entries[skey]
        except KeyError:
            raise EntryNotFound(key) from None

    async def read_many(self, keys: Sequence[str], ctx: Any = None) -> dict[str, bytes]:
        self.calls.append(("read_many", tuple(keys)))
        if self.fail_batches:
            raise BatchFetchError(keys, "batch backend unavailable")
        found: dict[str, bytes] = {}
        failed: list[str] = []
        for key in keys:
            skey = self.normalize(key)
            if skey in self.failing:
                failed.append(key)
            elif skey in self._entries:
                found[skey] = self._entries[skey]
        if failed:
            raise BatchFetchError(failed, partial=found)
        return found


__all__ = ["MemoryProvider"]
