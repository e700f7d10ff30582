from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from core_cache.keys import normalize_key
from core_config.constants import CACHE_NAMESPACE
from core_utils import jsonx

from .config import ExpandConfig
from .errors import PayloadDecodeError, PayloadEncodeError
from .types import JsonValue


@runtime_checkable
class Provider(Protocol):
    """
    Everything the engine needs from the outside world.

    ``ctx`` is an opaque request object (typically the inbound FastAPI
    ``Request``) handed through unchanged so reads can honour the caller's
    identity, deadlines and correlation headers.
    """

    config: ExpandConfig

    def serialize(self, value: JsonValue) -> bytes: ...

    def deserialize(self, data: bytes) -> JsonValue: ...

    async def read_one(self, key: str, ctx: Any = None) -> bytes:
        """Raw bytes for *key*; raises ``FetchError`` when unavailable."""
        ...

    async def read_many(self, keys: Sequence[str], ctx: Any = None) -> Mapping[str, bytes]:
        """
        Raw bytes for the available subset of *keys*, indexed by
        ``normalize(key)``. Absent keys are simply missing; a failed read
        raises ``BatchFetchError`` (carrying any partial result).
        """
        ...

    def normalize(self, key: str) -> str: ...


class JsonProvider:
    """
    JSON wire format plus namespaced key normalization. Subclasses supply
    the two read operations.
    """

    def __init__(self, config: ExpandConfig | None = None, *, namespace: str = CACHE_NAMESPACE):
        self.config = config or ExpandConfig()
        self.namespace = namespace

    def serialize(self, value: JsonValue) -> bytes:
        try:
            return jsonx.dumpb(value)
        except TypeError as exc:
            raise PayloadEncodeError(f"cannot encode tree: {exc}") from exc

    def deserialize(self, data: bytes) -> JsonValue:
        if data is None:
            raise PayloadDecodeError("no payload")
        try:
            return jsonx.loads(data)
        except (ValueError, TypeError, RecursionError) as exc:
            raise PayloadDecodeError(f"cannot decode payload: {exc}") from exc

    def normalize(self, key: str) -> str:
        return normalize_key(key, self.namespace)

    async def read_one(self, key: str, ctx: Any = None) -> bytes:
        raise NotImplementedError

    async def read_many(self, keys: Sequence[str], ctx: Any = None) -> Mapping[str, bytes]:
        raise NotImplementedError


__all__ = ["Provider", "JsonProvider"]
