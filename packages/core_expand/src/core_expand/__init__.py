"""
core_expand – hydrate cached documents by inlining the entries they reference.

    from core_expand import MemoryProvider, expand

    provider = MemoryProvider({"users/7": {"name": "Alice"}})
    result = await expand(provider, b'{"id": 1, "_expand": {"author": "users/7"}}')
    result.data   # b'{"id":1,"author":{"name":"Alice"}}'
"""

from .config import ExpandConfig
from .engine import Expansion, expand
from .errors import (
    BatchFetchError,
    EntryNotFound,
    ExpandError,
    ExpansionErrors,
    FetchError,
    PayloadDecodeError,
    PayloadEncodeError,
)
from .memory_provider import MemoryProvider
from .provider import JsonProvider, Provider

__all__ = [
    "expand",
    "Expansion",
    "ExpandConfig",
    "Provider",
    "JsonProvider",
    "MemoryProvider",
    "ExpandError",
    "PayloadDecodeError",
    "PayloadEncodeError",
    "FetchError",
    "EntryNotFound",
    "BatchFetchError",
    "ExpansionErrors",
]
