from __future__ import annotations
from core_config.constants import CACHE_NAMESPACE

def _s(x: object | None) -> str:
    return "" if x is None else str(x)

def normalize_key(key: str | None, namespace: str = CACHE_NAMESPACE) -> str:
    """
    Canonical storage key for a logical entry key.

    ``" /v1/products//42/ "`` → ``"hx:v1:v1/products/42"``.
    Surrounding whitespace and empty path segments are dropped; keys that
    already carry the namespace are returned unchanged, so normalizing twice
    is a no-op.
    """
    raw = _s(key).strip()
    prefix = f"{namespace}:" if namespace else ""
    if prefix and raw.startswith(prefix):
        raw = raw[len(prefix):]
    path = "/".join(seg for seg in raw.split("/") if seg)
    return f"{prefix}{path}"

def logical_key(storage_key: str, namespace: str = CACHE_NAMESPACE) -> str:
    """Inverse of :func:`normalize_key` (the namespace prefix removed)."""
    prefix = f"{namespace}:" if namespace else ""
    if prefix and storage_key.startswith(prefix):
        return storage_key[len(prefix):]
    return storage_key
