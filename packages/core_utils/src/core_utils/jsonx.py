from __future__ import annotations
from typing import Any, Mapping
import json as _pyjson

import orjson
from pydantic import BaseModel

__all__ = ["dumps", "dumpb", "loads", "sanitize"]

_BOM = b"\xef\xbb\xbf"

def sanitize(obj: Any) -> Any:
    """Recursively convert *obj* into something JSON-serialisable.

    - Exceptions → {"error": <Type>, "message": str(e)}
    - Pydantic models → model_dump(mode="python")
    - bytes → UTF-8 string (replacement on errors)
    - sets/tuples → lists
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, BaseException):
        return {"error": obj.__class__.__name__, "message": str(obj)}
    if isinstance(obj, BaseModel):
        return sanitize(obj.model_dump(mode="python"))
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj).decode("utf-8", "replace")
    if isinstance(obj, Mapping):
        return {str(k): sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [sanitize(v) for v in obj]
    if hasattr(obj, "isoformat"):
        try:
            return obj.isoformat()
        except (TypeError, ValueError):
            pass
    return str(obj)

def dumps(obj: Any) -> str:
    """
    Canonical JSON text (sorted keys, compact). Used wherever the output is
    hashed or compared: cache-key fingerprints, log payloads, golden tests.
    """
    return orjson.dumps(obj, option=orjson.OPT_SORT_KEYS, default=sanitize).decode("utf-8")

def dumpb(obj: Any) -> bytes:
    """
    Wire JSON bytes preserving mapping insertion order.

    Raises ``TypeError`` for values that cannot be encoded; there is no
    ``default`` hook, so non-JSON trees surface as encode errors instead of
    being stringified. Trees nested deeper than orjson's limit go through
    stdlib json.
    """
    try:
        return orjson.dumps(obj)
    except orjson.JSONEncodeError as exc:
        if "recursion limit" not in str(exc).lower():
            raise
    try:
        return _pyjson.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (ValueError, RecursionError) as exc:
        raise TypeError(f"cannot encode tree: {exc}") from exc

def loads(data: str | bytes | bytearray | memoryview) -> Any:
    """Robust JSON load from str/bytes.

    - Accepts str or bytes-like
    - Strips a leading UTF-8 BOM
    - Falls back to stdlib json for inputs orjson rejects but Python accepts
      (e.g. NaN/Infinity literals written by other producers)

    Raises ``ValueError`` (``orjson.JSONDecodeError`` / ``json.JSONDecodeError``)
    on malformed input.
    """
    if isinstance(data, str):
        b = data.encode("utf-8")
    else:
        b = bytes(data)
    if b.startswith(_BOM):
        b = b[len(_BOM):]
    try:
        return orjson.loads(b)
    except orjson.JSONDecodeError:
        try:
            txt = b.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValueError(f"payload is not UTF-8: {exc}") from exc
        return _pyjson.loads(txt)
