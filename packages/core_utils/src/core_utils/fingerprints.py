import hashlib
from typing import Union

__all__ = ["sha256_hex", "ensure_sha256_prefix", "payload_fp"]

_Bytesish = Union[str, bytes, bytearray, memoryview]

def sha256_hex(data: _Bytesish) -> str:
    """Hex SHA-256 of *data*; text is hashed as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    elif not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"sha256_hex expects str or bytes-like, got {type(data).__name__}")
    return hashlib.sha256(data).hexdigest()

def ensure_sha256_prefix(value: str) -> str:
    """``sha256:``-prefixed form of a hex digest (idempotent)."""
    return value if value.startswith("sha256:") else f"sha256:{value}"

def payload_fp(data: Union[bytes, bytearray, memoryview]) -> str:
    """Fingerprint of raw payload bytes (what was served, not what it means)."""
    return ensure_sha256_prefix(sha256_hex(data))
