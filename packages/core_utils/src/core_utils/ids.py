import uuid
from typing import Any, Optional

__all__ = ["generate_request_id", "request_id_from"]

def generate_request_id() -> str:
    """
    Non-deterministic 16-hex id for logging/health/exception paths.
    """
    return uuid.uuid4().hex[:16]

def request_id_from(ctx: Any) -> Optional[str]:
    """
    Extract an inbound request id from a request-like object (anything with a
    ``headers`` mapping, e.g. a FastAPI/Starlette ``Request``). Returns None
    when *ctx* carries no usable id.
    """
    headers = getattr(ctx, "headers", None)
    if headers is None or not hasattr(headers, "get"):
        return None
    rid = headers.get("x-request-id") or headers.get("X-Request-Id")
    if isinstance(rid, str) and rid.strip():
        return rid.strip()
    return None
