import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import httpx

from core_config.constants import (
    HTTP_RETRY_BASE_MS, HTTP_RETRY_CAP_MS, HTTP_RETRY_JITTER_MS, fetch_timeout_s,
)
from core_logging import current_request_id, get_logger, log_stage
from core_utils.backoff import async_backoff_sleep

logger = get_logger("core_http")

_shared_client: httpx.AsyncClient | None = None

def _inject_headers(headers: Optional[Dict[str, str]] = None, *, request_id: str | None = None) -> Dict[str, str]:
    """Caller headers plus the propagated request id. Never mutates the input."""
    base: Dict[str, str] = {}
    rid = request_id or current_request_id()
    if rid:
        base["x-request-id"] = rid
    if headers:
        base.update(headers)
    return base

def _build_timeout(seconds: float) -> httpx.Timeout:
    # read dominates; connect/pool stay short
    return httpx.Timeout(
        connect=min(0.5, max(0.1, seconds * 0.3)),
        read=max(0.1, seconds),
        write=min(seconds, 1.0),
        pool=min(seconds, 1.0),
    )

def get_http_client(*, timeout_ms: Optional[int] = None) -> httpx.AsyncClient:
    """
    Return the process-wide ``httpx.AsyncClient``. Callers must not close it;
    a closed client is replaced transparently on the next call.
    """
    global _shared_client
    seconds = (timeout_ms / 1000.0) if timeout_ms is not None else fetch_timeout_s()
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(timeout=_build_timeout(seconds))
    return _shared_client

def _retryable(exc: httpx.HTTPError) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)

async def fetch_bytes(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    headers: Optional[Dict[str, str]] = None,
    retry: int = 0,
    request_id: str | None = None,
    stage: str = "remote",
) -> bytes:
    """
    GET *url* and return the raw body. Raises ``httpx.HTTPStatusError`` on
    non-2xx and ``httpx.TransportError`` on connection problems. 5xx and
    transport failures are retried up to *retry* times with jittered backoff;
    4xx are never retried.
    """
    client = client or get_http_client()
    hdrs = _inject_headers(headers, request_id=request_id)
    parts = urlsplit(url)
    http: Dict[str, Any] = {"method": "GET", "host": parts.hostname or "", "target": parts.path or "/"}
    log_stage(logger, stage, "http.client.request", request_id=hdrs.get("x-request-id"), http=http)
    t0 = time.perf_counter()
    attempts = max(0, int(retry)) + 1
    for attempt in range(1, attempts + 1):
        try:
            resp = await client.get(url, headers=hdrs)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            if attempt < attempts and _retryable(exc):
                delay_ms = await async_backoff_sleep(
                    attempt, base_ms=HTTP_RETRY_BASE_MS, jitter_ms=HTTP_RETRY_JITTER_MS,
                    cap_ms=HTTP_RETRY_CAP_MS, mode="decorrelated",
                )
                log_stage(logger, stage, "http.client.retry_sleep",
                          attempt=attempt, delay_ms=delay_ms, error_type=type(exc).__name__)
                continue
            raise
        log_stage(logger, stage, "http.client.response",
                  request_id=hdrs.get("x-request-id"),
                  http={**http, "status_code": resp.status_code},
                  latency_ms=(time.perf_counter() - t0) * 1000.0)
        return resp.content
    raise RuntimeError("unreachable: retry loop exited without result")  # pragma: no cover
