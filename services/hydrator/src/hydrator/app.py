from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response

from core_cache.redis_client import close_redis_pool
from core_config import get_settings
from core_config.constants import EXPAND_DEPTH_CEILING
from core_expand import (
    BatchFetchError,
    EntryNotFound,
    Expansion,
    FetchError,
    PayloadDecodeError,
    PayloadEncodeError,
    Provider,
    expand,
)
from core_expand.cache_provider import CacheProvider
from core_http.errors import attach_standard_error_handlers, raise_http_error
from core_logging import get_logger, log_stage, record_error
from core_logging.error_codes import ErrorCode
from core_logging.request_logging import attach_request_logging
from core_metrics.fastapi import attach_prometheus_endpoint
from core_utils.health import attach_health_routes

SERVICE = "hydrator"
logger = get_logger(SERVICE)

_provider: Optional[CacheProvider] = None

def get_provider() -> Provider:
    """Process-wide cache provider (dependency; tests override it)."""
    global _provider
    if _provider is None:
        _provider = CacheProvider.from_settings(get_settings())
    return _provider

@asynccontextmanager
async def _lifespan(_: FastAPI):
    s = get_settings()
    log_stage(logger, "service", "service.startup",
              expand_key=s.expand_key, max_depth=s.expand_max_depth,
              remote=bool(s.remote_base_url))
    try:
        yield
    finally:
        if _provider is not None:
            await _provider.aclose()
            await close_redis_pool()

app = FastAPI(title="Hydrator", version="0.1.0", lifespan=_lifespan)
attach_request_logging(app, service=SERVICE, metric_prefix=SERVICE)
attach_standard_error_handlers(app, service=SERVICE)
attach_prometheus_endpoint(app)

async def _ready() -> bool:
    provider = app.dependency_overrides.get(get_provider, get_provider)()
    ping = getattr(provider, "ping", None)
    return True if ping is None else bool(await ping())

attach_health_routes(app, checks={"liveness": lambda: True, "readiness": _ready})

_ERROR_CODES = (
    (BatchFetchError, ErrorCode.batch_fetch_failed),
    (PayloadEncodeError, ErrorCode.payload_unencodable),
)

def _respond(result: Expansion) -> Response:
    for err in result.errors:
        code = next((c for t, c in _ERROR_CODES if isinstance(err, t)), ErrorCode.expansion_partial)
        record_error(code.value, where="expand", message=str(err), logger=logger,
                     error_type=type(err).__name__)
    return Response(
        content=result.data,
        media_type="application/json",
        headers={"x-expand-errors": str(len(result.errors))},
    )

@app.post("/v1/expand")
async def expand_document(request: Request, provider: Provider = Depends(get_provider)) -> Response:
    body = await request.body()
    try:
        result = await expand(provider, body, request)
    except PayloadDecodeError as exc:
        raise raise_http_error(400, ErrorCode.payload_invalid, "request body is not a valid document",
                               details={"reason": str(exc)})
    return _respond(result)

@app.get("/v1/entries/{key:path}")
async def expand_entry(
    key: str,
    request: Request,
    depth: Optional[int] = Query(default=None, ge=0, le=EXPAND_DEPTH_CEILING),
    provider: Provider = Depends(get_provider),
) -> Response:
    try:
        raw = await provider.read_one(key, request)
    except EntryNotFound:
        raise raise_http_error(404, ErrorCode.entry_not_found, f"entry not found: {key}")
    except FetchError as exc:
        raise raise_http_error(502, ErrorCode.upstream_error, "entry could not be read",
                               details={"reason": str(exc)})
    try:
        result = await expand(provider, raw, request, depth=depth)
    except PayloadDecodeError as exc:
        raise raise_http_error(502, ErrorCode.payload_invalid, "stored entry is not a valid document",
                               details={"reason": str(exc)})
    return _respond(result)
