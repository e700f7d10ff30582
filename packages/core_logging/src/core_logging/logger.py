import logging, sys, orjson, os, time
import asyncio
import contextvars
from contextlib import contextmanager
from typing import Any, Dict, List, Optional
from core_utils.fingerprints import sha256_hex

# ────────────────────────────────────────────────────────────
# Per-request aggregation
# ────────────────────────────────────────────────────────────
class _ReqAgg:
    """Breadcrumb counts, stage timers and error crumbs of one request."""
    __slots__ = ("events", "timers", "last", "errors")
    def __init__(self) -> None:
        self.events: dict[str, dict[str, int]] = {}
        self.timers: dict[str, list[float]] = {}
        self.last: dict[str, Any] = {}
        self.errors: list[dict[str, Any]] = []

_REQ_AGG: contextvars.ContextVar[Optional[_ReqAgg]] = contextvars.ContextVar("REQ_AGG", default=None)
_REQUEST_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("_REQUEST_ID", default=None)

# attributes copied into the summary from the most recent breadcrumb carrying them
_STICKY = ("request_id", "payload_fp", "expand_depth")
_ERROR_WORDS = ("error", "failed", "exception", "invalid", "timeout")

def _agg() -> _ReqAgg:
    agg = _REQ_AGG.get()
    if agg is None:
        agg = _ReqAgg()
        _REQ_AGG.set(agg)
    return agg

def _summary_mode() -> bool:
    # LOG_EMIT_MODE=verbose emits every breadcrumb
    return os.getenv("LOG_EMIT_MODE", "summary").lower() in ("summary", "summarize", "compact")

def _is_error_like(event: str, extras: Dict[str, Any]) -> bool:
    if "error" in extras or extras.get("level") == "ERROR":
        return True
    status = extras.get("status_code")
    if isinstance(status, int) and status >= 500:
        return True
    ev = (event or "").lower()
    return any(w in ev for w in _ERROR_WORDS)

def _always_emit(stage: str) -> bool:
    return stage == "service"

def _note(stage: str, event: str, extras: Dict[str, Any]) -> None:
    agg = _agg()
    counts = agg.events.setdefault(stage, {})
    counts[event] = counts.get(event, 0) + 1
    latency = extras.get("latency_ms")
    if isinstance(latency, (int, float)):
        agg.timers.setdefault(stage, []).append(float(latency))
    for k in _STICKY:
        v = extras.get(k)
        if v not in (None, ""):
            agg.last[k] = v
    http = extras.get("http")
    if isinstance(http, dict):
        for src, dst in (("method", "method"), ("target", "path")):
            if isinstance(http.get(src), str):
                agg.last[dst] = http[src]
    if _is_error_like(event, extras):
        agg.errors.append({
            "code": str(extras.get("error_code") or event.upper().replace(".", "_")),
            "where": stage,
            "message": str(extras.get("error") or extras.get("error_type") or event),
        })

def _timer_stats(values: List[float]) -> Dict[str, float]:
    srt = sorted(values)
    n = len(srt)
    return {
        "count": n,
        "sum_ms": round(sum(srt), 3),
        "p50_ms": round(srt[int(0.5 * (n - 1))], 3),
        "p95_ms": round(srt[int(0.95 * (n - 1))], 3),
        "max_ms": round(srt[-1], 3),
    }

def emit_request_summary(logger: logging.Logger, *, service: Optional[str] = None) -> None:
    """
    One compact line per request (summary mode only): breadcrumb counts per
    stage, stage latency percentiles and the cache hit rate. Resets the
    request aggregate.
    """
    if not _summary_mode():
        return
    agg = _REQ_AGG.get()
    if not agg:
        return
    payload: Dict[str, Any] = {
        "stage": "summary",
        "service": service or os.getenv("SERVICE_NAME") or logger.name,
        "counts": {stage: sum(c.values()) for stage, c in agg.events.items()},
        "events": agg.events,
        "timers": {stage: _timer_stats(v) for stage, v in agg.timers.items() if v},
        **agg.last,
        "error_count": len(agg.errors),
    }
    cache = agg.events.get("cache", {})
    hits, misses = int(cache.get("cache.hit", 0)), int(cache.get("cache.miss", 0))
    if hits + misses:
        payload["cache"] = {
            "gets": hits + misses,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / (hits + misses), 3),
        }
    if not payload.get("request_id") and current_request_id():
        payload["request_id"] = current_request_id()
    logger.info("request_summary", extra=_sanitize_extra(payload))
    _REQ_AGG.set(None)

# ────────────────────────────────────────────────────────────
# Errors: one line each plus an end-of-request rollup
# ────────────────────────────────────────────────────────────
def record_error(
    code: str,
    *,
    where: str,
    message: str,
    logger: logging.Logger,
    context: Optional[Dict[str, Any]] = None,
    level: str = "ERROR",
    **extras: Any,
) -> None:
    """Log a normalized error line and keep a crumb for the request rollup."""
    crumb: Dict[str, Any] = {"code": str(code), "where": str(where), "message": str(message)}
    if isinstance(context, dict):
        crumb["context"] = context
    _agg().errors.append(crumb)
    payload = {
        "stage": extras.pop("stage", None) or "error",
        "error_code": str(code),
        "error_message": message,
        "where": where,
        **({"context": context} if isinstance(context, dict) else {}),
        **extras,
    }
    logger.log(getattr(logging, level.upper(), logging.ERROR), "error", extra=_sanitize_extra(payload))

def emit_request_error_summary(logger: logging.Logger, *, service: Optional[str] = None) -> None:
    """ERROR rollup of every crumb the current request collected; no-op when clean."""
    agg = _REQ_AGG.get()
    if not agg or not agg.errors:
        return
    first = str(agg.errors[0].get("code") or "unknown")
    payload: Dict[str, Any] = {
        "stage": "summary",
        "service": service or os.getenv("SERVICE_NAME") or logger.name,
        "error_count": len(agg.errors),
        "errors": agg.errors[:50],
        "cause": first.lower().split(".", 1)[0] or "unknown",
    }
    if current_request_id():
        payload["request_id"] = current_request_id()
    logger.error("request_error_summary", extra=_sanitize_extra(payload))

# ────────────────────────────────────────────────────────────
# Request id context
# ────────────────────────────────────────────────────────────
def bind_request_id(request_id: Optional[str]) -> None:
    """Bind *request_id* to the current context; every later line carries it."""
    _REQUEST_ID.set(request_id)

def current_request_id() -> Optional[str]:
    return _REQUEST_ID.get()

class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and _REQUEST_ID.get():
            record.request_id = _REQUEST_ID.get()
        return True

# ────────────────────────────────────────────────────────────
# JSON line formatting
# ────────────────────────────────────────────────────────────
# LogRecord attributes that must never be shadowed by extras
_RESERVED: set[str] = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Top-level fields of the log envelope; everything else goes under ``meta``.
_TOP_LEVEL: set[str] = {
    "ts", "level", "service", "stage", "latency_ms", "request_id",
    "message", "key_fp", "payload_fp", "status_code", "error_code",
}

def _default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if isinstance(obj, BaseException):
        return {"error": obj.__class__.__name__, "message": str(obj)}
    raise TypeError

class JsonFormatter(logging.Formatter):
    """One JSON object per line; fixed top-level keys, extras nested under ``meta``."""

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", record.name),
            "event": record.getMessage(),
        }
        meta: Dict[str, Any] = {}
        for key, val in record.__dict__.items():
            if key in _RESERVED or key == "message_extra":
                continue
            (base if key in _TOP_LEVEL else meta)[key] = val
        if "message_extra" in record.__dict__:
            base["message"] = record.__dict__["message_extra"]
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        if meta:
            base["meta"] = meta
        return orjson.dumps(base, default=_default).decode("utf-8")

class StructuredLogger(logging.Logger):
    """``logger.info("msg", stage="expand")``: keyword arguments land in ``extra``."""

    def _log(                                   # noqa: PLR0913 – keep signature
        self,
        level: int,
        msg: str,
        args,
        exc_info=None,
        extra: Dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        if kwargs:
            extra = {**(extra or {}), **kwargs}
        super()._log(level, msg, args, exc_info=exc_info, extra=_sanitize_extra(extra),
                     stack_info=stack_info, stacklevel=stacklevel)

class DynamicStdoutHandler(logging.StreamHandler):
    """Resolves ``sys.stdout`` on every emit so pytest capture sees the lines."""

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401
        self.setStream(sys.stdout)
        super().emit(record)

logging.setLoggerClass(StructuredLogger)

def get_logger(name: str = "app", level: str | None = None) -> logging.Logger:
    """
    Top-level names ("hydrator") own one JSON stdout handler and stop
    propagation; dotted names ("core_expand.engine") bubble up to their root.
    """
    logger = logging.getLogger(name)
    if "." not in name:
        if not logger.handlers:
            handler = DynamicStdoutHandler()
            handler.setFormatter(JsonFormatter())
            logger.addHandler(handler)
        logger.propagate = False
    else:
        logger.handlers.clear()
        logger.propagate = True
    logger.setLevel(level or os.getenv("SERVICE_LOG_LEVEL", "INFO"))
    if not any(isinstance(f, _RequestIdFilter) for f in logger.filters):
        logger.addFilter(_RequestIdFilter())
    return logger

# ────────────────────────────────────────────────────────────
# Stage breadcrumbs
# ────────────────────────────────────────────────────────────
def _emit_stage_log(logger: logging.Logger, stage: str, event: str, **extras: Any) -> None:
    payload = {"stage": stage, **extras}
    _note(stage, event, payload)
    # summary mode: breadcrumbs are only aggregated; service lines and errors still emit
    if _summary_mode() and not _always_emit(stage) and not _is_error_like(event, payload):
        return
    logger.info(event, extra=_sanitize_extra(payload))

def log_stage(logger: logging.Logger, stage: str, event: str, **fixed: Any):
    """
    *Imperative*  →  log_stage(logger, "expand", "expand.dropped", reason="depth")
    *Decorator*   →  @log_stage(logger, "expand", "walk")
                     async def walk(...): ...
    *Context*     →  with log_stage(logger, "cache", "cache.mget").ctx(keys=3): ...

    The imperative line is emitted on every call; the returned object can be
    ignored by call-sites that only want the breadcrumb.
    """
    _emit_stage_log(logger, stage, event, **fixed)

    def _done(t0: float, extra: Dict[str, Any]) -> None:
        _emit_stage_log(logger, stage, f"{event}.done",
                        latency_ms=(time.perf_counter() - t0) * 1000, **extra)

    def _decorator(fn):
        if asyncio.iscoroutinefunction(fn):
            async def _aw(*a, **kw):
                t0 = time.perf_counter()
                try:
                    return await fn(*a, **kw)
                finally:
                    _done(t0, fixed)
            return _aw

        def _w(*a, **kw):
            t0 = time.perf_counter()
            try:
                return fn(*a, **kw)
            finally:
                _done(t0, fixed)
        return _w

    @contextmanager
    def _ctx(**dynamic):
        merged = {**fixed, **dynamic}
        _emit_stage_log(logger, stage, f"{event}.start", **merged)
        t0 = time.perf_counter()
        try:
            yield
        finally:
            _done(t0, merged)

    _decorator.ctx = _ctx
    return _decorator

def _sanitize_extra(extra: Dict[str, Any] | None) -> Dict[str, Any]:
    """
    Rename keys that would collide with LogRecord attributes:
    ``message`` → ``message_extra``, other reserved names → ``meta_<key>``.
    A nested ``meta`` dict is flattened one level.
    """
    safe: Dict[str, Any] = {}
    for k, v in (extra or {}).items():
        k = str(k)
        if k == "meta" and isinstance(v, dict):
            for mk, mv in v.items():
                mk = str(mk)
                safe[f"meta_{mk}" if mk in _RESERVED else mk] = mv
        elif k == "message":
            safe["message_extra"] = v
        else:
            safe[f"meta_{k}" if k in _RESERVED else k] = v
    return safe

# ────────────────────────────────────────────────────────────
# Cache breadcrumbs
# ────────────────────────────────────────────────────────────
def cache_key_fp(key: Any) -> str:
    """Deterministic fingerprint for cache keys (raw keys are never logged)."""
    return "sha256:" + sha256_hex(str(key))[:16]

def _log_cache(logger: logging.Logger, event: str, backend: str, namespace: str, key: Any,
               latency_ms: Optional[float]) -> None:
    extra: Dict[str, Any] = {"backend": str(backend), "namespace": str(namespace), "key_fp": cache_key_fp(key)}
    if latency_ms is not None:
        extra["latency_ms"] = latency_ms
    log_stage(logger, "cache", event, **extra)

def log_cache_hit(logger: logging.Logger, *, backend: str, namespace: str, key: Any,
                  latency_ms: Optional[float] = None) -> None:
    _log_cache(logger, "cache.hit", backend, namespace, key, latency_ms)

def log_cache_miss(logger: logging.Logger, *, backend: str, namespace: str, key: Any,
                   latency_ms: Optional[float] = None) -> None:
    _log_cache(logger, "cache.miss", backend, namespace, key, latency_ms)
