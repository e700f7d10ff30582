"""
Reference expansion over JSON trees.

A document stores related entries as cache keys under a reserved field (the
*expand key*). Expansion replaces those keys with the referenced entries,
themselves expanded, until the depth budget runs out:

    {"id": 1, "_expand": {"author": "users/7"}}
        → {"id": 1, "author": {...users/7, expanded...}}

    {"_expand": ["posts/1", "posts/2"]}
        → [{...posts/1...}, {...posts/2...}]

    {"title": "x", "_expand": ["posts/1"]}
        → {"title": "x", "_items": [{...posts/1...}]}

Missing or undecodable referenced entries are dropped silently; failed batch
reads and a failed final encode are collected and reported next to the
(best-effort) result instead of aborting the whole document.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import core_metrics
from core_logging import cache_key_fp, get_logger, log_stage
from core_utils.fingerprints import payload_fp

from .errors import (
    BatchFetchError,
    ExpandError,
    ExpansionErrors,
    PayloadDecodeError,
    PayloadEncodeError,
)
from .provider import Provider
from .types import JsonArray, JsonObject, JsonValue

logger = get_logger("core_expand.engine")

_Errors = list[Exception]


@dataclass(frozen=True)
class Expansion:
    """Outcome of :func:`expand`: the serialized tree plus non-fatal errors."""

    data: bytes
    errors: tuple[Exception, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def error(self) -> Optional[ExpansionErrors]:
        return ExpansionErrors(self.errors) if self.errors else None

    def raise_for_errors(self) -> bytes:
        """Return ``data`` when nothing went wrong, raise the aggregate otherwise."""
        if self.errors:
            raise ExpansionErrors(self.errors)
        return self.data


async def expand(provider: Provider, data: bytes, ctx: Any = None, *, depth: int | None = None) -> Expansion:
    """
    Expand every reference field reachable from the document in *data*.

    Raises ``PayloadDecodeError`` when *data* cannot be deserialized. A root
    that is not a mapping is returned untouched. *depth* overrides
    ``provider.config.max_depth`` for this call.
    """
    budget = provider.config.max_depth if depth is None else depth
    if budget < 0:
        raise ValueError(f"depth must be >= 0, got {budget}")

    value = provider.deserialize(data)
    if not isinstance(value, dict):
        return Expansion(data=data)

    t0 = time.perf_counter()
    tree, errors = await _walk(provider, value, budget, ctx)
    try:
        out = provider.serialize(tree)
    except PayloadEncodeError as exc:
        errors.append(exc)
        out = data

    latency_ms = core_metrics.record_latency_ms("expand_latency_ms", t0)
    core_metrics.counter("expand_requests_total", 1, outcome="partial" if errors else "ok")
    if errors:
        core_metrics.counter("expand_errors_total", len(errors))
    log_stage(logger, "expand", "expand.done",
              expand_depth=budget, error_count=len(errors),
              payload_fp=payload_fp(out), latency_ms=latency_ms)
    return Expansion(data=out, errors=tuple(errors))


async def _walk(provider: Provider, node: JsonObject, depth: int, ctx: Any) -> tuple[JsonValue, _Errors]:
    config = provider.config
    fields: JsonObject = {}
    items: JsonArray = []
    as_list = False
    errors: _Errors = []

    for key, value in node.items():
        if key == config.expand_key:
            remaining = depth - 1
            if remaining < 0:
                log_stage(logger, "expand", "expand.dropped", reason="depth_exhausted")
                continue
            if isinstance(value, dict):
                named, errs = await _resolve_named(provider, value, remaining, ctx)
                fields.update(named)
                errors.extend(errs)
            elif isinstance(value, list):
                resolved, errs = await _resolve_list(provider, value, remaining, ctx)
                items.extend(resolved)
                errors.extend(errs)
                as_list = True
            else:
                log_stage(logger, "expand", "expand.ignored", shape=type(value).__name__)
            continue

        if isinstance(value, dict):
            child, errs = await _walk(provider, value, depth, ctx)
            fields[key] = child
            errors.extend(errs)
        else:
            fields[key] = value

    if items and fields:
        fields[config.placeholder_key] = items
        return fields, errors
    # a requested list wins even when it came back empty
    if as_list:
        return items, errors
    return fields, errors


async def _resolve_named(provider: Provider, refs: JsonObject, depth: int, ctx: Any) -> tuple[JsonObject, _Errors]:
    config = provider.config
    resolved: JsonObject = {}
    errors: _Errors = []

    for name, value in refs.items():
        if config.is_excluded(name):
            continue
        core_metrics.counter("expand_refs_total", 1, shape="named")
        if isinstance(value, list):
            items, errs = await _resolve_list(provider, value, depth, ctx)
            resolved[name] = items
            errors.extend(errs)
        elif isinstance(value, str):
            doc = await _load_one(provider, value, ctx)
            if doc is None:
                continue
            child, errs = await _walk(provider, doc, depth, ctx)
            resolved[name] = child
            errors.extend(errs)
        else:
            log_stage(logger, "expand", "expand.ignored", shape=type(value).__name__, name=name)

    return resolved, errors


async def _load_one(provider: Provider, key: str, ctx: Any) -> Optional[JsonObject]:
    # Single named references are optional relations: any failure is a miss.
    try:
        value = provider.deserialize(await provider.read_one(key, ctx))
    except ExpandError as exc:
        _note_miss(key, type(exc).__name__)
        return None
    if not isinstance(value, dict):
        _note_miss(key, "not_a_mapping")
        return None
    return value


async def _resolve_list(provider: Provider, keys: Sequence[Any], depth: int, ctx: Any) -> tuple[JsonArray, _Errors]:
    wanted = [k for k in keys if isinstance(k, str)]
    errors: _Errors = []
    if not wanted:
        return [], errors
    core_metrics.counter("expand_refs_total", 1, shape="list")

    try:
        batch = await provider.read_many(wanted, ctx)
    except BatchFetchError as exc:
        errors.append(exc)
        batch = exc.partial
        log_stage(logger, "expand", "expand.batch_failed",
                  keys=len(wanted), failed=len(exc.keys), salvaged=len(batch))
    except ExpandError as exc:
        errors.append(exc)
        batch = {}
        log_stage(logger, "expand", "expand.batch_failed",
                  keys=len(wanted), error_type=type(exc).__name__)

    items: JsonArray = []
    for key in wanted:
        raw = batch.get(provider.normalize(key))
        if raw is None:
            _note_miss(key, "absent")
            continue
        try:
            value = provider.deserialize(raw)
        except PayloadDecodeError:
            _note_miss(key, "undecodable")
            continue
        if not isinstance(value, dict):
            _note_miss(key, "not_a_mapping")
            continue
        child, errs = await _walk(provider, value, depth, ctx)
        errors.extend(errs)
        if child is not None:
            items.append(child)
    return items, errors


def _note_miss(key: str, reason: str) -> None:
    core_metrics.counter("expand_misses_total", 1, reason=reason)
    log_stage(logger, "expand", "expand.miss", key_fp=cache_key_fp(key), reason=reason)


__all__ = ["Expansion", "expand"]
