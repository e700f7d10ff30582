"""
core_metrics – tiny helpers so packages can record counters / histograms
without owning Prometheus collectors themselves. Collectors are created
lazily on first use and keyed by name; the label set is fixed by the first
call for a given name.
"""

from __future__ import annotations

import threading
import time as _time
from typing import Any, Dict, Tuple

from prometheus_client import REGISTRY, Counter, Histogram

_COUNTERS: Dict[str, Tuple[Counter, Tuple[str, ...]]] = {}
_HISTOS: Dict[str, Tuple[Histogram, Tuple[str, ...]]] = {}
_LOCK = threading.Lock()

_LATENCY_BUCKETS_MS = (1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000)


def _existing(name: str) -> Any:
    # collectors registered by an earlier import of this module (test reloads)
    return REGISTRY._names_to_collectors.get(name)  # type: ignore[attr-defined]


def _labelled(metric: Any, labelnames: Tuple[str, ...], attrs: Dict[str, Any]) -> Any:
    if not labelnames:
        return metric
    return metric.labels(**{k: str(attrs.get(k, "")) for k in labelnames})


def counter(name: str, inc: int | float = 1, **attrs: Any) -> None:
    """Increment counter *name* by *inc*; keyword args become labels."""
    with _LOCK:
        entry = _COUNTERS.get(name)
        if entry is None:
            labelnames = tuple(sorted(attrs))
            metric = _existing(name) or Counter(name, f"Counter for {name}", labelnames)
            entry = _COUNTERS[name] = (metric, labelnames)
    metric, labelnames = entry
    _labelled(metric, labelnames, attrs).inc(inc)


def histogram(name: str, value: float, **attrs: Any) -> None:
    """Record *value* in histogram *name*; keyword args become labels."""
    with _LOCK:
        entry = _HISTOS.get(name)
        if entry is None:
            labelnames = tuple(sorted(attrs))
            kwargs: Dict[str, Any] = {}
            if name.endswith("_ms"):
                kwargs["buckets"] = _LATENCY_BUCKETS_MS
            metric = _existing(name) or Histogram(name, f"Histogram for {name}", labelnames, **kwargs)
            entry = _HISTOS[name] = (metric, labelnames)
    metric, labelnames = entry
    _labelled(metric, labelnames, attrs).observe(value)


def record_latency_ms(name: str, t0: float, **attrs: Any) -> float:
    """Record elapsed time since *t0* (``time.perf_counter()``) in *name*; returns ms."""
    dt_ms = (_time.perf_counter() - t0) * 1000.0
    histogram(name, dt_ms, **attrs)
    return dt_ms


__all__ = ["counter", "histogram", "record_latency_ms"]
