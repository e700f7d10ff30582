"""Retry delays for origin reads.

All timing decisions for retried HTTP calls live here so they can be tuned
without touching call-sites.
"""

from __future__ import annotations
import asyncio
import os
from typing import Literal

__all__ = ["compute_backoff_delay_ms", "async_backoff_sleep"]

BackoffMode = Literal["exp_equal_jitter", "exp_full_jitter", "decorrelated"]

def _unit() -> float:
    """Uniform-ish sample in [0, 1] from one random byte."""
    return os.urandom(1)[0] / 255.0

def compute_backoff_delay_ms(
    attempt: int,
    *,
    base_ms: int,
    jitter_ms: int,
    cap_ms: int | None = None,
    mode: BackoffMode = "exp_equal_jitter",
) -> int:
    """
    Delay before retry number *attempt* (1-based), in milliseconds.

      exp_equal_jitter  base·2^(n-1) + [0, jitter)
      exp_full_jitter   [0, base·2^(n-1) + jitter]
      decorrelated      max(base, 3·u·base·2^(n-2))

    Clamped to *cap_ms* when given.
    """
    n = max(1, attempt)
    grown = base_ms << (n - 1)
    if mode == "exp_full_jitter":
        delay = int(_unit() * (grown + max(1, jitter_ms)))
    elif mode == "decorrelated":
        delay = max(base_ms, int(_unit() * 3 * (base_ms << max(0, n - 2))))
    else:
        delay = grown + os.urandom(1)[0] % max(1, jitter_ms)
    if cap_ms is not None:
        delay = min(delay, cap_ms)
    return max(0, delay)

async def async_backoff_sleep(
    attempt: int,
    *,
    base_ms: int,
    jitter_ms: int,
    cap_ms: int | None = None,
    mode: BackoffMode = "exp_equal_jitter",
) -> int:
    """Sleep for the computed delay and return it (ms)."""
    delay_ms = compute_backoff_delay_ms(attempt, base_ms=base_ms, jitter_ms=jitter_ms, cap_ms=cap_ms, mode=mode)
    await asyncio.sleep(delay_ms / 1000.0)
    return delay_ms
