"""
core_utils.health – health-check routes for FastAPI services.

Provides attach_health_routes() to wire /healthz and /readyz with custom
liveness and readiness checks.
"""

import asyncio
from typing import Awaitable, Callable, Mapping, Union

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse

# A health check can return bool, a dict body, or an awaitable of either.
HealthCheck = Callable[[], Union[bool, dict, Awaitable[Union[bool, dict]]]]
HealthChecks = Mapping[str, HealthCheck]


async def _run_check(fn: HealthCheck) -> Union[bool, dict]:
    try:
        res = fn()
        if asyncio.iscoroutine(res):
            res = await res
        return res
    except Exception:
        # A failing probe is an answer ("not ready"), not a server error.
        return False


def attach_health_routes(app: FastAPI, *, checks: HealthChecks) -> None:
    """
    Register health-check endpoints on the app.

    GET /healthz -> {"status": "ok" | "fail"} or the check's dict.
    GET /readyz  -> {"ready": <bool>} (503 when not ready) or the check's dict.
    Missing checks default to healthy.
    """
    router = APIRouter()

    @router.get("/healthz")
    async def _healthz():
        fn = checks.get("liveness")
        res = True if fn is None else await _run_check(fn)
        if isinstance(res, dict):
            return res
        return {"status": "ok" if res else "fail"}

    @router.get("/readyz")
    async def _readyz():
        fn = checks.get("readiness")
        res = True if fn is None else await _run_check(fn)
        if isinstance(res, dict):
            return res
        return JSONResponse({"ready": bool(res)}, status_code=200 if res else 503)

    app.include_router(router)
