from __future__ import annotations
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from core_logging import current_request_id, get_logger, log_stage
from core_logging.error_codes import ErrorCode
from core_utils import jsonx
from core_utils.ids import generate_request_id

def _envelope(code: ErrorCode, message: str, request_id: str, details: object | None = None) -> dict:
    err: dict = {"code": code.value, "message": message, "request_id": request_id}
    if details is not None:
        err["details"] = jsonx.sanitize(details)
    return {"error": err, "request_id": request_id}

def raise_http_error(
    status_code: int,
    code: ErrorCode,
    message: str,
    request_id: str | None = None,
    *,
    details: object | None = None,
) -> HTTPException:
    """
    Build (not raise) an HTTPException carrying the canonical error envelope;
    call-sites write ``raise raise_http_error(...)``.
    """
    rid = request_id or current_request_id() or generate_request_id()
    return HTTPException(status_code=status_code, detail=_envelope(code, message, rid, details))

def attach_standard_error_handlers(app: FastAPI, *, service: str) -> None:
    """
    Uniform error shaping:
      - 422: request validation, canonical envelope
      - HTTP errors: envelope passthrough (plain detail wrapped)
      - 500: catch-all envelope
    """
    logger = get_logger(service)

    def _rid() -> str:
        return current_request_id() or generate_request_id()

    @app.exception_handler(RequestValidationError)
    async def _validation_exc_handler(request: Request, exc: RequestValidationError):
        rid = _rid()
        log_stage(logger, "validation", "validation_failed", request_id=rid,
                  errors=jsonx.sanitize(exc.errors()), path=str(request.url.path))
        return JSONResponse(
            status_code=422,
            content=_envelope(ErrorCode.validation_failed, "Request validation failed", rid,
                              {"errors": exc.errors()}),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc_handler(_: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return JSONResponse(status_code=exc.status_code, content=exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def _unhandled_exc_handler(_: Request, exc: Exception):
        rid = _rid()
        log_stage(logger, "request", "unhandled_exception",
                  request_id=rid, error=str(exc), error_type=exc.__class__.__name__)
        return JSONResponse(
            status_code=500,
            content=_envelope(ErrorCode.internal, "Unexpected error", rid,
                              {"type": exc.__class__.__name__}),
        )
