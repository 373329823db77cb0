import json
import logging
import time
import traceback
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sales_engine.core.config import settings
from sales_engine.services.errors import (
    DuplicateSubmissionError,
    PartialRollbackError,
    SaleCommitError,
    SaleError,
    SaleNotFoundError,
    SaleValidationError,
    StockError,
)

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
logger = logging.getLogger("sales_engine.api")
sales_logger = logging.getLogger("sales_engine.sales")


def setup_observability() -> None:
    for target in (logger, sales_logger):
        if target.handlers:
            continue
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        target.addHandler(handler)
        target.setLevel(logging.INFO)
        target.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def log_event(event: str, *, level: str = "info", **fields: Any) -> None:
    payload = {"event": event, "request_id": get_request_id(), **fields}
    getattr(sales_logger, level)(json.dumps(payload, default=str))


def _error_response(
    *,
    status_code: int,
    request: Request,
    code: str,
    message: str,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or get_request_id()
    )
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "error": {
                "code": code,
                "message": message,
                "request_id": request_id,
                "path": request.url.path,
                "details": details,
            }
        },
    )


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    token = request_id_ctx.set(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            json.dumps(
                {
                    "event": "request",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                }
            )
        )
        request_id_ctx.reset(token)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-API-Timeout-Hint-Ms"] = str(settings.api_timeout_hint_ms)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or get_request_id()
    )
    logger.error(
        json.dumps(
            {
                "event": "unhandled_exception",
                "request_id": request_id,
                "path": request.url.path,
                "error": str(exc),
                "traceback": traceback.format_exc(limit=10),
            }
        )
    )
    return _error_response(
        status_code=500,
        request=request,
        code="internal_error",
        message="Internal server error",
    )


_STATUS_CODE_MAP = {
    400: "bad_request",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    503: "unavailable",
}


async def http_exception_handler(request: Request, exc: HTTPException):
    code = _STATUS_CODE_MAP.get(exc.status_code, "http_error")
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    details = None if isinstance(exc.detail, str) else exc.detail
    return _error_response(
        status_code=exc.status_code,
        request=request,
        code=code,
        message=message,
        details=details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", []) if part != "body"]
        details.append(
            {
                "field": ".".join(location) if location else "body",
                "message": err.get("msg", "Invalid value"),
                "type": err.get("type"),
            }
        )

    return _error_response(
        status_code=422,
        request=request,
        code="validation_error",
        message="Validation failed",
        details=details,
    )


def _sale_error_status(exc: SaleError) -> int:
    if isinstance(exc, SaleValidationError):
        return 422
    if isinstance(exc, (StockError, DuplicateSubmissionError)):
        return 409
    if isinstance(exc, SaleNotFoundError):
        return 404
    if isinstance(exc, SaleCommitError):
        return 503
    return 500


async def sale_error_handler(request: Request, exc: SaleError):
    if isinstance(exc, PartialRollbackError):
        # operator alarm: the store holds a half-reversed sale
        logger.error(
            json.dumps(
                {
                    "event": "partial_rollback",
                    "request_id": get_request_id(),
                    "path": request.url.path,
                    "sale_id": exc.sale_id,
                    "failed_step": exc.failed_step,
                    "pending_undo": exc.pending_undo,
                }
            )
        )
    return _error_response(
        status_code=_sale_error_status(exc),
        request=request,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )
