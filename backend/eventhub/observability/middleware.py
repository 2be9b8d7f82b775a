from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from eventhub.core.errors import EventHubError, SourceNotFoundError, SyncInProgressError
from eventhub.schemas.common import fail
from .metrics import record_latency, REQUEST_COUNTER, REQUEST_LATENCY

logger = structlog.get_logger("http")

_DOMAIN_STATUS = {
    SourceNotFoundError: (status.HTTP_404_NOT_FOUND, "not_found"),
    SyncInProgressError: (status.HTTP_409_CONFLICT, "sync_in_progress"),
}


async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=str(request.url.path),
        user_agent=request.headers.get("user-agent", "-"),
    )
    try:
        response = await call_next(request)
    except Exception:
        duration = (time.perf_counter() - start) * 1000
        _record(request, duration, "500")
        logger.exception(
            "request.error",
            status_code=500,
            duration_ms=round(duration, 2),
        )
        structlog.contextvars.clear_contextvars()
        raise

    duration = (time.perf_counter() - start) * 1000
    _record(request, duration, str(response.status_code))
    logger.info(
        "request.completed",
        status_code=response.status_code,
        duration_ms=round(duration, 2),
    )
    response.headers["X-Request-Id"] = request_id
    structlog.contextvars.clear_contextvars()
    return response


def _record(request: Request, duration_ms: float, status_code: str) -> None:
    record_latency(request.url.path, duration_ms)
    REQUEST_COUNTER.labels(
        path=request.url.path,
        method=request.method,
        status=status_code,
    ).inc()
    REQUEST_LATENCY.labels(path=request.url.path, method=request.method).observe(
        duration_ms / 1000
    )


def register_request_middleware(app: FastAPI) -> None:
    app.middleware("http")(request_context_middleware)


def domain_exception_handler(request: Request, exc: EventHubError) -> JSONResponse:
    """Map domain errors that escape a route onto the error envelope."""
    status_code, code = _DOMAIN_STATUS.get(type(exc), (status.HTTP_400_BAD_REQUEST, "domain_error"))
    logger.warning("request.domain_error", exc_type=type(exc).__name__, error=str(exc))
    return fail(code, str(exc), status_code=status_code)


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "request.unhandled_exception",
        exc_type=type(exc).__name__,
        error=str(exc),
    )
    details = {"request_id": request_id} if request_id else None
    return fail(
        "internal_error",
        "Internal Server Error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        details=details,
    )
