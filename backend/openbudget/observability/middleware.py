from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from openbudget.schemas.common import fail

from .metrics import record_latency, REQUEST_COUNTER, REQUEST_LATENCY

logger = structlog.get_logger("http")

REQUEST_ID_HEADER = "X-Request-Id"


def _route_label(request: Request) -> str:
    # route template, so budget codes in the URL don't explode cardinality
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _observe(request: Request, status_code: int, started: float) -> float:
    elapsed_ms = (time.perf_counter() - started) * 1000
    label = _route_label(request)
    record_latency(label, elapsed_ms)
    REQUEST_COUNTER.labels(path=label, method=request.method, status=str(status_code)).inc()
    REQUEST_LATENCY.labels(path=label, method=request.method).observe(elapsed_ms / 1000)
    return round(elapsed_ms, 2)


async def request_context_middleware(request: Request, call_next):
    """Tag the request with an id, bind it to every log line, and time it."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=request.url.path)
    started = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request.error", status_code=500, duration_ms=_observe(request, 500, started))
            raise
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "request.completed",
            status_code=response.status_code,
            duration_ms=_observe(request, response.status_code, started),
        )
        return response
    finally:
        structlog.contextvars.clear_contextvars()


def register_request_middleware(app: FastAPI) -> None:
    app.middleware("http")(request_context_middleware)


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.error("request.unhandled_exception", exc_type=type(exc).__name__, error=str(exc), exc_info=exc)
    return fail(
        "INTERNAL_ERROR",
        "Internal Server Error",
        status_code=500,
        details={"request_id": request_id} if request_id else None,
    )
