"""
HTTP Middleware and Error Mapping
=================================

Correlation IDs, access logging and the translation of
`ApplicationException` subclasses into the JSON error body
`{error, detail, details, correlation_id}`.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sst_resolve.core import ApplicationException, ValidationException
from sst_resolve.shared.infrastructure.logging import get_logger, set_correlation_id

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Correlation-ID or mint one, and echo it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())

        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            set_correlation_id(None)

        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request with method, path, status and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        route = {"method": request.method, "path": request.url.path}

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("Request crashed", extra={
                **route, "error": str(e), "elapsed_ms": _elapsed_ms(started),
            })
            raise

        logger.info("Request handled", extra={
            **route,
            "status_code": response.status_code,
            "elapsed_ms": _elapsed_ms(started),
            "client": request.client.host if request.client else None,
        })
        return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def error_response(request: Request, exc: ApplicationException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "detail": exc.message,
            "details": exc.details,
            "correlation_id": _correlation_id(request),
        }
    )


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Translate domain and application failures into HTTP responses.

    The status code comes from the exception class; server-side failures
    are logged at error level, client errors at info.
    """
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "error_message": exc.message,
        }
    )
    return error_response(request, exc)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters are reported as 400."""
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
        for error in exc.errors()
    ]
    return error_response(request, ValidationException("Invalid request", {"errors": errors}))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything not raised as an ApplicationException becomes a 500."""
    logger.error("Unhandled error", exc_info=exc, extra={
        "path": request.url.path,
        "method": request.method,
        "error_type": type(exc).__name__,
    })

    # Exception text only leaves the process in development
    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "detail": "Internal server error",
            "details": {"debug_info": str(exc)} if is_dev else {},
            "correlation_id": _correlation_id(request),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )
