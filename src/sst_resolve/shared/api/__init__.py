"""Shared HTTP middleware and exception handlers."""

from sst_resolve.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    request_validation_exception_handler,
    global_exception_handler,
)

__all__ = [
    "CorrelationIDMiddleware",
    "LoggingMiddleware",
    "application_exception_handler",
    "request_validation_exception_handler",
    "global_exception_handler",
]
