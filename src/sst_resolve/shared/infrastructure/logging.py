"""
Structured Logging
==================

One JSON object per log line, shared by the API, the breach sweep and
the outbox worker.

Every line carries the service name and environment. Lines emitted while
handling a request also carry its correlation ID, which lives in a
context variable set by the HTTP middleware. Keys that look like secrets
(webhook URLs, tokens) are masked before the line is written.

    logger = get_logger(__name__)
    logger.info("Ticket escalated", extra={"ticket_id": 42, "new_level": 2})
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from pythonjsonlogger.json import JsonFormatter

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

REDACTED = "***REDACTED***"
SENSITIVE_KEY_PARTS = ("password", "token", "api_key", "webhook", "secret")

# Third-party loggers that drown out ticket events at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "watchdog", "httpx")


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Mask string values whose key names a secret."""
    return {
        key: REDACTED
        if isinstance(value, str) and any(part in key.lower() for part in SENSITIVE_KEY_PARTS)
        else value
        for key, value in fields.items()
    }


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter that stamps service, environment and correlation ID."""

    def __init__(
        self,
        *args: Any,
        service: str = "sst-resolve",
        environment: str = "development",
        **kwargs: Any
    ):
        super().__init__(*args, **kwargs)
        self.service = service
        self.environment = environment

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["service"] = self.service
        log_record["environment"] = self.environment

        correlation_id = getattr(record, "correlation_id", None) or get_correlation_id()
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        log_record.update(redact(log_record))


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    service: str = "sst-resolve",
) -> None:
    """
    Route every logger through a single stdout JSON handler.

    Safe to call more than once; earlier handlers on the root logger are
    replaced.
    """
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(CustomJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        service=service,
        environment=environment,
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **context: Any) -> Iterator[None]:
    """
    Log how long a block took, and whether it raised.

        with log_latency(logger, "sla_breach_sweep"):
            ...
    """
    start = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except Exception:
        outcome = "error"
        raise
    finally:
        logger.info(
            f"{operation} finished",
            extra={
                "operation": operation,
                "outcome": outcome,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                **context,
            },
        )
