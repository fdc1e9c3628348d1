"""
Structured Logging
==================

JSON logs for the SLA engine, one object per line on stdout.

Every record carries the service name, environment and a UTC timestamp;
request-scoped records also carry correlation_id and tenant_id. Values
under secret-looking keys (api keys, tokens, webhook URLs) are redacted.

Usage:
    from supportdesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("SLA breached", extra={"ticket_id": "T-1001", "escalation_level": 1})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, MutableMapping, Optional

from pythonjsonlogger import jsonlogger

REDACTED = "***REDACTED***"
_SENSITIVE_MARKERS = ("password", "api_key", "secret", "webhook_url", "authorization")
_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "watchdog", "httpx", "openai")


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    if any(marker in lowered for marker in _SENSITIVE_MARKERS):
        return True
    # LLM usage fields such as prompt_tokens are not credentials
    return "token" in lowered and not lowered.endswith("tokens")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding service context and redacting secrets."""

    service: str = "supportdesk-sla-engine"
    environment: str = "unknown"

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["service"] = self.service
        log_record["environment"] = getattr(record, "environment", self.environment)

        for key, value in list(log_record.items()):
            if isinstance(value, str) and _is_sensitive(key):
                log_record[key] = REDACTED


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    service: Optional[str] = None,
) -> None:
    """
    Replace root handlers with a single JSON stdout handler.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        environment: Added to every record
        service: Added to every record; defaults to the package name
    """
    numeric_level = getattr(logging, level.upper())

    formatter = CustomJsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    formatter.environment = environment
    if service:
        formatter.service = service

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its context into per-call extra."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_context_logger(
    name: str,
    correlation_id: Optional[str] = None,
    **context: Any,
) -> logging.Logger | logging.LoggerAdapter:
    """
    Logger bound to request context.

    Args:
        name: Logger name
        correlation_id: Request correlation ID
        **context: Further fields added to every record, e.g. tenant_id
    """
    bound = {key: value for key, value in context.items() if value is not None}
    if correlation_id:
        bound["correlation_id"] = correlation_id
    logger = get_logger(name)
    return ContextLoggerAdapter(logger, bound) if bound else logger


@contextmanager
def log_latency(
    logger: logging.Logger,
    operation: str,
    slow_ms: Optional[float] = None,
    **extra_context: Any,
) -> Iterator[None]:
    """
    Log how long the wrapped block took.

    Logged at info, or at warning when the block took longer than slow_ms.

    Usage:
        with log_latency(logger, "sla_breach_scan", slow_ms=5000):
            await scanner.check_breaches()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        slow = slow_ms is not None and latency_ms > slow_ms
        (logger.warning if slow else logger.info)(
            f"{operation} {'slow' if slow else 'completed'}",
            extra={
                "operation": operation,
                "latency_ms": latency_ms,
                **extra_context,
            },
        )
