"""
Shared API Middleware
======================

Request tracing, request statistics and exception handlers shared by the
SLA and routing routers.
"""

import time
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from supportdesk.config import settings
from supportdesk.core import ApplicationException
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Propagates X-Correlation-ID, generating one when the caller sends none."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class RequestStats:
    """
    Process-wide request counters.

    Requests are grouped by their first path segment ("sla", "routing",
    "health", ...). Reported by the health endpoint.
    """

    def __init__(self):
        self.total = 0
        self.server_errors = 0
        self.total_response_time = 0.0
        self.by_module: Dict[str, int] = defaultdict(int)

    def record(self, path: str, status_code: int, elapsed: float) -> None:
        self.total += 1
        self.total_response_time += elapsed
        if status_code >= 500:
            self.server_errors += 1
        module = path.strip("/").split("/", 1)[0] or "root"
        self.by_module[module] += 1

    def snapshot(self) -> dict:
        average_ms = self.total_response_time / self.total * 1000 if self.total else 0.0
        return {
            "total": self.total,
            "server_errors": self.server_errors,
            "average_response_ms": round(average_ms, 2),
            "by_module": dict(self.by_module),
        }


request_stats = RequestStats()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records every request in RequestStats and sets X-Response-Time."""

    def __init__(self, app: ASGIApp, stats: Optional[RequestStats] = None):
        super().__init__(app)
        self.stats = stats or request_stats

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start_time

        self.stats.record(request.url.path, response.status_code, elapsed)
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with tenant and correlation id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_info = {
            "correlation_id": _correlation_id(request),
            "method": request.method,
            "path": request.url.path,
            "tenant_id": request.headers.get("X-Tenant-ID"),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **request_info,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                **request_info,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


def _error_body(request: Request, detail: str, **extra) -> dict:
    return {
        "detail": detail,
        "correlation_id": _correlation_id(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """Answer with the status the exception class declares."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Application error",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
        }
    )

    body = _error_body(request, exc.message, error_type=type(exc).__name__)
    if exc.details and exc.status_code < 500:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; internals are only exposed in development."""
    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    debug_info = str(exc) if settings.environment == "development" else None
    return JSONResponse(
        status_code=500,
        content=_error_body(request, "Internal server error", debug_info=debug_info),
    )
