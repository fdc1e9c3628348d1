"""
Shared API Layer
================

Middleware, exception handlers and dependencies applied to every router.
"""

from supportdesk.shared.api.dependencies import get_tenant_id
from supportdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    MetricsMiddleware,
    LoggingMiddleware,
    RequestStats,
    application_exception_handler,
    global_exception_handler,
    request_stats,
)

__all__ = [
    "CorrelationIDMiddleware",
    "MetricsMiddleware",
    "LoggingMiddleware",
    "RequestStats",
    "request_stats",
    "application_exception_handler",
    "global_exception_handler",
    "get_tenant_id",
]
