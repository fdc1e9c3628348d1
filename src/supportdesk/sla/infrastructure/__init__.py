"""
SLA Infrastructure Layer
=========================

Infrastructure layer for the SLA enforcement module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Concrete repository implementations
- External: Notification webhook, tenant broadcast, scheduler
"""

from supportdesk.sla.infrastructure.external import (
    BREACH_SCAN_JOB_ID,
    CircuitBreaker,
    SLAScheduler,
    TenantBroadcastChannel,
    WebhookNotificationDispatcher,
    build_breach_scanner,
    close_external_clients,
    get_broadcast_channel,
    get_notification_dispatcher,
    run_breach_scan_job,
)
from supportdesk.sla.infrastructure.models import SLAInstanceModel, SLAPolicyModel
from supportdesk.sla.infrastructure.repositories import (
    SQLAlchemySLAInstanceRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketReader,
)

__all__ = [
    "SLAPolicyModel",
    "SLAInstanceModel",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemySLAInstanceRepository",
    "SQLAlchemyTicketReader",
    "CircuitBreaker",
    "WebhookNotificationDispatcher",
    "TenantBroadcastChannel",
    "SLAScheduler",
    "BREACH_SCAN_JOB_ID",
    "build_breach_scanner",
    "run_breach_scan_job",
    "get_notification_dispatcher",
    "get_broadcast_channel",
    "close_external_clients",
]
