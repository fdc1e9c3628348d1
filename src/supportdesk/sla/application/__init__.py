"""
SLA Application Layer
======================

Application layer for the SLA enforcement module.

Contains:
- Services: Policy CRUD, instance lifecycle, metrics
- Breach scanning and escalation notification
- DTOs: Data transfer objects for API serialization
- Ports: Repository and side-channel interfaces

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from supportdesk.sla.application.breaches import BreachScanner, EscalationNotifier, get_scan_guard
from supportdesk.sla.application.dto import (
    BreachCheckResponse,
    BreachRecordResponse,
    DueDateRequest,
    DueDateResponse,
    InstanceListResponse,
    PolicyConditionDTO,
    PolicyListResponse,
    SLAInstanceCreateDTO,
    SLAInstanceResponse,
    SLAMetrics,
    SLAPolicyCreateDTO,
    SLAPolicyResponse,
    SLAPolicyUpdateDTO,
    TicketEventDTO,
)
from supportdesk.sla.application.services import (
    DispatchResult,
    IBroadcastChannel,
    INotificationDispatcher,
    ISLAInstanceRepository,
    ISLAPolicyRepository,
    ITicketReader,
    NotificationRequest,
    SLAInstanceService,
    SLAPolicyService,
    summarize_instances,
    system_clock,
)

__all__ = [
    # DTOs
    "BreachCheckResponse",
    "BreachRecordResponse",
    "DueDateRequest",
    "DueDateResponse",
    "InstanceListResponse",
    "PolicyConditionDTO",
    "PolicyListResponse",
    "SLAInstanceCreateDTO",
    "SLAInstanceResponse",
    "SLAMetrics",
    "SLAPolicyCreateDTO",
    "SLAPolicyResponse",
    "SLAPolicyUpdateDTO",
    "TicketEventDTO",
    # Services
    "SLAPolicyService",
    "SLAInstanceService",
    "BreachScanner",
    "EscalationNotifier",
    "get_scan_guard",
    "summarize_instances",
    "system_clock",
    # Ports
    "ISLAPolicyRepository",
    "ISLAInstanceRepository",
    "ITicketReader",
    "INotificationDispatcher",
    "IBroadcastChannel",
    "NotificationRequest",
    "DispatchResult",
]
