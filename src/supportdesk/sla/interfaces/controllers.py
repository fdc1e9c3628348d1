"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA policies, instances, breach scans and metrics.

Controllers are thin - they delegate to application services.
Every tenant-scoped route reads the tenant from the X-Tenant-ID header.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.config import Priority, SLAStatus, settings
from supportdesk.core import ResourceNotFoundException
from supportdesk.infrastructure.database import get_session
from supportdesk.shared.api.dependencies import get_tenant_id
from supportdesk.shared.infrastructure.logging import get_context_logger, get_logger
from supportdesk.sla.application import (
    BreachCheckResponse,
    DueDateRequest,
    DueDateResponse,
    InstanceListResponse,
    PolicyListResponse,
    SLAInstanceCreateDTO,
    SLAInstanceResponse,
    SLAInstanceService,
    SLAMetrics,
    SLAPolicyCreateDTO,
    SLAPolicyResponse,
    SLAPolicyService,
    SLAPolicyUpdateDTO,
    TicketEventDTO,
)
from supportdesk.sla.domain import DueDateCalculator, DurationTarget
from supportdesk.sla.infrastructure import (
    SQLAlchemySLAInstanceRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketReader,
    build_breach_scanner,
    get_broadcast_channel,
    get_notification_dispatcher,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Enforcement"])


# ========== Example payloads for Swagger ==========

POLICY_CREATE_EXAMPLE = {
    "name": "Enterprise urgent",
    "priority": "high",
    "conditions": [
        {"field": "priority", "operator": "in", "value": ["urgent", "high"]},
        {"field": "customer.is_vip", "operator": "equals", "value": True}
    ],
    "targets": {"response_time": 30, "resolution_time": 120},
    "business_hours": {
        "enabled": True,
        "timezone": "Europe/Berlin",
        "schedule": {
            "monday": {"enabled": True, "start": "09:00", "end": "17:00"},
            "tuesday": {"enabled": True, "start": "09:00", "end": "17:00"}
        }
    },
    "holidays": ["2024-12-25"],
    "escalation_rules": [
        {"level": 1, "time_threshold": 0, "action": "notify", "recipients": ["team-lead-1"]}
    ]
}

INSTANCE_RESPONSE_EXAMPLE = {
    "id": "5b0c1f7e-7a63-4f1e-9f0e-2f5b6f7c8d90",
    "sla_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
    "ticket_id": "TICKET-001",
    "tenant_id": "acme",
    "status": "breached",
    "first_response_due": "2024-01-15T10:30:00Z",
    "resolution_due": "2024-01-15T12:00:00Z",
    "first_response_at": None,
    "resolution_at": None,
    "paused_at": None,
    "paused_duration": 0,
    "breach_count": 1,
    "escalation_level": 1,
    "notifications": [
        {
            "type": "breach",
            "timestamp": "2024-01-15T10:35:00Z",
            "breaches": ["first_response_breach"],
            "escalated_to": 1
        }
    ],
    "metadata": {},
    "created_at": "2024-01-15T10:00:00Z",
    "updated_at": "2024-01-15T10:35:00Z"
}

METRICS_RESPONSE_EXAMPLE = {
    "total_policies": 3,
    "active_policies": 2,
    "total_instances": 40,
    "breached_instances": 4,
    "average_first_response_minutes": 18.5,
    "average_resolution_minutes": 96.25,
    "first_response_compliance": 87.5,
    "resolution_compliance": 92.31
}


# ========== Dependencies ==========

async def get_policy_service(session: AsyncSession = Depends(get_session)) -> SLAPolicyService:
    return SLAPolicyService(SQLAlchemySLAPolicyRepository(session), SQLAlchemyTicketReader(session))


async def get_instance_service(session: AsyncSession = Depends(get_session)) -> SLAInstanceService:
    policies = SQLAlchemySLAPolicyRepository(session)
    tickets = SQLAlchemyTicketReader(session)
    return SLAInstanceService(
        SQLAlchemySLAInstanceRepository(session),
        SLAPolicyService(policies, tickets),
        policies,
        ticket_reader=tickets,
        calculator=DueDateCalculator.from_name(settings.due_date_strategy),
    )


# ========== Policies ==========

@router.post(
    "/policies",
    response_model=SLAPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA policy",
    description="""
    Create a tenant SLA policy.

    **Conditions** are AND-ed. Operators: `equals`, `==`, `contains`, `in`, `has`.
    Fields may be dotted paths such as `customer.is_vip`.

    **Selection**: the oldest active policy whose conditions all hold wins;
    when none holds, the oldest active policy is the fallback.
    """,
    responses={201: {"content": {"application/json": {"example": POLICY_CREATE_EXAMPLE}}}}
)
async def create_policy(
    dto: SLAPolicyCreateDTO,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.from_entity(await service.create_policy(tenant_id, dto))


@router.get("/policies", response_model=PolicyListResponse, summary="List SLA policies")
async def list_policies(
    tenant_id: str = Depends(get_tenant_id),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    priority: Optional[Priority] = Query(None, description="Filter by policy priority"),
    service: SLAPolicyService = Depends(get_policy_service)
):
    items, total = await service.list_policies(tenant_id, page=page, limit=limit, priority=priority)
    return PolicyListResponse(
        items=[SLAPolicyResponse.from_entity(p) for p in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/policies/{policy_id}", response_model=SLAPolicyResponse, summary="Get an SLA policy")
async def get_policy(
    policy_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.from_entity(await service.get_policy(tenant_id, policy_id))


@router.put("/policies/{policy_id}", response_model=SLAPolicyResponse, summary="Update an SLA policy")
async def update_policy(
    policy_id: str,
    dto: SLAPolicyUpdateDTO,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    return SLAPolicyResponse.from_entity(await service.update_policy(tenant_id, policy_id, dto))


@router.delete(
    "/policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an SLA policy"
)
async def delete_policy(
    policy_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    await service.delete_policy(tenant_id, policy_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Tickets ==========

@router.get(
    "/tickets/{ticket_id}/policy",
    response_model=SLAPolicyResponse,
    summary="Resolve the SLA policy that applies to a ticket"
)
async def resolve_ticket_policy(
    ticket_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAPolicyService = Depends(get_policy_service)
):
    policy = await service.resolve_policy_for_ticket(tenant_id, ticket_id)
    if policy is None:
        raise ResourceNotFoundException("Active SLA policy for ticket", ticket_id)
    return SLAPolicyResponse.from_entity(policy)


@router.post(
    "/tickets/{ticket_id}/instance",
    response_model=SLAInstanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start SLA tracking for a ticket",
    description="Selects the ticket's policy and creates an instance whose clock starts now."
)
async def create_ticket_instance(
    ticket_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    instance = await service.create_instance_for_ticket_id(tenant_id, ticket_id)
    if instance is None:
        raise ResourceNotFoundException("Active SLA policy for ticket", ticket_id)
    return SLAInstanceResponse.from_entity(instance)


@router.get(
    "/tickets/{ticket_id}/instance",
    response_model=SLAInstanceResponse,
    summary="Get the most recent SLA instance of a ticket",
    responses={200: {"content": {"application/json": {"example": INSTANCE_RESPONSE_EXAMPLE}}}}
)
async def get_ticket_instance(
    ticket_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    return SLAInstanceResponse.from_entity(await service.get_instance_by_ticket(tenant_id, ticket_id))


@router.post(
    "/tickets/{ticket_id}/events",
    response_model=SLAInstanceResponse,
    summary="Apply a ticket lifecycle event",
    description="""
    Apply `first_response`, `resolution`, `pause` or `resume` to the ticket's
    current instance. Events that are not legal from the current status are
    ignored and the unchanged instance is returned.
    """
)
async def handle_ticket_event(
    ticket_id: str,
    event: TicketEventDTO,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    log = get_context_logger(__name__, getattr(request.state, "correlation_id", None), tenant_id=tenant_id)
    instance = await service.handle_ticket_event(tenant_id, ticket_id, event)
    if instance is None:
        raise ResourceNotFoundException("SLA instance for ticket", ticket_id)
    log.info(
        "Ticket event handled",
        extra={"ticket_id": ticket_id, "event_type": event.type.value, "status": instance.status.value}
    )
    return SLAInstanceResponse.from_entity(instance)


# ========== Instances ==========

@router.post(
    "/instances",
    response_model=SLAInstanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA instance for an explicit policy"
)
async def create_instance(
    dto: SLAInstanceCreateDTO,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    return SLAInstanceResponse.from_entity(await service.create_instance(tenant_id, dto))


@router.get("/instances", response_model=InstanceListResponse, summary="List SLA instances")
async def list_instances(
    tenant_id: str = Depends(get_tenant_id),
    sla_id: Optional[str] = Query(None, description="Filter by policy"),
    ticket_id: Optional[str] = Query(None, description="Filter by ticket"),
    instance_status: Optional[SLAStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: SLAInstanceService = Depends(get_instance_service)
):
    items, total = await service.list_instances(
        tenant_id,
        sla_id=sla_id,
        ticket_id=ticket_id,
        status=instance_status,
        page=page,
        limit=limit,
    )
    return InstanceListResponse(
        items=[SLAInstanceResponse.from_entity(i) for i in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/instances/{instance_id}", response_model=SLAInstanceResponse, summary="Get an SLA instance")
async def get_instance(
    instance_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    return SLAInstanceResponse.from_entity(await service.get_instance(tenant_id, instance_id))


@router.post(
    "/instances/{instance_id}/events",
    response_model=SLAInstanceResponse,
    summary="Apply a lifecycle event to an SLA instance"
)
async def handle_instance_event(
    instance_id: str,
    event: TicketEventDTO,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    instance = await service.handle_event_by_instance_id(tenant_id, instance_id, event)
    return SLAInstanceResponse.from_entity(instance)


@router.post(
    "/instances/{instance_id}/cancel",
    response_model=SLAInstanceResponse,
    summary="Cancel an SLA instance"
)
async def cancel_instance(
    instance_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: SLAInstanceService = Depends(get_instance_service)
):
    return SLAInstanceResponse.from_entity(await service.cancel_instance(tenant_id, instance_id))


# ========== Breaches, metrics, calendar ==========

@router.post(
    "/breaches/check",
    response_model=BreachCheckResponse,
    summary="Run one breach scan now",
    description="""
    Sweep all tenants for ACTIVE instances past a due date. Returns the
    instances moved to BREACHED by this run. When a scheduled scan is in
    progress the call returns immediately with no transitions.
    """
)
async def check_breaches(session: AsyncSession = Depends(get_session)):
    scanner = build_breach_scanner(
        session,
        dispatcher=get_notification_dispatcher(),
        broadcaster=get_broadcast_channel(),
    )
    transitioned = await scanner.check_breaches()
    return BreachCheckResponse(
        transitioned=len(transitioned),
        instances=[SLAInstanceResponse.from_entity(i) for i in transitioned],
    )


@router.get(
    "/metrics",
    response_model=SLAMetrics,
    summary="SLA performance metrics for a tenant",
    responses={200: {"content": {"application/json": {"example": METRICS_RESPONSE_EXAMPLE}}}}
)
async def get_metrics(
    tenant_id: str = Depends(get_tenant_id),
    start: Optional[datetime] = Query(None, description="Only instances created at or after"),
    end: Optional[datetime] = Query(None, description="Only instances created at or before"),
    service: SLAInstanceService = Depends(get_instance_service)
):
    return await service.get_metrics(tenant_id, start, end)


@router.post(
    "/due-date",
    response_model=DueDateResponse,
    summary="Preview a due date",
    description="Computes a due instant with the configured due date strategy."
)
async def preview_due_date(request: DueDateRequest):
    calculator = DueDateCalculator.from_name(settings.due_date_strategy)
    due = calculator.calculate_due_date(
        request.start,
        DurationTarget(request.amount, request.unit.value),
        request.business_hours,
        request.holidays,
    )
    return DueDateResponse(start=request.start, due=due, strategy=calculator.strategy.name)


@router.websocket("/stream")
async def stream_tenant_events(websocket: WebSocket, tenant_id: str = Query(..., min_length=1)):
    """Push tenant broadcast events (sla_breach, ...) to a connected client."""
    channel = get_broadcast_channel()
    queue = channel.subscribe(tenant_id)
    await websocket.accept()
    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        pass
    finally:
        channel.unsubscribe(tenant_id, queue)
        logger.debug("Broadcast subscriber disconnected", extra={"tenant_id": tenant_id})


# Export router for inclusion in main app
sla_router = router
