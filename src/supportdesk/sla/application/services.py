"""
SLA Application Services
=========================

Policy resolution and SLA instance lifecycle, plus the ports they need:
policy and instance repositories, the ticket reader, and the notification
and broadcast channels. Lifecycle writes retry on version conflicts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from supportdesk.config import Priority, SLAStatus, TicketEventType, settings
from supportdesk.core import ConcurrencyConflictException, ResourceNotFoundException, ValidationException
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.sla.application.dto import (
    SLAInstanceCreateDTO,
    SLAMetrics,
    SLAPolicyCreateDTO,
    SLAPolicyUpdateDTO,
    TicketEventDTO,
)
from supportdesk.sla.domain import (
    DueDateCalculator,
    DurationTarget,
    PolicyCondition,
    PolicyMatcher,
    SLAInstance,
    SLAPolicy,
    TicketSnapshot,
    ensure_utc,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def get_by_id(self, policy_id: str, tenant_id: Optional[str] = None) -> Optional[SLAPolicy]:
        """Get policy by ID, optionally scoped to a tenant."""

    @abstractmethod
    async def list_active(self, tenant_id: str) -> List[SLAPolicy]:
        """Active policies of a tenant, oldest first."""

    @abstractmethod
    async def list(
        self,
        tenant_id: str,
        page: int = 1,
        limit: int = 20,
        priority: Optional[Priority] = None,
    ) -> Tuple[List[SLAPolicy], int]:
        """Page of policies, newest first, with the total count."""

    @abstractmethod
    async def count(self, tenant_id: str, active_only: bool = False) -> int:
        """Count a tenant's policies."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Persist a new policy."""

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        """Persist changes to a policy."""

    @abstractmethod
    async def delete(self, policy_id: str, tenant_id: str) -> bool:
        """Delete a policy. Returns False if it did not exist."""


class ISLAInstanceRepository(ABC):
    """
    Interface for SLA instance data access.

    save() performs an optimistic version check and raises
    ConcurrencyConflictException when the stored version moved on.
    """

    @abstractmethod
    async def get_by_id(self, instance_id: str, tenant_id: Optional[str] = None) -> Optional[SLAInstance]:
        """Get instance by ID, optionally scoped to a tenant."""

    @abstractmethod
    async def add(self, instance: SLAInstance) -> SLAInstance:
        """Persist a new instance."""

    @abstractmethod
    async def save(self, instance: SLAInstance) -> SLAInstance:
        """Persist changes; bumps instance.version."""

    @abstractmethod
    async def find_current_for_ticket(
        self, ticket_id: str, tenant_id: Optional[str] = None
    ) -> Optional[SLAInstance]:
        """Newest instance of a ticket that is not COMPLETED."""

    @abstractmethod
    async def get_latest_for_ticket(
        self, ticket_id: str, tenant_id: Optional[str] = None
    ) -> Optional[SLAInstance]:
        """Newest instance of a ticket regardless of status."""

    @abstractmethod
    async def find_overdue_active(self, now: datetime) -> List[SLAInstance]:
        """ACTIVE instances past a due date without its milestone, all tenants."""

    @abstractmethod
    async def list(
        self,
        tenant_id: str,
        filters: Dict[str, Any],
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[SLAInstance], int]:
        """Page of instances, newest first, with the total count."""

    @abstractmethod
    async def list_for_metrics(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SLAInstance]:
        """Instances created within an optional range."""

    @abstractmethod
    async def commit(self) -> None:
        """Make pending writes durable."""


class ITicketReader(ABC):
    """Read access to tickets owned by the ticketing service."""

    @abstractmethod
    async def get_snapshot(self, ticket_id: str, tenant_id: Optional[str] = None) -> Optional[TicketSnapshot]:
        """Snapshot of a ticket, or None if unknown."""


@dataclass
class DispatchResult:
    """Outcome of a best-effort side effect."""
    delivered: bool
    error: Optional[str] = None


@dataclass
class NotificationRequest:
    """A request to notify one user."""
    tenant_id: str
    recipient_id: str
    title: str
    message: str
    category: str = "sla"
    priority: str = "high"
    data: Dict[str, Any] = field(default_factory=dict)


class INotificationDispatcher(ABC):
    """Delivers notification requests (email, push, webhook, ...)."""

    @abstractmethod
    async def notify(self, request: NotificationRequest) -> DispatchResult:
        """Request delivery of one notification."""


class IBroadcastChannel(ABC):
    """Tenant-scoped real-time event fan-out."""

    @abstractmethod
    async def broadcast(self, tenant_id: str, event: str, payload: Dict[str, Any]) -> DispatchResult:
        """Publish an event to every subscriber of a tenant."""


# ========== Application Services ==========

def _conditions_from_dto(dto_conditions) -> List[PolicyCondition]:
    return [PolicyCondition(field=c.field, operator=c.operator, value=c.value) for c in dto_conditions]


class SLAPolicyService:
    """
    Policy CRUD and policy resolution for tickets.

    All operations are scoped to one tenant.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        ticket_reader: Optional[ITicketReader] = None,
        matcher: Optional[PolicyMatcher] = None,
        clock: Clock = system_clock,
    ):
        self._policies = policy_repository
        self._tickets = ticket_reader
        self._matcher = matcher or PolicyMatcher()
        self._clock = clock

    async def create_policy(self, tenant_id: str, dto: SLAPolicyCreateDTO) -> SLAPolicy:
        now = self._clock()
        policy = SLAPolicy(
            id=str(uuid4()),
            tenant_id=tenant_id,
            name=dto.name,
            description=dto.description,
            priority=dto.priority,
            conditions=_conditions_from_dto(dto.conditions),
            targets=dto.targets,
            business_hours=dto.business_hours,
            holidays=list(dto.holidays),
            escalation_rules=list(dto.escalation_rules),
            notifications=list(dto.notifications),
            metadata=dict(dto.metadata),
            is_active=dto.is_active,
            created_at=now,
            updated_at=now,
        )
        policy = await self._policies.create(policy)
        logger.info("SLA policy created", extra={"tenant_id": tenant_id, "policy_id": policy.id})
        return policy

    async def get_policy(self, tenant_id: str, policy_id: str) -> SLAPolicy:
        policy = await self._policies.get_by_id(policy_id, tenant_id)
        if policy is None:
            raise ResourceNotFoundException("SLA policy", policy_id)
        return policy

    async def list_policies(
        self,
        tenant_id: str,
        page: int = 1,
        limit: int = 20,
        priority: Optional[Priority] = None,
    ) -> Tuple[List[SLAPolicy], int]:
        return await self._policies.list(tenant_id, page=page, limit=limit, priority=priority)

    async def update_policy(self, tenant_id: str, policy_id: str, dto: SLAPolicyUpdateDTO) -> SLAPolicy:
        policy = await self.get_policy(tenant_id, policy_id)
        changes = dto.model_dump(exclude_unset=True)

        for name in ("name", "description", "priority", "targets", "business_hours", "is_active"):
            if name in changes:
                setattr(policy, name, getattr(dto, name))
        if "conditions" in changes:
            policy.conditions = _conditions_from_dto(dto.conditions or [])
        if "holidays" in changes:
            policy.holidays = list(dto.holidays or [])
        if "escalation_rules" in changes:
            policy.escalation_rules = list(dto.escalation_rules or [])
        if "notifications" in changes:
            policy.notifications = list(dto.notifications or [])
        if "metadata" in changes:
            policy.metadata = dict(dto.metadata or {})

        policy.updated_at = self._clock()
        policy = await self._policies.update(policy)
        logger.info(
            "SLA policy updated",
            extra={"tenant_id": tenant_id, "policy_id": policy_id, "fields": sorted(changes)}
        )
        return policy

    async def delete_policy(self, tenant_id: str, policy_id: str) -> None:
        if not await self._policies.delete(policy_id, tenant_id):
            raise ResourceNotFoundException("SLA policy", policy_id)
        logger.info("SLA policy deleted", extra={"tenant_id": tenant_id, "policy_id": policy_id})

    async def select_policy(self, ticket: TicketSnapshot) -> Optional[SLAPolicy]:
        """Policy that applies to a ticket snapshot, or None."""
        policies = await self._policies.list_active(ticket.tenant_id)
        return self._matcher.select_policy(ticket.to_dict(), policies)

    async def resolve_policy_for_ticket(self, tenant_id: str, ticket_id: str) -> Optional[SLAPolicy]:
        """
        Look up a ticket and select its policy.

        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        if self._tickets is None:
            raise RuntimeError("Ticket reader not configured")
        ticket = await self._tickets.get_snapshot(ticket_id, tenant_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return await self.select_policy(ticket)


class SLAInstanceService:
    """
    Creates SLA instances and drives them with ticket events.

    Event handling re-reads and retries when a concurrent writer (usually
    the breach scanner) bumped the instance version in between.
    """

    def __init__(
        self,
        instance_repository: ISLAInstanceRepository,
        policy_service: SLAPolicyService,
        policy_repository: ISLAPolicyRepository,
        ticket_reader: Optional[ITicketReader] = None,
        calculator: Optional[DueDateCalculator] = None,
        clock: Clock = system_clock,
        retry_attempts: Optional[int] = None,
    ):
        self._instances = instance_repository
        self._policy_service = policy_service
        self._policies = policy_repository
        self._tickets = ticket_reader
        self._calculator = calculator or DueDateCalculator()
        self._clock = clock
        self._retry_attempts = retry_attempts or settings.event_retry_attempts

    def build_instance(
        self,
        policy: SLAPolicy,
        ticket_id: str,
        start: Optional[datetime] = None,
    ) -> SLAInstance:
        """Compute due dates for a policy and return a fresh ACTIVE instance."""
        now = self._clock()
        start = start or now

        def due(minutes: int) -> datetime:
            return self._calculator.calculate_due_date(
                start,
                DurationTarget(minutes, "minutes"),
                policy.business_hours,
                policy.holidays,
            )

        return SLAInstance(
            id=str(uuid4()),
            sla_id=policy.id,
            ticket_id=ticket_id,
            tenant_id=policy.tenant_id,
            first_response_due=due(policy.targets.response_time),
            resolution_due=due(policy.targets.resolution_time),
            created_at=now,
            updated_at=now,
        )

    async def create_instance(self, tenant_id: str, dto: SLAInstanceCreateDTO) -> SLAInstance:
        """
        Create an instance for an explicit policy.

        Raises:
            ResourceNotFoundException: If the policy does not exist
        """
        policy = await self._policies.get_by_id(dto.sla_id, tenant_id)
        if policy is None:
            raise ResourceNotFoundException("SLA policy", dto.sla_id)

        instance = await self._instances.add(self.build_instance(policy, dto.ticket_id, dto.start_time))
        logger.info(
            "SLA instance created",
            extra={"tenant_id": tenant_id, "instance_id": instance.id, "ticket_id": dto.ticket_id}
        )
        return instance

    async def create_instance_for_ticket(self, ticket: TicketSnapshot) -> Optional[SLAInstance]:
        """
        Create an instance from the matching policy.

        Returns:
            The new instance, or None when the tenant has no active policy
        """
        policy = await self._policy_service.select_policy(ticket)
        if policy is None:
            logger.info(
                "No active SLA policy for ticket",
                extra={"tenant_id": ticket.tenant_id, "ticket_id": ticket.id}
            )
            return None

        instance = await self._instances.add(self.build_instance(policy, ticket.id))
        logger.info(
            "SLA instance created",
            extra={
                "tenant_id": ticket.tenant_id,
                "instance_id": instance.id,
                "ticket_id": ticket.id,
                "policy_id": policy.id,
            }
        )
        return instance

    async def create_instance_for_ticket_id(self, tenant_id: str, ticket_id: str) -> Optional[SLAInstance]:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        if self._tickets is None:
            raise RuntimeError("Ticket reader not configured")
        ticket = await self._tickets.get_snapshot(ticket_id, tenant_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return await self.create_instance_for_ticket(ticket)

    async def handle_ticket_event(
        self,
        tenant_id: Optional[str],
        ticket_id: str,
        event: TicketEventDTO,
    ) -> Optional[SLAInstance]:
        """
        Apply an event to the ticket's current (non-completed) instance.

        Returns:
            The instance after the event, or None if the ticket has none
        """
        async def load() -> Optional[SLAInstance]:
            return await self._instances.find_current_for_ticket(ticket_id, tenant_id)

        instance = await self._apply_with_retry(load, event)
        if instance is None:
            logger.info(
                "No SLA instance for ticket event",
                extra={"tenant_id": tenant_id, "ticket_id": ticket_id, "event_type": event.type.value}
            )
        return instance

    async def handle_event_by_instance_id(
        self,
        tenant_id: Optional[str],
        instance_id: str,
        event: TicketEventDTO,
    ) -> SLAInstance:
        """
        Raises:
            ResourceNotFoundException: If the instance does not exist
        """
        async def load() -> Optional[SLAInstance]:
            return await self._instances.get_by_id(instance_id, tenant_id)

        instance = await self._apply_with_retry(load, event)
        if instance is None:
            raise ResourceNotFoundException("SLA instance", instance_id)
        return instance

    async def _apply_with_retry(self, load, event: TicketEventDTO) -> Optional[SLAInstance]:
        timestamp = event.timestamp or self._clock()
        for attempt in range(1, self._retry_attempts + 1):
            instance = await load()
            if instance is None:
                return None
            if not instance.apply_event(TicketEventType(event.type), timestamp):
                return instance
            try:
                saved = await self._instances.save(instance)
                await self._instances.commit()
                return saved
            except ConcurrencyConflictException:
                if attempt == self._retry_attempts:
                    raise
                logger.warning(
                    "SLA instance changed concurrently, retrying event",
                    extra={"instance_id": instance.id, "attempt": attempt}
                )
        return None

    async def cancel_instance(self, tenant_id: str, instance_id: str) -> SLAInstance:
        instance = await self.get_instance(tenant_id, instance_id)
        if instance.cancel(self._clock()):
            instance = await self._instances.save(instance)
            logger.info("SLA instance cancelled", extra={"tenant_id": tenant_id, "instance_id": instance_id})
        return instance

    async def get_instance(self, tenant_id: str, instance_id: str) -> SLAInstance:
        instance = await self._instances.get_by_id(instance_id, tenant_id)
        if instance is None:
            raise ResourceNotFoundException("SLA instance", instance_id)
        return instance

    async def get_instance_by_ticket(self, tenant_id: str, ticket_id: str) -> SLAInstance:
        """Authoritative (most recently created) instance of a ticket."""
        instance = await self._instances.get_latest_for_ticket(ticket_id, tenant_id)
        if instance is None:
            raise ResourceNotFoundException("SLA instance for ticket", ticket_id)
        return instance

    async def list_instances(
        self,
        tenant_id: str,
        sla_id: Optional[str] = None,
        ticket_id: Optional[str] = None,
        status: Optional[SLAStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[SLAInstance], int]:
        filters = {
            key: value
            for key, value in (("sla_id", sla_id), ("ticket_id", ticket_id), ("status", status))
            if value is not None
        }
        return await self._instances.list(tenant_id, filters, page=page, limit=limit)

    async def get_metrics(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SLAMetrics:
        """
        Raises:
            ValidationException: If start is after end
        """
        start = ensure_utc(start) if start is not None else None
        end = ensure_utc(end) if end is not None else None
        if start is not None and end is not None and start > end:
            raise ValidationException(
                "Metrics range start must not be after end",
                {"start": start.isoformat(), "end": end.isoformat()}
            )
        instances = await self._instances.list_for_metrics(tenant_id, start, end)
        return SLAMetrics(
            total_policies=await self._policies.count(tenant_id),
            active_policies=await self._policies.count(tenant_id, active_only=True),
            **summarize_instances(instances),
        )


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def summarize_instances(instances: Sequence[SLAInstance]) -> Dict[str, Any]:
    """Averages and compliance rates over a set of instances."""
    responded = [i for i in instances if i.first_response_at is not None]
    resolved = [i for i in instances if i.resolution_at is not None]

    def average(values: List[float]) -> Optional[float]:
        return round(sum(values) / len(values), 2) if values else None

    def percent(part: int, whole: int) -> Optional[float]:
        return round(part / whole * 100, 2) if whole else None

    return {
        "total_instances": len(instances),
        "breached_instances": sum(1 for i in instances if i.status is SLAStatus.BREACHED),
        "average_first_response_minutes": average(
            [_minutes_between(i.created_at, i.first_response_at) for i in responded]
        ),
        "average_resolution_minutes": average(
            [_minutes_between(i.created_at, i.resolution_at) for i in resolved]
        ),
        "first_response_compliance": percent(
            sum(1 for i in responded if i.first_response_at <= i.first_response_due), len(instances)
        ),
        "resolution_compliance": percent(
            sum(1 for i in resolved if i.resolution_at <= i.resolution_due), len(resolved)
        ),
    }
