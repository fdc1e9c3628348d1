"""
SLA Domain Entities
====================

Policies, per-ticket SLA instances and their state machine, and the
ticket snapshot that policies are matched against.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from supportdesk.config import TERMINAL_SLA_STATUSES, BreachKind, Priority, SLAStatus, TicketEventType
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.sla.domain.calendar import ensure_utc
from supportdesk.sla.domain.matching import PolicyCondition
from supportdesk.sla.domain.value_objects import (
    BusinessHoursSchedule,
    EscalationRule,
    NotificationSetting,
    SLATargets,
)

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SLAPolicy:
    """
    Tenant-configured response and resolution targets.

    The conditions decide which tickets the policy applies to.
    """

    id: str
    tenant_id: str
    name: str
    priority: Priority = Priority.MEDIUM
    description: Optional[str] = None
    conditions: List[PolicyCondition] = field(default_factory=list)
    targets: SLATargets = field(default_factory=SLATargets)
    business_hours: Optional[BusinessHoursSchedule] = None
    holidays: List[str] = field(default_factory=list)
    escalation_rules: List[EscalationRule] = field(default_factory=list)
    notifications: List[NotificationSetting] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(cls, tenant_id: str, name: str, **kwargs: Any) -> "SLAPolicy":
        return cls(id=str(uuid4()), tenant_id=tenant_id, name=name, **kwargs)

    def rules_for_level(self, level: int) -> List[EscalationRule]:
        """Escalation rules configured for exactly this level."""
        return [rule for rule in self.escalation_rules if rule.level == level]


@dataclass
class BreachRecord:
    """One entry of an instance's append-only breach log."""

    timestamp: datetime
    breaches: List[BreachKind]
    escalated_to: int
    type: str = "breach"

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "breaches": [kind.value for kind in self.breaches],
            "escalated_to": self.escalated_to,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BreachRecord":
        return cls(
            type=data.get("type", "breach"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            breaches=[BreachKind(kind) for kind in data.get("breaches", [])],
            escalated_to=int(data.get("escalated_to", 0)),
        )


@dataclass
class SLAInstance:
    """
    Live SLA tracking for one ticket under one policy.

    Lifecycle: ACTIVE <-> PAUSED, ACTIVE -> BREACHED, any non-terminal
    state -> COMPLETED or CANCELLED. Milestone timestamps are write-once
    and the escalation counters only grow. Pausing is recorded but does
    not move the due dates.
    """

    id: str
    sla_id: str
    ticket_id: str
    tenant_id: str
    first_response_due: datetime
    resolution_due: datetime
    status: SLAStatus = SLAStatus.ACTIVE
    first_response_at: Optional[datetime] = None
    resolution_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    paused_duration: int = 0
    breach_count: int = 0
    escalation_level: int = 0
    notifications: List[BreachRecord] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SLA_STATUSES

    def apply_event(self, event_type: TicketEventType, timestamp: Optional[datetime] = None) -> bool:
        """
        Apply a ticket lifecycle event.

        Returns:
            True if the instance changed. Events that are not legal from
            the current state are ignored and logged.
        """
        at = ensure_utc(timestamp) if timestamp is not None else utcnow()

        if event_type is TicketEventType.FIRST_RESPONSE:
            changed = self._record_first_response(at)
        elif event_type is TicketEventType.RESOLUTION:
            changed = self._resolve(at)
        elif event_type is TicketEventType.PAUSE:
            changed = self._pause(at)
        elif event_type is TicketEventType.RESUME:
            changed = self._resume(at)
        else:
            changed = False

        if changed:
            self.updated_at = at
        else:
            logger.info(
                "Ignored ticket event",
                extra={
                    "instance_id": self.id,
                    "ticket_id": self.ticket_id,
                    "event_type": event_type.value,
                    "status": self.status.value,
                }
            )
        return changed

    def _record_first_response(self, at: datetime) -> bool:
        if self.status is SLAStatus.CANCELLED or self.first_response_at is not None:
            return False
        self.first_response_at = at
        return True

    def _resolve(self, at: datetime) -> bool:
        if self.is_terminal:
            return False
        if self.status is SLAStatus.PAUSED:
            self._close_pause(at)
        if self.resolution_at is None:
            self.resolution_at = at
        self.status = SLAStatus.COMPLETED
        return True

    def _pause(self, at: datetime) -> bool:
        if self.status is not SLAStatus.ACTIVE:
            return False
        self.paused_at = at
        self.status = SLAStatus.PAUSED
        return True

    def _resume(self, at: datetime) -> bool:
        if self.status is not SLAStatus.PAUSED:
            return False
        self._close_pause(at)
        self.status = SLAStatus.ACTIVE
        return True

    def _close_pause(self, at: datetime) -> None:
        if self.paused_at is not None:
            elapsed = int((at - self.paused_at).total_seconds() // 60)
            self.paused_duration += max(0, elapsed)
        self.paused_at = None

    def detect_breaches(self, now: datetime) -> List[BreachKind]:
        """Deadlines that have passed without their milestone."""
        if self.status is not SLAStatus.ACTIVE:
            return []

        breaches = []
        if self.first_response_at is None and self.first_response_due < now:
            breaches.append(BreachKind.FIRST_RESPONSE)
        if self.resolution_at is None and self.resolution_due < now:
            breaches.append(BreachKind.RESOLUTION)
        return breaches

    def record_breach(self, breaches: List[BreachKind], now: datetime) -> BreachRecord:
        """Escalate one level and move to BREACHED."""
        self.escalation_level += 1
        self.breach_count += len(breaches)
        record = BreachRecord(timestamp=now, breaches=list(breaches), escalated_to=self.escalation_level)
        self.notifications.append(record)
        self.status = SLAStatus.BREACHED
        self.updated_at = now
        return record

    def cancel(self, at: Optional[datetime] = None) -> bool:
        if self.is_terminal:
            return False
        at = ensure_utc(at) if at is not None else utcnow()
        if self.status is SLAStatus.PAUSED:
            self._close_pause(at)
        self.status = SLAStatus.CANCELLED
        self.updated_at = at
        return True


@dataclass
class TicketSnapshot:
    """
    Read-only view of a ticket used for policy matching and notifications.

    Owned by the ticketing service; never mutated here.
    """

    id: str
    tenant_id: str
    subject: str = ""
    description: Optional[str] = None
    status: str = "open"
    priority: str = Priority.MEDIUM.value
    category: Optional[str] = None
    channel: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    customer: Optional[Dict[str, Any]] = None
    assigned_agent_id: Optional[str] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Field tree that policy conditions are evaluated against."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "subject": self.subject,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "category": self.category,
            "channel": self.channel,
            "tags": list(self.tags),
            "customer": dict(self.customer) if self.customer is not None else None,
            "assigned_agent_id": self.assigned_agent_id,
            "custom_fields": dict(self.custom_fields),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
