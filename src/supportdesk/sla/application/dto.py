"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from supportdesk.config import BreachKind, DurationUnit, Priority, SLAStatus, TicketEventType
from supportdesk.sla.domain import (
    BreachRecord,
    BusinessHoursSchedule,
    EscalationRule,
    NotificationSetting,
    SLAInstance,
    SLAPolicy,
    SLATargets,
)
from supportdesk.sla.domain.calendar import ensure_utc
from supportdesk.sla.domain.value_objects import validate_holidays


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes from clients are read as UTC."""
    return ensure_utc(value) if value is not None else None


# ========== Request DTOs ==========

class PolicyConditionDTO(BaseModel):
    """One policy condition. Unknown operators are stored and never match."""
    field: str = Field(..., min_length=1, description="Ticket field, dotted paths allowed")
    operator: str = Field(..., min_length=1, description="equals, ==, contains, in, has")
    value: Any = Field(default=None, description="Value to compare with")


class SLAPolicyCreateDTO(BaseModel):
    """Payload for creating a policy."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    conditions: List[PolicyConditionDTO] = Field(default_factory=list)
    targets: SLATargets = Field(default_factory=SLATargets)
    business_hours: Optional[BusinessHoursSchedule] = None
    holidays: List[str] = Field(default_factory=list)
    escalation_rules: List[EscalationRule] = Field(default_factory=list)
    notifications: List[NotificationSetting] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator("holidays")
    @classmethod
    def check_holidays(cls, v: List[str]) -> List[str]:
        return validate_holidays(v)


class SLAPolicyUpdateDTO(BaseModel):
    """Partial policy update; omitted fields are left unchanged."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    conditions: Optional[List[PolicyConditionDTO]] = None
    targets: Optional[SLATargets] = None
    business_hours: Optional[BusinessHoursSchedule] = None
    holidays: Optional[List[str]] = None
    escalation_rules: Optional[List[EscalationRule]] = None
    notifications: Optional[List[NotificationSetting]] = None
    metadata: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None

    @field_validator("holidays")
    @classmethod
    def check_holidays(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return validate_holidays(v) if v is not None else v


class SLAInstanceCreateDTO(BaseModel):
    """Create an instance for an explicit policy."""
    sla_id: str = Field(..., min_length=1)
    ticket_id: str = Field(..., min_length=1)
    start_time: Optional[datetime] = Field(default=None, description="Clock start, defaults to now")

    @field_validator("start_time")
    @classmethod
    def start_time_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class TicketEventDTO(BaseModel):
    """Ticket lifecycle event."""
    type: TicketEventType
    timestamp: Optional[datetime] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


class DueDateRequest(BaseModel):
    """Preview a due date for a target."""
    start: datetime
    amount: float = Field(..., ge=0)
    unit: DurationUnit = DurationUnit.MINUTES
    business_hours: Optional[BusinessHoursSchedule] = None
    holidays: List[str] = Field(default_factory=list)

    @field_validator("holidays")
    @classmethod
    def check_holidays(cls, v: List[str]) -> List[str]:
        return validate_holidays(v)

    @field_validator("start")
    @classmethod
    def start_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# ========== Response DTOs ==========

class SLAPolicyResponse(BaseModel):
    """Policy as returned by the API."""
    id: str
    tenant_id: str
    name: str
    description: Optional[str]
    priority: Priority
    conditions: List[PolicyConditionDTO]
    targets: SLATargets
    business_hours: Optional[BusinessHoursSchedule]
    holidays: List[str]
    escalation_rules: List[EscalationRule]
    notifications: List[NotificationSetting]
    metadata: Dict[str, Any]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, policy: SLAPolicy) -> "SLAPolicyResponse":
        return cls(
            id=policy.id,
            tenant_id=policy.tenant_id,
            name=policy.name,
            description=policy.description,
            priority=policy.priority,
            conditions=[PolicyConditionDTO.model_validate(c.to_dict()) for c in policy.conditions
                        if c.field and c.operator],
            targets=policy.targets,
            business_hours=policy.business_hours,
            holidays=policy.holidays,
            escalation_rules=policy.escalation_rules,
            notifications=policy.notifications,
            metadata=policy.metadata,
            is_active=policy.is_active,
            created_at=policy.created_at,
            updated_at=policy.updated_at,
        )


class BreachRecordResponse(BaseModel):
    type: str
    timestamp: datetime
    breaches: List[BreachKind]
    escalated_to: int

    @classmethod
    def from_entity(cls, record: BreachRecord) -> "BreachRecordResponse":
        return cls(
            type=record.type,
            timestamp=record.timestamp,
            breaches=record.breaches,
            escalated_to=record.escalated_to,
        )


class SLAInstanceResponse(BaseModel):
    """Instance as returned by the API."""
    id: str
    sla_id: str
    ticket_id: str
    tenant_id: str
    status: SLAStatus
    first_response_due: datetime
    resolution_due: datetime
    first_response_at: Optional[datetime]
    resolution_at: Optional[datetime]
    paused_at: Optional[datetime]
    paused_duration: int
    breach_count: int
    escalation_level: int
    notifications: List[BreachRecordResponse]
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, instance: SLAInstance) -> "SLAInstanceResponse":
        return cls(
            id=instance.id,
            sla_id=instance.sla_id,
            ticket_id=instance.ticket_id,
            tenant_id=instance.tenant_id,
            status=instance.status,
            first_response_due=instance.first_response_due,
            resolution_due=instance.resolution_due,
            first_response_at=instance.first_response_at,
            resolution_at=instance.resolution_at,
            paused_at=instance.paused_at,
            paused_duration=instance.paused_duration,
            breach_count=instance.breach_count,
            escalation_level=instance.escalation_level,
            notifications=[BreachRecordResponse.from_entity(r) for r in instance.notifications],
            metadata=instance.metadata,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
        )


class PolicyListResponse(BaseModel):
    items: List[SLAPolicyResponse]
    total: int
    page: int
    limit: int


class InstanceListResponse(BaseModel):
    items: List[SLAInstanceResponse]
    total: int
    page: int
    limit: int


class BreachCheckResponse(BaseModel):
    """Outcome of one breach sweep."""
    transitioned: int = Field(..., description="Instances moved to BREACHED in this run")
    instances: List[SLAInstanceResponse]


class DueDateResponse(BaseModel):
    start: datetime
    due: datetime
    strategy: str


class SLAMetrics(BaseModel):
    """Per-tenant SLA performance figures."""
    model_config = ConfigDict(frozen=True)

    total_policies: int = 0
    active_policies: int = 0
    total_instances: int = 0
    breached_instances: int = 0
    average_first_response_minutes: Optional[float] = None
    average_resolution_minutes: Optional[float] = None
    first_response_compliance: Optional[float] = Field(
        default=None, description="Percent of instances first-responded on time"
    )
    resolution_compliance: Optional[float] = Field(
        default=None, description="Percent of resolved instances resolved on time"
    )
