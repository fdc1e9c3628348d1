"""
SLA Domain Layer
================

Domain layer for the SLA enforcement module.

Contains:
- Entities: SLAPolicy, SLAInstance, BreachRecord, TicketSnapshot
- Value Objects: Targets, business-hours schedules, escalation rules
- Domain Services: DueDateCalculator, PolicyMatcher

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from supportdesk.sla.domain.calendar import (
    BusinessHoursDueDateStrategy,
    DueDateCalculator,
    DueDateStrategy,
    NaiveDueDateStrategy,
    ensure_utc,
)
from supportdesk.sla.domain.entities import BreachRecord, SLAInstance, SLAPolicy, TicketSnapshot
from supportdesk.sla.domain.matching import (
    ConditionOperator,
    MISSING,
    PolicyCondition,
    PolicyMatcher,
    resolve_field,
)
from supportdesk.sla.domain.value_objects import (
    BusinessHoursSchedule,
    DaySchedule,
    DurationTarget,
    EscalationRule,
    NotificationSetting,
    SLATargets,
    TimeWindow,
)

__all__ = [
    # Entities
    "SLAPolicy",
    "SLAInstance",
    "BreachRecord",
    "TicketSnapshot",
    # Value Objects
    "BusinessHoursSchedule",
    "DaySchedule",
    "DurationTarget",
    "EscalationRule",
    "NotificationSetting",
    "SLATargets",
    "TimeWindow",
    # Domain Services
    "DueDateCalculator",
    "DueDateStrategy",
    "NaiveDueDateStrategy",
    "BusinessHoursDueDateStrategy",
    "ensure_utc",
    "ConditionOperator",
    "PolicyCondition",
    "PolicyMatcher",
    "resolve_field",
    "MISSING",
]
