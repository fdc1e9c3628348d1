"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

Conditions, targets, schedules and breach records are stored as JSON.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supportdesk.config import Priority, SLAStatus
from supportdesk.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SLAPolicyModel(Base):
    """
    Database model for SLAPolicy.

    Maps to the 'sla_policies' table. Nested value objects are JSON.
    """
    __tablename__ = "sla_policies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=Priority.MEDIUM.value)

    conditions: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    targets: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    business_hours: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    holidays: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    escalation_rules: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    notifications: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_sla_policies_tenant_active_created", "tenant_id", "is_active", "created_at"),
    )


class SLAInstanceModel(Base):
    """
    Database model for SLAInstance.

    Maps to the 'sla_instances' table. `version` backs optimistic
    concurrency: every update matches on the version it read.
    """
    __tablename__ = "sla_instances"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    sla_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    ticket_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SLAStatus.ACTIVE.value, index=True)

    first_response_due: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolution_due: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    breach_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notifications: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_sla_instances_status_due", "status", "first_response_due", "resolution_due"),
        Index("ix_sla_instances_ticket_created", "ticket_id", "created_at"),
    )
