"""
SLA Infrastructure Repositories
=================================

SQLAlchemy implementations of the SLA ports.

Instance writes are compare-and-set on the version column; a stale write
raises ConcurrencyConflictException.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.config import Priority, SLAStatus
from supportdesk.core import ConcurrencyConflictException, RepositoryException
from supportdesk.infrastructure.database.models import CustomerModel, TicketModel
from supportdesk.sla.application import ISLAInstanceRepository, ISLAPolicyRepository, ITicketReader
from supportdesk.sla.domain import (
    BreachRecord,
    BusinessHoursSchedule,
    EscalationRule,
    NotificationSetting,
    PolicyCondition,
    SLAInstance,
    SLAPolicy,
    SLATargets,
    TicketSnapshot,
    ensure_utc,
)
from supportdesk.sla.infrastructure.models import SLAInstanceModel, SLAPolicyModel


def _to_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# ========== Mapping ==========

def policy_to_entity(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=str(model.id),
        tenant_id=model.tenant_id,
        name=model.name,
        description=model.description,
        priority=Priority(model.priority),
        conditions=[PolicyCondition.from_dict(c) for c in model.conditions or []],
        targets=SLATargets.model_validate(model.targets or {}),
        business_hours=(
            BusinessHoursSchedule.model_validate(model.business_hours) if model.business_hours else None
        ),
        holidays=list(model.holidays or []),
        escalation_rules=[EscalationRule.model_validate(r) for r in model.escalation_rules or []],
        notifications=[NotificationSetting.model_validate(n) for n in model.notifications or []],
        metadata=dict(model.metadata_ or {}),
        is_active=model.is_active,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


def _policy_values(policy: SLAPolicy) -> Dict[str, Any]:
    return {
        "tenant_id": policy.tenant_id,
        "name": policy.name,
        "description": policy.description,
        "priority": Priority(policy.priority).value,
        "conditions": [c.to_dict() for c in policy.conditions],
        "targets": policy.targets.model_dump(),
        "business_hours": policy.business_hours.model_dump() if policy.business_hours else None,
        "holidays": list(policy.holidays),
        "escalation_rules": [r.model_dump() for r in policy.escalation_rules],
        "notifications": [n.model_dump() for n in policy.notifications],
        "metadata_": dict(policy.metadata),
        "is_active": policy.is_active,
        "created_at": ensure_utc(policy.created_at),
        "updated_at": ensure_utc(policy.updated_at),
    }


def instance_to_entity(model: SLAInstanceModel) -> SLAInstance:
    return SLAInstance(
        id=str(model.id),
        sla_id=str(model.sla_id),
        ticket_id=model.ticket_id,
        tenant_id=model.tenant_id,
        status=SLAStatus(model.status),
        first_response_due=ensure_utc(model.first_response_due),
        resolution_due=ensure_utc(model.resolution_due),
        first_response_at=_utc_or_none(model.first_response_at),
        resolution_at=_utc_or_none(model.resolution_at),
        paused_at=_utc_or_none(model.paused_at),
        paused_duration=model.paused_duration,
        breach_count=model.breach_count,
        escalation_level=model.escalation_level,
        notifications=[BreachRecord.from_dict(n) for n in model.notifications or []],
        metadata=dict(model.metadata_ or {}),
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
        version=model.version,
    )


def _instance_values(instance: SLAInstance) -> Dict[str, Any]:
    return {
        "sla_id": UUID(instance.sla_id),
        "ticket_id": instance.ticket_id,
        "tenant_id": instance.tenant_id,
        "status": instance.status.value,
        "first_response_due": ensure_utc(instance.first_response_due),
        "resolution_due": ensure_utc(instance.resolution_due),
        "first_response_at": _utc_or_none(instance.first_response_at),
        "resolution_at": _utc_or_none(instance.resolution_at),
        "paused_at": _utc_or_none(instance.paused_at),
        "paused_duration": instance.paused_duration,
        "breach_count": instance.breach_count,
        "escalation_level": instance.escalation_level,
        "notifications": [n.to_dict() for n in instance.notifications],
        "metadata_": dict(instance.metadata),
        "created_at": ensure_utc(instance.created_at),
        "updated_at": ensure_utc(instance.updated_at),
    }


# ========== Repositories ==========

class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """
    SQLAlchemy implementation of the policy repository.

    Handles persistence of SLAPolicy entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, policy_id: str, tenant_id: Optional[str]) -> Optional[SLAPolicyModel]:
        policy_uuid = _to_uuid(policy_id)
        if policy_uuid is None:
            return None

        stmt = select(SLAPolicyModel).where(SLAPolicyModel.id == policy_uuid)
        if tenant_id is not None:
            stmt = stmt.where(SLAPolicyModel.tenant_id == tenant_id)
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def get_by_id(self, policy_id: str, tenant_id: Optional[str] = None) -> Optional[SLAPolicy]:
        model = await self._get_model(policy_id, tenant_id)
        return policy_to_entity(model) if model else None

    async def list_active(self, tenant_id: str) -> List[SLAPolicy]:
        stmt = (
            select(SLAPolicyModel)
            .where(SLAPolicyModel.tenant_id == tenant_id, SLAPolicyModel.is_active.is_(True))
            .order_by(SLAPolicyModel.created_at.asc(), SLAPolicyModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [policy_to_entity(m) for m in result.scalars().all()]

    async def list(
        self,
        tenant_id: str,
        page: int = 1,
        limit: int = 20,
        priority: Optional[Priority] = None,
    ) -> Tuple[List[SLAPolicy], int]:
        conditions = [SLAPolicyModel.tenant_id == tenant_id]
        if priority is not None:
            conditions.append(SLAPolicyModel.priority == Priority(priority).value)

        total = await self._session.scalar(
            select(func.count()).select_from(SLAPolicyModel).where(and_(*conditions))
        )
        stmt = (
            select(SLAPolicyModel)
            .where(and_(*conditions))
            .order_by(SLAPolicyModel.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        result = await self._session.execute(stmt)
        return [policy_to_entity(m) for m in result.scalars().all()], int(total or 0)

    async def count(self, tenant_id: str, active_only: bool = False) -> int:
        stmt = select(func.count()).select_from(SLAPolicyModel).where(SLAPolicyModel.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(SLAPolicyModel.is_active.is_(True))
        return int(await self._session.scalar(stmt) or 0)

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        model = SLAPolicyModel(id=UUID(policy.id), **_policy_values(policy))
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create SLA policy: {e}")
        return policy

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        model = await self._get_model(policy.id, policy.tenant_id)
        if model is None:
            raise RepositoryException(f"SLA policy {policy.id} not found")

        for key, value in _policy_values(policy).items():
            setattr(model, key, value)
        await self._session.flush()
        return policy

    async def delete(self, policy_id: str, tenant_id: str) -> bool:
        policy_uuid = _to_uuid(policy_id)
        if policy_uuid is None:
            return False
        result = await self._session.execute(
            delete(SLAPolicyModel).where(
                SLAPolicyModel.id == policy_uuid, SLAPolicyModel.tenant_id == tenant_id
            )
        )
        return result.rowcount > 0


class SQLAlchemySLAInstanceRepository(ISLAInstanceRepository):
    """
    SQLAlchemy implementation of the instance repository.

    Updates go through an explicit UPDATE ... WHERE version = :read_version
    so concurrent writers cannot silently overwrite each other.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _fetch_one(self, stmt) -> Optional[SLAInstance]:
        result = await self._session.execute(stmt.limit(1).execution_options(populate_existing=True))
        model = result.scalars().first()
        return instance_to_entity(model) if model else None

    async def get_by_id(self, instance_id: str, tenant_id: Optional[str] = None) -> Optional[SLAInstance]:
        instance_uuid = _to_uuid(instance_id)
        if instance_uuid is None:
            return None
        stmt = select(SLAInstanceModel).where(SLAInstanceModel.id == instance_uuid)
        if tenant_id is not None:
            stmt = stmt.where(SLAInstanceModel.tenant_id == tenant_id)
        return await self._fetch_one(stmt)

    async def add(self, instance: SLAInstance) -> SLAInstance:
        model = SLAInstanceModel(id=UUID(instance.id), version=instance.version, **_instance_values(instance))
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create SLA instance: {e}")
        return instance

    async def save(self, instance: SLAInstance) -> SLAInstance:
        stmt = (
            update(SLAInstanceModel)
            .where(
                SLAInstanceModel.id == UUID(instance.id),
                SLAInstanceModel.version == instance.version,
            )
            .values(version=instance.version + 1, **_instance_values(instance))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise ConcurrencyConflictException("SLA instance", instance.id, instance.version)

        instance.version += 1
        return instance

    def _ticket_query(self, ticket_id: str, tenant_id: Optional[str]):
        stmt = select(SLAInstanceModel).where(SLAInstanceModel.ticket_id == ticket_id)
        if tenant_id is not None:
            stmt = stmt.where(SLAInstanceModel.tenant_id == tenant_id)
        return stmt.order_by(SLAInstanceModel.created_at.desc(), SLAInstanceModel.id.desc())

    async def find_current_for_ticket(
        self, ticket_id: str, tenant_id: Optional[str] = None
    ) -> Optional[SLAInstance]:
        stmt = self._ticket_query(ticket_id, tenant_id).where(
            SLAInstanceModel.status != SLAStatus.COMPLETED.value
        )
        return await self._fetch_one(stmt)

    async def get_latest_for_ticket(
        self, ticket_id: str, tenant_id: Optional[str] = None
    ) -> Optional[SLAInstance]:
        return await self._fetch_one(self._ticket_query(ticket_id, tenant_id))

    async def find_overdue_active(self, now: datetime) -> List[SLAInstance]:
        now = ensure_utc(now)
        stmt = (
            select(SLAInstanceModel)
            .where(
                SLAInstanceModel.status == SLAStatus.ACTIVE.value,
                or_(
                    and_(
                        SLAInstanceModel.first_response_due < now,
                        SLAInstanceModel.first_response_at.is_(None),
                    ),
                    and_(
                        SLAInstanceModel.resolution_due < now,
                        SLAInstanceModel.resolution_at.is_(None),
                    ),
                ),
            )
            .order_by(SLAInstanceModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to read overdue SLA instances: {e}")
        return [instance_to_entity(m) for m in result.scalars().all()]

    async def list(
        self,
        tenant_id: str,
        filters: Dict[str, Any],
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[SLAInstance], int]:
        conditions = [SLAInstanceModel.tenant_id == tenant_id]
        if "sla_id" in filters:
            sla_uuid = _to_uuid(filters["sla_id"])
            if sla_uuid is None:
                return [], 0
            conditions.append(SLAInstanceModel.sla_id == sla_uuid)
        if "ticket_id" in filters:
            conditions.append(SLAInstanceModel.ticket_id == filters["ticket_id"])
        if "status" in filters:
            conditions.append(SLAInstanceModel.status == SLAStatus(filters["status"]).value)

        total = await self._session.scalar(
            select(func.count()).select_from(SLAInstanceModel).where(and_(*conditions))
        )
        stmt = (
            select(SLAInstanceModel)
            .where(and_(*conditions))
            .order_by(SLAInstanceModel.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        result = await self._session.execute(stmt)
        return [instance_to_entity(m) for m in result.scalars().all()], int(total or 0)

    async def list_for_metrics(
        self,
        tenant_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SLAInstance]:
        stmt = select(SLAInstanceModel).where(SLAInstanceModel.tenant_id == tenant_id)
        if start is not None:
            stmt = stmt.where(SLAInstanceModel.created_at >= ensure_utc(start))
        if end is not None:
            stmt = stmt.where(SLAInstanceModel.created_at <= ensure_utc(end))
        result = await self._session.execute(stmt)
        return [instance_to_entity(m) for m in result.scalars().all()]

    async def commit(self) -> None:
        await self._session.commit()


class SQLAlchemyTicketReader(ITicketReader):
    """Reads ticket snapshots from the ticketing service's tables."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_snapshot(self, ticket_id: str, tenant_id: Optional[str] = None) -> Optional[TicketSnapshot]:
        stmt = (
            select(TicketModel, CustomerModel)
            .outerjoin(CustomerModel, CustomerModel.id == TicketModel.customer_id)
            .where(TicketModel.id == ticket_id)
        )
        if tenant_id is not None:
            stmt = stmt.where(TicketModel.tenant_id == tenant_id)

        row = (await self._session.execute(stmt)).first()
        if row is None:
            return None

        ticket, customer = row
        return TicketSnapshot(
            id=ticket.id,
            tenant_id=ticket.tenant_id,
            subject=ticket.subject,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            category=ticket.category,
            channel=ticket.channel,
            tags=list(ticket.tags or []),
            customer=(
                {
                    "id": customer.id,
                    "email": customer.email,
                    "name": customer.name,
                    "company": customer.company,
                    "is_vip": customer.is_vip,
                }
                if customer is not None else None
            ),
            assigned_agent_id=ticket.assigned_agent_id,
            custom_fields=dict(ticket.custom_fields or {}),
            created_at=_utc_or_none(ticket.created_at),
        )
