"""
Routing Infrastructure Repositories
=====================================

Read-only SQLAlchemy adapters over the agent, team and customer tables.
Candidates are read fresh on every call.
"""

from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.config import OPEN_TICKET_STATUSES, settings
from supportdesk.infrastructure.database.models import (
    AgentModel,
    AgentProfileModel,
    CustomerModel,
    TeamMembershipModel,
    TicketModel,
)
from supportdesk.routing.application import IAgentDirectory, ICustomerDirectory
from supportdesk.routing.domain import AgentCandidate


class SQLAlchemyAgentDirectory(IAgentDirectory):
    """
    Active agents with automatic assignment enabled.

    Each candidate carries its team memberships and the number of its
    tickets in an open status.
    """

    def __init__(self, session: AsyncSession, default_capacity: Optional[int] = None):
        self._session = session
        self._default_capacity = (
            default_capacity if default_capacity is not None else settings.default_max_concurrent_tickets
        )

    async def list_candidates(self, tenant_id: str) -> List[AgentCandidate]:
        stmt = (
            select(AgentModel, AgentProfileModel)
            .join(AgentProfileModel, AgentProfileModel.agent_id == AgentModel.id)
            .where(
                AgentModel.tenant_id == tenant_id,
                AgentModel.is_active.is_(True),
                AgentProfileModel.auto_assign.is_(True),
            )
            .order_by(AgentModel.created_at.asc(), AgentModel.id.asc())
        )
        rows = (await self._session.execute(stmt)).all()
        if not rows:
            return []

        agent_ids = [agent.id for agent, _ in rows]
        teams = await self._team_ids(agent_ids)
        loads = await self._open_ticket_counts(tenant_id, agent_ids)

        return [
            AgentCandidate(
                id=agent.id,
                name=agent.name or None,
                max_concurrent_tickets=(
                    profile.max_concurrent_tickets
                    if profile.max_concurrent_tickets is not None
                    else self._default_capacity
                ),
                skills=list(profile.skills or []),
                languages=list(profile.languages or []),
                team_ids=teams.get(agent.id, []),
                current_load=loads.get(agent.id, 0),
                created_at=agent.created_at,
            )
            for agent, profile in rows
        ]

    async def _team_ids(self, agent_ids: List[str]) -> Dict[str, List[str]]:
        stmt = select(TeamMembershipModel.agent_id, TeamMembershipModel.team_id).where(
            TeamMembershipModel.agent_id.in_(agent_ids)
        )
        teams: Dict[str, List[str]] = defaultdict(list)
        for agent_id, team_id in (await self._session.execute(stmt)).all():
            teams[agent_id].append(team_id)
        return teams

    async def _open_ticket_counts(self, tenant_id: str, agent_ids: List[str]) -> Dict[str, int]:
        stmt = (
            select(TicketModel.assigned_agent_id, func.count(TicketModel.id))
            .where(
                TicketModel.tenant_id == tenant_id,
                TicketModel.assigned_agent_id.in_(agent_ids),
                TicketModel.status.in_(OPEN_TICKET_STATUSES),
            )
            .group_by(TicketModel.assigned_agent_id)
        )
        return {agent_id: count for agent_id, count in (await self._session.execute(stmt)).all()}


class SQLAlchemyCustomerDirectory(ICustomerDirectory):
    """VIP lookup on the customers table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_vip(self, tenant_id: str, customer_id: str) -> bool:
        stmt = select(CustomerModel.is_vip).where(
            CustomerModel.id == customer_id,
            CustomerModel.tenant_id == tenant_id,
        )
        return bool(await self._session.scalar(stmt))
