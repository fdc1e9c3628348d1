"""
SQLAlchemy agent and customer directory tests against in-memory SQLite.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from supportdesk.infrastructure.database.models import (
    AgentModel,
    AgentProfileModel,
    CustomerModel,
    TeamMembershipModel,
    TicketModel,
)
from supportdesk.routing.infrastructure import SQLAlchemyAgentDirectory, SQLAlchemyCustomerDirectory

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def _add_agent(db, agent_id, tenant_id="acme", minutes=0, is_active=True, **profile):
    db.add(AgentModel(
        id=agent_id, tenant_id=tenant_id, name=agent_id.title(), is_active=is_active,
        created_at=T0 + timedelta(minutes=minutes),
    ))
    db.add(AgentProfileModel(agent_id=agent_id, **profile))


@pytest_asyncio.fixture
async def seeded(db):
    _add_agent(db, "second", minutes=5, skills=["billing"], languages=["en", "de"])
    _add_agent(db, "first", minutes=0, max_concurrent_tickets=3)
    _add_agent(db, "retired", minutes=1, is_active=False)
    _add_agent(db, "manual", minutes=2, auto_assign=False)
    _add_agent(db, "elsewhere", tenant_id="globex")
    db.add(AgentModel(id="no-profile", tenant_id="acme", created_at=T0))

    db.add(TeamMembershipModel(team_id="t-billing", agent_id="second"))
    db.add(TeamMembershipModel(team_id="t-vip", agent_id="second"))

    for i, status in enumerate(["open", "in_progress", "closed", "resolved"]):
        db.add(TicketModel(id=f"T-{i}", tenant_id="acme", status=status, assigned_agent_id="second"))
    db.add(TicketModel(id="T-9", tenant_id="globex", status="open", assigned_agent_id="first"))
    await db.flush()
    return db


class TestAgentDirectory:
    @pytest.mark.asyncio
    async def test_candidates_in_creation_order(self, seeded):
        candidates = await SQLAlchemyAgentDirectory(seeded, default_capacity=4).list_candidates("acme")
        assert [c.id for c in candidates] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_candidate_fields(self, seeded):
        first, second = await SQLAlchemyAgentDirectory(seeded, default_capacity=4).list_candidates("acme")

        assert first.max_concurrent_tickets == 3
        assert first.current_load == 0
        assert first.team_ids == []

        assert second.name == "Second"
        assert second.max_concurrent_tickets == 4
        assert second.current_load == 2
        assert second.skills == ["billing"]
        assert second.languages == ["en", "de"]
        assert sorted(second.team_ids) == ["t-billing", "t-vip"]

    @pytest.mark.asyncio
    async def test_default_capacity_from_settings(self, seeded):
        from supportdesk.config import settings

        candidates = await SQLAlchemyAgentDirectory(seeded).list_candidates("acme")
        assert candidates[1].max_concurrent_tickets == settings.default_max_concurrent_tickets

    @pytest.mark.asyncio
    async def test_explicit_zero_default_capacity(self, seeded):
        first, second = await SQLAlchemyAgentDirectory(seeded, default_capacity=0).list_candidates("acme")

        assert first.max_concurrent_tickets == 3
        assert second.max_concurrent_tickets == 0

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, seeded):
        assert await SQLAlchemyAgentDirectory(seeded).list_candidates("initech") == []


class TestCustomerDirectory:
    @pytest.mark.asyncio
    async def test_is_vip(self, db):
        db.add(CustomerModel(id="c-vip", tenant_id="acme", is_vip=True))
        db.add(CustomerModel(id="c-regular", tenant_id="acme"))
        await db.flush()
        directory = SQLAlchemyCustomerDirectory(db)

        assert await directory.is_vip("acme", "c-vip") is True
        assert await directory.is_vip("acme", "c-regular") is False
        assert await directory.is_vip("globex", "c-vip") is False
        assert await directory.is_vip("acme", "c-missing") is False
