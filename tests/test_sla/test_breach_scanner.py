"""
Breach scanner and escalation notifier tests.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from supportdesk.config import BreachKind, SLAStatus
from supportdesk.core import RepositoryException
from supportdesk.sla.application import (
    BreachScanner,
    DispatchResult,
    EscalationNotifier,
    SLAInstanceService,
    SLAPolicyService,
)
from supportdesk.sla.domain import EscalationRule, SLAPolicy, SLATargets, TicketSnapshot


@pytest.fixture
def policy(policy_repo, clock):
    policy = SLAPolicy(
        id="policy-1",
        tenant_id="acme",
        name="Standard",
        targets=SLATargets(response_time=30, resolution_time=120),
        escalation_rules=[
            EscalationRule(level=1, recipients=["lead-1", "agent-7"], message="Level one"),
            EscalationRule(level=2, recipients=["manager-1"]),
        ],
        created_at=clock(),
    )
    policy_repo.items[policy.id] = policy
    return policy


@pytest.fixture
def instance_service(instance_repo, policy_repo, ticket_reader, clock):
    return SLAInstanceService(
        instance_repo,
        SLAPolicyService(policy_repo, ticket_reader, clock=clock),
        policy_repo,
        ticket_reader=ticket_reader,
        clock=clock,
    )


@pytest.fixture
def ticket(ticket_reader):
    ticket = TicketSnapshot(id="T-1", tenant_id="acme", subject="Broken login", assigned_agent_id="agent-7")
    ticket_reader.put(ticket)
    return ticket


def _scanner(instance_repo, clock, notifier=None):
    return BreachScanner(instance_repo, notifier=notifier, clock=clock, guard=asyncio.Lock())


class TestBreachScanner:
    """One sweep over overdue ACTIVE instances."""

    @pytest.mark.asyncio
    async def test_first_response_breach(self, policy, ticket, instance_service, instance_repo, clock):
        """Policy 30/120, no response after 35 minutes."""
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)

        transitioned = await _scanner(instance_repo, clock).check_breaches()

        assert [i.id for i in transitioned] == [instance.id]
        stored = instance_repo.items[instance.id]
        assert stored.status is SLAStatus.BREACHED
        assert stored.escalation_level == 1
        assert stored.breach_count == 1
        assert len(stored.notifications) == 1
        assert stored.notifications[0].breaches == [BreachKind.FIRST_RESPONSE]
        assert stored.notifications[0].escalated_to == 1
        assert instance_repo.commits == 1

    @pytest.mark.asyncio
    async def test_both_deadlines_in_one_record(self, policy, ticket, instance_service, instance_repo, clock):
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=121)

        await _scanner(instance_repo, clock).check_breaches()

        stored = instance_repo.items[instance.id]
        assert stored.breach_count == 2
        assert stored.escalation_level == 1
        assert stored.notifications[0].breaches == [BreachKind.FIRST_RESPONSE, BreachKind.RESOLUTION]

    @pytest.mark.asyncio
    async def test_breached_instance_is_not_rescanned(self, policy, ticket, instance_service, instance_repo, clock):
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)
        scanner = _scanner(instance_repo, clock)
        await scanner.check_breaches()

        clock.advance(minutes=120)
        assert await scanner.check_breaches() == []

        stored = instance_repo.items[instance.id]
        assert stored.escalation_level == 1
        assert stored.breach_count == 1

    @pytest.mark.asyncio
    async def test_before_due_nothing_happens(self, policy, ticket, instance_service, instance_repo, clock):
        await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=30)
        assert await _scanner(instance_repo, clock).check_breaches() == []

    @pytest.mark.asyncio
    async def test_paused_instance_is_skipped(self, policy, ticket, instance_service, instance_repo, clock):
        from supportdesk.sla.application import TicketEventDTO

        instance = await instance_service.create_instance_for_ticket(ticket)
        await instance_service.handle_ticket_event("acme", "T-1", TicketEventDTO(type="pause"))
        clock.advance(minutes=200)

        assert await _scanner(instance_repo, clock).check_breaches() == []
        assert instance_repo.items[instance.id].status is SLAStatus.PAUSED

    @pytest.mark.asyncio
    async def test_conflict_with_first_response_cancels_breach(
        self, policy, ticket, instance_service, instance_repo, clock
    ):
        """A response recorded concurrently wins over the stale breach."""
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)

        def respond(repo):
            stored = repo.items[instance.id]
            stored.first_response_at = clock() - timedelta(minutes=1)
            stored.version += 1

        instance_repo.conflicts_to_raise = 1
        instance_repo.on_conflict = respond

        assert await _scanner(instance_repo, clock).check_breaches() == []
        stored = instance_repo.items[instance.id]
        assert stored.status is SLAStatus.ACTIVE
        assert stored.escalation_level == 0

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, policy, ticket, instance_service, instance_repo, clock):
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)
        instance_repo.conflicts_to_raise = 1

        transitioned = await _scanner(instance_repo, clock).check_breaches()

        assert len(transitioned) == 1
        assert instance_repo.items[instance.id].escalation_level == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(self, policy, ticket, instance_service, instance_repo, clock):
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)
        instance_repo.conflicts_to_raise = BreachScanner.MAX_CONFLICT_RETRIES

        assert await _scanner(instance_repo, clock).check_breaches() == []
        assert instance_repo.items[instance.id].status is SLAStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_each_instance_commits_independently(self, policy, ticket_reader, instance_service, instance_repo, clock):
        for ticket_id in ("T-1", "T-2", "T-3"):
            ticket_reader.put(TicketSnapshot(id=ticket_id, tenant_id="acme"))
            await instance_service.create_instance_for_ticket(await ticket_reader.get_snapshot(ticket_id))
        clock.advance(minutes=31)

        transitioned = await _scanner(instance_repo, clock).check_breaches()

        assert len(transitioned) == 3
        assert instance_repo.commits == 3

    @pytest.mark.asyncio
    async def test_concurrent_tick_is_skipped(self, instance_repo, clock):
        guard = asyncio.Lock()
        repo = AsyncMock()
        scanner = BreachScanner(repo, clock=clock, guard=guard)

        async with guard:
            assert await scanner.check_breaches() == []
        repo.find_overdue_active.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_failure_propagates(self, clock):
        repo = AsyncMock()
        repo.find_overdue_active.side_effect = RepositoryException("database unavailable")
        scanner = BreachScanner(repo, clock=clock, guard=asyncio.Lock())

        with pytest.raises(RepositoryException):
            await scanner.check_breaches()

    @pytest.mark.asyncio
    async def test_scheduled_scan_swallows_failures(self, clock):
        repo = AsyncMock()
        repo.find_overdue_active.side_effect = RepositoryException("database unavailable")
        scanner = BreachScanner(repo, clock=clock, guard=asyncio.Lock())

        assert await scanner.run_scheduled_scan() == []


class TestEscalationNotifier:
    """Agent notifications and tenant broadcast after a breach."""

    @pytest.fixture
    def dispatcher(self):
        dispatcher = AsyncMock()
        dispatcher.notify.return_value = DispatchResult(delivered=True)
        return dispatcher

    @pytest.fixture
    def broadcaster(self):
        broadcaster = AsyncMock()
        broadcaster.broadcast.return_value = DispatchResult(delivered=True)
        return broadcaster

    @pytest.mark.asyncio
    async def test_notifies_agent_and_rule_recipients(
        self, policy, ticket, instance_service, instance_repo, policy_repo, ticket_reader,
        clock, dispatcher, broadcaster
    ):
        notifier = EscalationNotifier(dispatcher, broadcaster, ticket_reader, policy_repo)
        await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)

        await _scanner(instance_repo, clock, notifier).check_breaches()

        requests = [call.args[0] for call in dispatcher.notify.await_args_list]
        assert [r.recipient_id for r in requests] == ["agent-7", "lead-1"]
        assert all(r.tenant_id == "acme" for r in requests)
        assert requests[0].title == "SLA Breach on Ticket T-1"
        assert "first_response_breach" in requests[0].message
        assert requests[1].message == "Level one"
        assert requests[0].data == {"ticket_id": "T-1", "sla_id": "policy-1"}

        broadcaster.broadcast.assert_awaited_once_with(
            "acme", "sla_breach", {"ticket_id": "T-1", "breaches": ["first_response_breach"], "level": 1}
        )

    @pytest.mark.asyncio
    async def test_unassigned_ticket_without_rules_only_broadcasts(
        self, ticket_reader, instance_repo, policy_repo, instance_service, clock, dispatcher, broadcaster
    ):
        policy_repo.items["plain"] = SLAPolicy(
            id="plain", tenant_id="acme", name="Plain",
            targets=SLATargets(response_time=30, resolution_time=120), created_at=clock(),
        )
        ticket = TicketSnapshot(id="T-9", tenant_id="acme")
        ticket_reader.put(ticket)
        await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)

        notifier = EscalationNotifier(dispatcher, broadcaster, ticket_reader, policy_repo)
        await _scanner(instance_repo, clock, notifier).check_breaches()

        dispatcher.notify.assert_not_awaited()
        broadcaster.broadcast.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_breach(
        self, policy, ticket, instance_service, instance_repo, policy_repo, ticket_reader,
        clock, dispatcher, broadcaster
    ):
        dispatcher.notify.side_effect = RuntimeError("webhook down")
        broadcaster.broadcast.return_value = DispatchResult(delivered=False, error="no route")
        notifier = EscalationNotifier(dispatcher, broadcaster, ticket_reader, policy_repo)
        instance = await instance_service.create_instance_for_ticket(ticket)
        clock.advance(minutes=35)

        transitioned = await _scanner(instance_repo, clock, notifier).check_breaches()

        assert len(transitioned) == 1
        assert instance_repo.items[instance.id].status is SLAStatus.BREACHED

    @pytest.mark.asyncio
    async def test_ticket_lookup_failure_still_broadcasts(self, clock, broadcaster):
        from supportdesk.sla.domain import SLAInstance

        tickets = AsyncMock()
        tickets.get_snapshot.side_effect = RuntimeError("ticket service down")
        notifier = EscalationNotifier(broadcaster=broadcaster, ticket_reader=tickets)
        instance = SLAInstance(
            id="i-1", sla_id="policy-1", ticket_id="T-1", tenant_id="acme",
            first_response_due=clock(), resolution_due=clock(),
        )
        record = instance.record_breach([BreachKind.FIRST_RESPONSE], clock())

        assert await notifier.notify_breach(instance, record) == []
        broadcaster.broadcast.assert_awaited_once()
