"""
Breach Scanning and Escalation
===============================

BreachScanner sweeps every tenant for ACTIVE instances past a due date,
moves them to BREACHED and raises their escalation level.
EscalationNotifier then asks for agent notifications and a tenant
broadcast. Notification failures are logged and never undo a breach.
"""

import asyncio
from typing import List, Optional

from supportdesk.config import settings
from supportdesk.core import ConcurrencyConflictException
from supportdesk.shared.infrastructure.logging import get_logger, log_latency
from supportdesk.sla.application.services import (
    Clock,
    DispatchResult,
    IBroadcastChannel,
    INotificationDispatcher,
    ISLAInstanceRepository,
    ISLAPolicyRepository,
    ITicketReader,
    NotificationRequest,
    system_clock,
)
from supportdesk.sla.domain import BreachRecord, SLAInstance, SLAPolicy, TicketSnapshot

logger = get_logger(__name__)

BREACH_EVENT = "sla_breach"

_scan_guard: Optional[asyncio.Lock] = None


def get_scan_guard() -> asyncio.Lock:
    """Process-wide guard shared by every scanner instance."""
    global _scan_guard
    if _scan_guard is None:
        _scan_guard = asyncio.Lock()
    return _scan_guard


class EscalationNotifier:
    """
    Best-effort side channel for breaches.

    Notifies the ticket's assigned agent plus the recipients of any
    escalation rule configured for the new level, then broadcasts a
    tenant-scoped sla_breach event.
    """

    def __init__(
        self,
        dispatcher: Optional[INotificationDispatcher] = None,
        broadcaster: Optional[IBroadcastChannel] = None,
        ticket_reader: Optional[ITicketReader] = None,
        policy_repository: Optional[ISLAPolicyRepository] = None,
    ):
        self._dispatcher = dispatcher
        self._broadcaster = broadcaster
        self._tickets = ticket_reader
        self._policies = policy_repository

    async def notify_breach(self, instance: SLAInstance, record: BreachRecord) -> List[DispatchResult]:
        """Send every notification for one breach. Never raises."""
        ticket = await self._load_ticket(instance)
        policy = await self._load_policy(instance)

        breach_names = ", ".join(kind.value for kind in record.breaches)
        default_message = (
            f"Ticket has breached SLA: {breach_names}. Escalated to level {record.escalated_to}."
        )

        requests: List[NotificationRequest] = []
        seen = set()

        def queue(recipient: Optional[str], message: str) -> None:
            if recipient and recipient not in seen:
                seen.add(recipient)
                requests.append(NotificationRequest(
                    tenant_id=instance.tenant_id,
                    recipient_id=recipient,
                    title=f"SLA Breach on Ticket {instance.ticket_id}",
                    message=message,
                    data={"ticket_id": instance.ticket_id, "sla_id": instance.sla_id},
                ))

        if ticket is not None:
            queue(ticket.assigned_agent_id, default_message)
        if policy is not None:
            for rule in policy.rules_for_level(record.escalated_to):
                for recipient in rule.recipients:
                    queue(recipient, rule.message or default_message)

        results = []
        if self._dispatcher is not None:
            for request in requests:
                results.append(await self._dispatch(request))

        await self._broadcast(instance, record)
        return results

    async def _dispatch(self, request: NotificationRequest) -> DispatchResult:
        try:
            result = await self._dispatcher.notify(request)
        except Exception as e:
            result = DispatchResult(delivered=False, error=str(e))

        if not result.delivered:
            logger.warning(
                "Failed to send SLA breach notification",
                extra={
                    "tenant_id": request.tenant_id,
                    "recipient_id": request.recipient_id,
                    "ticket_id": request.data.get("ticket_id"),
                    "error": result.error,
                }
            )
        return result

    async def _broadcast(self, instance: SLAInstance, record: BreachRecord) -> None:
        if self._broadcaster is None:
            return
        payload = {
            "ticket_id": instance.ticket_id,
            "breaches": [kind.value for kind in record.breaches],
            "level": record.escalated_to,
        }
        try:
            result = await self._broadcaster.broadcast(instance.tenant_id, BREACH_EVENT, payload)
        except Exception as e:
            result = DispatchResult(delivered=False, error=str(e))

        if not result.delivered:
            logger.warning(
                "Failed to broadcast SLA breach",
                extra={"tenant_id": instance.tenant_id, "ticket_id": instance.ticket_id, "error": result.error}
            )

    async def _load_ticket(self, instance: SLAInstance) -> Optional[TicketSnapshot]:
        if self._tickets is None:
            return None
        try:
            return await self._tickets.get_snapshot(instance.ticket_id, instance.tenant_id)
        except Exception as e:
            logger.warning(
                "Could not load ticket for breach notification",
                extra={"ticket_id": instance.ticket_id, "error": str(e)}
            )
            return None

    async def _load_policy(self, instance: SLAInstance) -> Optional[SLAPolicy]:
        if self._policies is None:
            return None
        try:
            return await self._policies.get_by_id(instance.sla_id, instance.tenant_id)
        except Exception as e:
            logger.warning(
                "Could not load policy for breach notification",
                extra={"sla_id": instance.sla_id, "error": str(e)}
            )
            return None


class BreachScanner:
    """
    Periodic sweep over all tenants.

    Each overdue instance is written and committed on its own, so one
    conflict or notification failure does not affect the others.
    """

    MAX_CONFLICT_RETRIES = 3

    def __init__(
        self,
        instance_repository: ISLAInstanceRepository,
        notifier: Optional[EscalationNotifier] = None,
        clock: Clock = system_clock,
        guard: Optional[asyncio.Lock] = None,
    ):
        self._instances = instance_repository
        self._notifier = notifier or EscalationNotifier()
        self._clock = clock
        self._guard = guard or get_scan_guard()

    async def check_breaches(self) -> List[SLAInstance]:
        """
        Run one sweep.

        Returns:
            Instances moved to BREACHED by this call. A sweep that finds
            another sweep in progress does nothing and returns [].

        Raises:
            RepositoryException: If overdue instances cannot be read
        """
        if self._guard.locked():
            logger.warning("Breach scan already running, skipping this tick")
            return []

        async with self._guard:
            now = self._clock()
            candidates = await self._instances.find_overdue_active(now)

            transitioned = []
            for instance in candidates:
                breached = await self._breach(instance, now)
                if breached is not None:
                    transitioned.append(breached)

            if transitioned:
                logger.info(
                    "SLA breach scan transitioned instances",
                    extra={"candidates": len(candidates), "transitioned": len(transitioned)}
                )
            return transitioned

    async def _breach(self, instance: SLAInstance, now) -> Optional[SLAInstance]:
        current: Optional[SLAInstance] = instance
        for _ in range(self.MAX_CONFLICT_RETRIES):
            if current is None:
                return None
            breaches = current.detect_breaches(now)
            if not breaches:
                return None

            record = current.record_breach(breaches, now)
            try:
                saved = await self._instances.save(current)
                await self._instances.commit()
            except ConcurrencyConflictException:
                logger.warning(
                    "SLA instance changed during breach scan, re-evaluating",
                    extra={"instance_id": current.id, "ticket_id": current.ticket_id}
                )
                current = await self._instances.get_by_id(current.id)
                continue

            logger.info(
                "SLA breached",
                extra={
                    "tenant_id": saved.tenant_id,
                    "instance_id": saved.id,
                    "ticket_id": saved.ticket_id,
                    "breaches": [kind.value for kind in breaches],
                    "escalation_level": saved.escalation_level,
                }
            )
            await self._notifier.notify_breach(saved, record)
            return saved
        return None

    async def run_scheduled_scan(self) -> List[SLAInstance]:
        """Scheduler entry point: logs failures and waits for the next tick."""
        try:
            with log_latency(logger, "sla_breach_scan", slow_ms=settings.breach_scan_interval_seconds * 1000):
                return await self.check_breaches()
        except Exception:
            logger.exception("SLA breach scan failed")
            return []
