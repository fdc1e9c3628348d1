"""
SLA Delivery Adapters
=====================

Outbound side of breach handling:
- WebhookNotificationDispatcher: agent notification requests over HTTP
- TenantBroadcastChannel: real-time breach events per tenant
- SLAScheduler: APScheduler interval job driving the breach scan
"""

import asyncio
import time
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.config import settings
from supportdesk.infrastructure.database import get_session_context
from supportdesk.shared.infrastructure.grafana import get_grafana_exporter
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.sla.application import (
    BreachScanner,
    DispatchResult,
    EscalationNotifier,
    IBroadcastChannel,
    INotificationDispatcher,
    NotificationRequest,
)
from supportdesk.sla.infrastructure.repositories import (
    SQLAlchemySLAInstanceRepository,
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketReader,
)

logger = get_logger(__name__)

BREACH_SCAN_JOB_ID = "sla_breach_scan"
DELIVERED_STATUSES = frozenset({200, 201, 202, 204})


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops webhook calls after repeated delivery failures.

    Opens once failure_threshold consecutive notifications fail, then lets a
    probe through after recovery_timeout seconds. A success closes it again.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        self._consecutive_failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures < self.failure_threshold:
            return
        self._opened_at = time.monotonic()
        logger.warning(
            "Notification circuit opened",
            extra={
                "consecutive_failures": self._consecutive_failures,
                "recovery_timeout": self.recovery_timeout,
            }
        )


class _WebhookSender:
    """Lazily created httpx client shared by the webhook adapters."""

    label = "webhook"

    def __init__(self, url: Optional[str], http_client: Optional[httpx.AsyncClient] = None):
        self._url = url
        self._http_client = http_client

    async def _post(self, body: Dict[str, Any]) -> Optional[str]:
        """POST body to the webhook; returns an error description or None."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
        try:
            response = await self._http_client.post(self._url, json=body)
        except httpx.HTTPError as e:
            return str(e) or e.__class__.__name__
        if response.status_code not in DELIVERED_STATUSES:
            return f"{self.label} returned {response.status_code}"
        return None

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class WebhookNotificationDispatcher(_WebhookSender, INotificationDispatcher):
    """
    Posts notification requests to the notification service webhook.

    Failed posts are retried with exponential backoff (1s, 2s, ...). A
    notification that exhausts its retries counts as one circuit failure.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(webhook_url or settings.notification_webhook_url, http_client)
        self._max_retries = max_retries
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    @staticmethod
    def _build_payload(request: NotificationRequest) -> Dict[str, Any]:
        return {
            "tenant_id": request.tenant_id,
            "user_id": request.recipient_id,
            "title": request.title,
            "message": request.message,
            "category": request.category,
            "priority": request.priority,
            "data": request.data,
        }

    async def notify(self, request: NotificationRequest) -> DispatchResult:
        if not self._url:
            return DispatchResult(delivered=False, error="notification webhook not configured")
        if not self._circuit_breaker.allow_request():
            return DispatchResult(delivered=False, error="circuit breaker open")

        payload = self._build_payload(request)
        error: Optional[str] = None

        for attempt in range(1, self._max_retries + 1):
            error = await self._post(payload)
            if error is None:
                self._circuit_breaker.record_success()
                logger.info(
                    "Notification request delivered",
                    extra={"tenant_id": request.tenant_id, "recipient_id": request.recipient_id}
                )
                return DispatchResult(delivered=True)

            logger.warning(
                "Notification delivery attempt failed",
                extra={"error": error, "attempt": attempt, "max_retries": self._max_retries}
            )
            if attempt < self._max_retries:
                await asyncio.sleep(2 ** (attempt - 1))

        self._circuit_breaker.record_failure()
        return DispatchResult(delivered=False, error=error)


class TenantBroadcastChannel(_WebhookSender, IBroadcastChannel):
    """
    In-process fan-out of tenant events.

    Subscribers receive {"event", "payload"} messages on their own queue.
    When a broadcast webhook is configured every event is mirrored to it
    so other processes can relay it.
    """

    label = "broadcast webhook"

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        queue_size: int = 100,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(webhook_url or settings.broadcast_webhook_url, http_client)
        self._queue_size = queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, tenant_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[tenant_id].add(queue)
        return queue

    def unsubscribe(self, tenant_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(tenant_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[tenant_id]

    def subscriber_count(self, tenant_id: str) -> int:
        return len(self._subscribers.get(tenant_id, ()))

    async def broadcast(self, tenant_id: str, event: str, payload: Dict[str, Any]) -> DispatchResult:
        message = {"event": event, "payload": payload}

        dropped = 0
        for queue in list(self._subscribers.get(tenant_id, ())):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                dropped += 1
        if dropped:
            logger.warning(
                "Broadcast dropped for slow subscribers",
                extra={"tenant_id": tenant_id, "event": event, "dropped": dropped}
            )

        if not self._url:
            return DispatchResult(delivered=True)
        error = await self._post({"tenant_id": tenant_id, **message})
        return DispatchResult(delivered=error is None, error=error)


# ========== Singletons ==========

_dispatcher: Optional[WebhookNotificationDispatcher] = None
_broadcast_channel: Optional[TenantBroadcastChannel] = None


def get_notification_dispatcher() -> Optional[WebhookNotificationDispatcher]:
    """Process-wide dispatcher, or None when no webhook is configured."""
    global _dispatcher
    if not settings.notification_webhook_url:
        return None
    if _dispatcher is None:
        _dispatcher = WebhookNotificationDispatcher()
    return _dispatcher


def get_broadcast_channel() -> TenantBroadcastChannel:
    global _broadcast_channel
    if _broadcast_channel is None:
        _broadcast_channel = TenantBroadcastChannel()
    return _broadcast_channel


async def close_external_clients() -> None:
    if _dispatcher is not None:
        await _dispatcher.close()
    if _broadcast_channel is not None:
        await _broadcast_channel.close()


def build_breach_scanner(
    session: AsyncSession,
    dispatcher: Optional[INotificationDispatcher] = None,
    broadcaster: Optional[IBroadcastChannel] = None,
) -> BreachScanner:
    """Scanner wired to SQLAlchemy repositories on one session."""
    notifier = EscalationNotifier(
        dispatcher=dispatcher,
        broadcaster=broadcaster,
        ticket_reader=SQLAlchemyTicketReader(session),
        policy_repository=SQLAlchemySLAPolicyRepository(session),
    )
    return BreachScanner(SQLAlchemySLAInstanceRepository(session), notifier)


async def run_breach_scan_job() -> None:
    """Scheduled job body: one sweep in a fresh session, then metrics."""
    start = time.perf_counter()
    async with get_session_context() as session:
        scanner = build_breach_scanner(
            session,
            dispatcher=get_notification_dispatcher(),
            broadcaster=get_broadcast_channel(),
        )
        transitioned = await scanner.run_scheduled_scan()

    latency_ms = (time.perf_counter() - start) * 1000
    await get_grafana_exporter().export_breach_scan_metrics(len(transitioned), latency_ms)


class SLAScheduler:
    """
    Runs the breach scan on an APScheduler interval trigger.

    A single job instance at a time; missed runs coalesce into one.
    """

    def __init__(self, interval_seconds: Optional[int] = None):
        self.interval_seconds = interval_seconds or settings.breach_scan_interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def start(self, job_func: Callable[[], Awaitable[None]] = run_breach_scan_job) -> None:
        if self.is_running:
            logger.warning("Breach scan scheduler already running", extra={"job_id": BREACH_SCAN_JOB_ID})
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            job_func,
            trigger="interval",
            seconds=self.interval_seconds,
            id=BREACH_SCAN_JOB_ID,
            name="SLA breach scan",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Breach scan scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self.is_running:
            return
        self._scheduler.shutdown(wait=True)
        self._scheduler = None
        logger.info("Breach scan scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def job_ids(self) -> List[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]
