"""
Test fixtures for the SLA engine and routing scorer.

Provides:
- Environment defaults applied before the application settings load
- In-memory repository fakes with the same optimistic version check as SQL
- A controllable clock
- Async SQLite engine and session fixtures
- FastAPI test client with the DB dependency overridden
"""

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LLM_PROVIDER", "none")
os.environ.setdefault("BREACH_SCAN_ENABLED", "false")

import copy
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from supportdesk.config import SLAStatus
from supportdesk.core import ConcurrencyConflictException
from supportdesk.infrastructure.database import Base, get_session
from supportdesk.infrastructure.database import models as read_models  # noqa: F401 - register tables
from supportdesk.sla.application import ISLAInstanceRepository, ISLAPolicyRepository, ITicketReader
from supportdesk.sla.infrastructure import models as sla_models  # noqa: F401 - register tables

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


# ── Clock ────────────────────────────────────────────────────────────────


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ── In-memory repositories ───────────────────────────────────────────────


class InMemoryPolicyRepository(ISLAPolicyRepository):
    def __init__(self):
        self.items: Dict[str, object] = {}

    async def get_by_id(self, policy_id, tenant_id=None):
        policy = self.items.get(policy_id)
        if policy is None or (tenant_id is not None and policy.tenant_id != tenant_id):
            return None
        return copy.deepcopy(policy)

    async def list_active(self, tenant_id):
        active = [p for p in self.items.values() if p.tenant_id == tenant_id and p.is_active]
        return [copy.deepcopy(p) for p in sorted(active, key=lambda p: (p.created_at, p.id))]

    async def list(self, tenant_id, page=1, limit=20, priority=None):
        rows = [
            p for p in self.items.values()
            if p.tenant_id == tenant_id and (priority is None or p.priority == priority)
        ]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        start = (page - 1) * limit
        return [copy.deepcopy(p) for p in rows[start:start + limit]], len(rows)

    async def count(self, tenant_id, active_only=False):
        return sum(
            1 for p in self.items.values()
            if p.tenant_id == tenant_id and (p.is_active or not active_only)
        )

    async def create(self, policy):
        self.items[policy.id] = copy.deepcopy(policy)
        return policy

    async def update(self, policy):
        self.items[policy.id] = copy.deepcopy(policy)
        return policy

    async def delete(self, policy_id, tenant_id):
        policy = self.items.get(policy_id)
        if policy is None or policy.tenant_id != tenant_id:
            return False
        del self.items[policy_id]
        return True


class InMemoryInstanceRepository(ISLAInstanceRepository):
    """Stores copies so callers cannot mutate state without save()."""

    def __init__(self):
        self.items: Dict[str, object] = {}
        self.commits = 0
        self.conflicts_to_raise = 0
        self.on_conflict = None

    async def get_by_id(self, instance_id, tenant_id=None):
        instance = self.items.get(instance_id)
        if instance is None or (tenant_id is not None and instance.tenant_id != tenant_id):
            return None
        return copy.deepcopy(instance)

    async def add(self, instance):
        self.items[instance.id] = copy.deepcopy(instance)
        return instance

    async def save(self, instance):
        if self.conflicts_to_raise > 0:
            self.conflicts_to_raise -= 1
            if self.on_conflict is not None:
                self.on_conflict(self)
            raise ConcurrencyConflictException("SLA instance", instance.id, instance.version)

        stored = self.items.get(instance.id)
        if stored is None or stored.version != instance.version:
            raise ConcurrencyConflictException("SLA instance", instance.id, instance.version)
        instance.version += 1
        self.items[instance.id] = copy.deepcopy(instance)
        return instance

    def _for_ticket(self, ticket_id, tenant_id) -> List:
        rows = [
            i for i in self.items.values()
            if i.ticket_id == ticket_id and (tenant_id is None or i.tenant_id == tenant_id)
        ]
        return sorted(rows, key=lambda i: (i.created_at, i.id), reverse=True)

    async def find_current_for_ticket(self, ticket_id, tenant_id=None):
        for instance in self._for_ticket(ticket_id, tenant_id):
            if instance.status is not SLAStatus.COMPLETED:
                return copy.deepcopy(instance)
        return None

    async def get_latest_for_ticket(self, ticket_id, tenant_id=None):
        rows = self._for_ticket(ticket_id, tenant_id)
        return copy.deepcopy(rows[0]) if rows else None

    async def find_overdue_active(self, now):
        rows = [
            i for i in self.items.values()
            if i.status is SLAStatus.ACTIVE and (
                (i.first_response_due < now and i.first_response_at is None)
                or (i.resolution_due < now and i.resolution_at is None)
            )
        ]
        return [copy.deepcopy(i) for i in sorted(rows, key=lambda i: i.created_at)]

    async def list(self, tenant_id, filters, page=1, limit=20):
        rows = [
            i for i in self.items.values()
            if i.tenant_id == tenant_id
            and all(getattr(i, key) == value for key, value in filters.items())
        ]
        rows.sort(key=lambda i: i.created_at, reverse=True)
        start = (page - 1) * limit
        return [copy.deepcopy(i) for i in rows[start:start + limit]], len(rows)

    async def list_for_metrics(self, tenant_id, start=None, end=None):
        return [
            copy.deepcopy(i) for i in self.items.values()
            if i.tenant_id == tenant_id
            and (start is None or i.created_at >= start)
            and (end is None or i.created_at <= end)
        ]

    async def commit(self):
        self.commits += 1


class InMemoryTicketReader(ITicketReader):
    def __init__(self, tickets: Optional[List] = None):
        self.tickets = {t.id: t for t in tickets or []}

    def put(self, ticket):
        self.tickets[ticket.id] = ticket

    async def get_snapshot(self, ticket_id, tenant_id=None):
        ticket = self.tickets.get(ticket_id)
        if ticket is None or (tenant_id is not None and ticket.tenant_id != tenant_id):
            return None
        return ticket


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def policy_repo() -> InMemoryPolicyRepository:
    return InMemoryPolicyRepository()


@pytest.fixture
def instance_repo() -> InMemoryInstanceRepository:
    return InMemoryInstanceRepository()


@pytest.fixture
def ticket_reader() -> InMemoryTicketReader:
    return InMemoryTicketReader()


# ── Database ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test with all tables."""
    eng = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(session_factory):
    """Async test client with the session dependency bound to the test database."""
    from supportdesk.main import app

    async def _override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
