"""Shared test fixtures — async DB, engine wiring, client, identity helpers.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL. The
calendar used throughout is the default Sunday–Thursday week and the clock
is pinned to Monday 2026-02-16.

2026 reference days: Sun 1 Mar, Mon 2 Mar … Thu 5 Mar, Fri 6 / Sat 7 off,
Sun 8 Mar. Sundays and Thursdays are weekend-boundary days.
"""

from __future__ import annotations

import os

# Point the application engine at SQLite before pydantic-settings is read
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leave_engine.common.constants import LeaveType, UserRole
from leave_engine.common.rate_limit import limiter
from leave_engine.database import Base, get_db
from leave_engine.directory.service import InMemoryDirectory
from leave_engine.leave.calendar import SUN_THU
from leave_engine.leave.lifecycle import LeaveLifecycle, build_lifecycle
from leave_engine.leave.models import EntitlementLedgerEntry, WeekendLeaveLedgerEntry
from leave_engine.leave.schemas import LeaveRequestCreate, LeaveRequestOut
from leave_engine.main import create_app

# Import ALL model modules so every table is registered on Base.metadata
import leave_engine.common.audit  # noqa: F401
import leave_engine.directory.models  # noqa: F401
import leave_engine.leave.models  # noqa: F401

TODAY = date(2026, 2, 16)  # Monday, H1 2026


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Engine wiring ───────────────────────────────────────────────────

class RecordingNotifier:
    """Collects (event, request id) pairs instead of delivering anything."""

    def __init__(self) -> None:
        self.events: list[tuple[str, uuid.UUID]] = []

    async def notify(self, event, request, *, actor_id=None, notes=None) -> None:
        self.events.append((event, request.id))


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def make_lifecycle(
    directory: InMemoryDirectory,
    notifier: Optional[RecordingNotifier] = None,
    **overrides,
) -> LeaveLifecycle:
    options = dict(
        today=lambda: TODAY,
        work_week=SUN_THU,
        max_consecutive_days=5,
        weekend_cap=2,
        capacity_ceiling=0.49,
    )
    options.update(overrides)
    return build_lifecycle(
        TestSessionFactory,
        directory=directory,
        notifier=notifier or RecordingNotifier(),
        **options,
    )


@pytest.fixture
def lifecycle(directory, notifier) -> LeaveLifecycle:
    return make_lifecycle(directory, notifier)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(lifecycle):
    """Create a fresh app instance with DB and engine overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.state.lifecycle = lifecycle
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Factories / helpers ─────────────────────────────────────────────

def make_payload(**overrides) -> LeaveRequestCreate:
    """A 3-working-day vacation (Mon 2 – Wed 4 Mar 2026) unless overridden."""
    data = dict(
        leave_type=LeaveType.vacation,
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 4),
        reason="Family event",
    )
    data.update(overrides)
    return LeaveRequestCreate(**data)


def identity_headers(
    employee_id: uuid.UUID, role: UserRole = UserRole.employee,
) -> dict[str, str]:
    return {"X-Employee-Id": str(employee_id), "X-Employee-Role": role.value}


async def seed_ledger(
    employee_id: uuid.UUID,
    leave_type: LeaveType = LeaveType.vacation,
    *,
    year: int = 2026,
    period: int = 1,
    allocated: Decimal = Decimal("12"),
    used: Decimal = Decimal("0"),
) -> None:
    async with TestSessionFactory() as session:
        session.add(EntitlementLedgerEntry(
            employee_id=employee_id,
            leave_type=leave_type,
            year=year,
            period=period,
            allocated=allocated,
            used=used,
        ))
        await session.commit()


async def ledger_entry(
    employee_id: uuid.UUID,
    leave_type: LeaveType = LeaveType.vacation,
    *,
    year: int = 2026,
    period: int = 1,
) -> Optional[EntitlementLedgerEntry]:
    """Fresh read of one ledger row (never served from a stale identity map)."""
    async with TestSessionFactory() as session:
        result = await session.execute(
            select(EntitlementLedgerEntry).where(
                EntitlementLedgerEntry.employee_id == employee_id,
                EntitlementLedgerEntry.leave_type == leave_type,
                EntitlementLedgerEntry.year == year,
                EntitlementLedgerEntry.period == period,
            )
        )
        return result.scalars().first()


async def weekend_entry(
    employee_id: uuid.UUID, *, year: int = 2026, period: int = 1,
) -> Optional[WeekendLeaveLedgerEntry]:
    async with TestSessionFactory() as session:
        result = await session.execute(
            select(WeekendLeaveLedgerEntry).where(
                WeekendLeaveLedgerEntry.employee_id == employee_id,
                WeekendLeaveLedgerEntry.year == year,
                WeekendLeaveLedgerEntry.period == period,
            )
        )
        return result.scalars().first()


async def submit_ok(
    lifecycle: LeaveLifecycle, employee_id: uuid.UUID, **overrides,
) -> LeaveRequestOut:
    """Submit and assert acceptance; returns the pending request."""
    result = await lifecycle.submit(employee_id, make_payload(**overrides))
    assert result.accepted, result.violations
    return result.request
