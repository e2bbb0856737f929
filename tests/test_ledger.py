"""Entitlement ledger tests — reservation, release, weekend quota, admin ops."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import AuditTrail
from leave_engine.common.constants import LeaveType
from leave_engine.common.exceptions import InsufficientBalance, ValidationException
from leave_engine.leave.ledger import EntitlementLedger
from leave_engine.leave.models import EntitlementLedgerEntry, WeekendLeaveLedgerEntry
from leave_engine.leave.periods import PeriodKey

H1 = PeriodKey(2026, 1)
H2 = PeriodKey(2026, 2)


@pytest.fixture
def ledger() -> EntitlementLedger:
    return EntitlementLedger(weekend_cap=2)


async def _row_count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


# ═════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════


class TestBalances:

    async def test_missing_entry_reads_policy_default(self, db, ledger):
        emp = uuid.uuid4()
        balance = await ledger.get_period_balance(db, emp, LeaveType.vacation, H1)
        assert balance.allocated == Decimal("12")
        assert balance.used == Decimal("0")
        assert balance.remaining == Decimal("12")
        # Reads never create entries
        assert await _row_count(db, EntitlementLedgerEntry) == 0

    async def test_vacation_year_balance_aggregates_halves(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("3"))
        await ledger.reserve(db, emp, LeaveType.vacation, H2, Decimal("2"))

        year = await ledger.get_balance(db, emp, LeaveType.vacation, 2026)
        assert year.allocated == Decimal("24")
        assert year.used == Decimal("5")
        assert year.remaining == Decimal("19")

    async def test_get_balance_is_idempotent(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.personal, H1, Decimal("1"))
        first = await ledger.get_balance(db, emp, LeaveType.personal, 2026)
        second = await ledger.get_balance(db, emp, LeaveType.personal, 2026)
        assert first == second

    async def test_annual_types_share_one_entry_across_halves(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.sick, H1, Decimal("2"))
        await ledger.reserve(db, emp, LeaveType.sick, H2, Decimal("3"))

        balance = await ledger.get_period_balance(db, emp, LeaveType.sick, H2)
        assert balance.used == Decimal("5")
        assert balance.remaining == Decimal("5")
        assert await _row_count(db, EntitlementLedgerEntry) == 1


# ═════════════════════════════════════════════════════════════════════
# Reserve / release
# ═════════════════════════════════════════════════════════════════════


class TestReserveRelease:

    async def test_reserve_opens_entry_lazily(self, db, ledger):
        emp = uuid.uuid4()
        balance = await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("3"))
        assert balance.used == Decimal("3")
        assert balance.remaining == Decimal("9")
        assert await _row_count(db, EntitlementLedgerEntry) == 1

    async def test_reserve_beyond_remaining_raises(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("3"))
        with pytest.raises(InsufficientBalance) as exc_info:
            await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("10"))
        assert exc_info.value.remaining == Decimal("9")

        balance = await ledger.get_period_balance(db, emp, LeaveType.vacation, H1)
        assert balance.used == Decimal("3")

    async def test_half_day_reservation(self, db, ledger):
        emp = uuid.uuid4()
        balance = await ledger.reserve(db, emp, LeaveType.emergency, H1, Decimal("0.5"))
        assert balance.remaining == Decimal("1.5")

    async def test_release_restores_remaining(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("3"))
        balance = await ledger.release(db, emp, LeaveType.vacation, H1, Decimal("3"))
        assert balance.used == Decimal("0")
        assert balance.remaining == Decimal("12")

    async def test_over_release_clamps_and_logs(self, db, ledger, caplog):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("1"))
        with caplog.at_level(logging.ERROR, logger="leave_engine.leave.ledger"):
            balance = await ledger.release(db, emp, LeaveType.vacation, H1, Decimal("4"))
        assert balance.used == Decimal("0")
        assert "InconsistentRelease" in caplog.text


class TestWeekendQuota:

    async def test_reserve_until_cap(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve_weekend(db, emp, H1)
        usage = await ledger.reserve_weekend(db, emp, H1)
        assert usage.used == 2
        assert usage.remaining == 0
        with pytest.raises(InsufficientBalance):
            await ledger.reserve_weekend(db, emp, H1)

    async def test_halves_are_independent(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve_weekend(db, emp, H1)
        await ledger.reserve_weekend(db, emp, H1)
        usage = await ledger.get_weekend_usage(db, emp, H2)
        assert usage.used == 0
        assert usage.cap == 2

    async def test_release_weekend(self, db, ledger, caplog):
        emp = uuid.uuid4()
        await ledger.reserve_weekend(db, emp, H1)
        usage = await ledger.release_weekend(db, emp, H1)
        assert usage.used == 0
        with caplog.at_level(logging.ERROR, logger="leave_engine.leave.ledger"):
            usage = await ledger.release_weekend(db, emp, H1)
        assert usage.used == 0
        assert "InconsistentRelease" in caplog.text


class TestConcurrentOpening:
    """Another worker creates the entry between our lookup and our insert."""

    @staticmethod
    def _first_read_misses(monkeypatch, ledger, name):
        real = getattr(ledger, name)
        calls = []

        async def stale_then_real(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return await real(*args, **kwargs)

        monkeypatch.setattr(ledger, name, stale_then_real)

    async def test_entry_created_elsewhere_is_reused(self, db, ledger, monkeypatch):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("3"))
        await db.commit()

        self._first_read_misses(monkeypatch, ledger, "_load_entry")
        balance = await ledger.reserve(db, emp, LeaveType.vacation, H1, Decimal("1"))

        assert balance.used == Decimal("4")
        assert await _row_count(db, EntitlementLedgerEntry) == 1

    async def test_weekend_entry_created_elsewhere_is_reused(
        self, db, ledger, monkeypatch,
    ):
        emp = uuid.uuid4()
        await ledger.reserve_weekend(db, emp, H1)
        await db.commit()

        self._first_read_misses(monkeypatch, ledger, "_load_weekend")
        usage = await ledger.reserve_weekend(db, emp, H1)

        assert usage.used == 2
        assert await _row_count(db, WeekendLeaveLedgerEntry) == 1


# ═════════════════════════════════════════════════════════════════════
# Administration
# ═════════════════════════════════════════════════════════════════════


class TestAdministration:

    async def test_open_period_is_idempotent(self, db, ledger):
        employees = [uuid.uuid4(), uuid.uuid4()]
        created, existing = await ledger.open_period(db, H2, employees)
        assert (created, existing) == (4, 0)  # vacation + weekend per employee

        created, existing = await ledger.open_period(db, H2, employees)
        assert (created, existing) == (0, 4)

        entry = (await db.execute(select(EntitlementLedgerEntry))).scalars().first()
        assert entry.period == 2
        assert entry.allocated == Decimal("12")
        assert await _row_count(db, WeekendLeaveLedgerEntry) == 2
        audits = (await db.execute(
            select(AuditTrail).where(AuditTrail.action == "open_period")
        )).scalars().all()
        assert len(audits) == 2

    async def test_adjust_allocation(self, db, ledger):
        emp, admin = uuid.uuid4(), uuid.uuid4()
        balance = await ledger.adjust_allocation(
            db, emp, LeaveType.vacation, H1, Decimal("2"),
            actor_id=admin, reason="Carried over",
        )
        assert balance.allocated == Decimal("14")
        assert balance.remaining == Decimal("14")

        audit = (await db.execute(
            select(AuditTrail).where(AuditTrail.action == "adjust")
        )).scalars().one()
        assert audit.actor_id == admin
        assert Decimal(audit.new_values["allocated"]) == Decimal("14")

    async def test_adjust_cannot_drop_below_used(self, db, ledger):
        emp = uuid.uuid4()
        await ledger.reserve(db, emp, LeaveType.personal, H1, Decimal("2"))
        with pytest.raises(ValidationException) as exc_info:
            await ledger.adjust_allocation(db, emp, LeaveType.personal, H1, Decimal("-2"))
        assert "adjustment" in exc_info.value.errors
