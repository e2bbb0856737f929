"""Entitlement ledger — allocation, reservation and release per ledger key.

A ledger key is (employee, leave type, year, period) where period is the
half-year (1/2) for semi-annual-scoped types and 0 for annual scope. The
weekend-leave sub-quota has its own (employee, year, half) key.

Entries open lazily on the first write with the policy allocation; reads
never create rows and treat a missing entry as untouched. All writes select
the row ``FOR UPDATE``; in-process serialisation is the caller's job via the
lock keys exposed here.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Hashable, Iterable, Optional

from sqlalchemy import insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import create_audit_entry
from leave_engine.common.constants import ANNUAL_SCOPE, LeaveType, SemiAnnualPeriod
from leave_engine.common.exceptions import InsufficientBalance, ValidationException
from leave_engine.config import settings
from leave_engine.leave.models import EntitlementLedgerEntry, WeekendLeaveLedgerEntry
from leave_engine.leave.periods import PeriodKey
from leave_engine.leave.policies import get_policy
from leave_engine.leave.schemas import LedgerBalance, WeekendLeaveUsageOut

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _balance(allocated: Decimal, used: Decimal) -> LedgerBalance:
    return LedgerBalance(allocated=allocated, used=used, remaining=allocated - used)


async def _insert_if_absent(db: AsyncSession, model: type, **values) -> None:
    """Insert a ledger row unless its unique key already exists.

    Another worker may open the same key between our select and insert;
    ON CONFLICT DO NOTHING lets both proceed to the row that won.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing()
    else:
        stmt = insert(model).values(**values)
    await db.execute(stmt)


class EntitlementLedger:
    """Keyed store of leave entitlements; the lifecycle is its only writer."""

    def __init__(self, weekend_cap: Optional[int] = None) -> None:
        self.weekend_cap = (
            settings.WEEKEND_LEAVE_CAP if weekend_cap is None else weekend_cap
        )

    # ─────────────────────────────────────────────────────────────────
    # Keys
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def scope_of(leave_type: LeaveType, period: PeriodKey) -> int:
        """Ledger ``period`` column a request in *period* debits."""
        if get_policy(leave_type).semi_annual_scoped:
            return period.half
        return ANNUAL_SCOPE

    @classmethod
    def lock_key(
        cls, employee_id: uuid.UUID, leave_type: LeaveType, period: PeriodKey,
    ) -> Hashable:
        return (
            "ledger", employee_id, LeaveType(leave_type).value,
            period.year, cls.scope_of(leave_type, period),
        )

    @staticmethod
    def weekend_lock_key(employee_id: uuid.UUID, period: PeriodKey) -> Hashable:
        return ("weekend", employee_id, period.year, period.half)

    # ─────────────────────────────────────────────────────────────────
    # Row access
    # ─────────────────────────────────────────────────────────────────

    async def _load_entry(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: int,
        scope: int,
        *,
        for_update: bool = False,
    ) -> Optional[EntitlementLedgerEntry]:
        query = select(EntitlementLedgerEntry).where(
            EntitlementLedgerEntry.employee_id == employee_id,
            EntitlementLedgerEntry.leave_type == leave_type,
            EntitlementLedgerEntry.year == year,
            EntitlementLedgerEntry.period == scope,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    async def _open_entry(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        period: PeriodKey,
    ) -> EntitlementLedgerEntry:
        scope = self.scope_of(leave_type, period)
        entry = await self._load_entry(
            db, employee_id, leave_type, period.year, scope, for_update=True,
        )
        if entry is not None:
            return entry
        await _insert_if_absent(
            db,
            EntitlementLedgerEntry,
            employee_id=employee_id,
            leave_type=leave_type,
            year=period.year,
            period=scope,
            allocated=get_policy(leave_type).period_allocation,
            used=ZERO,
        )
        return await self._load_entry(
            db, employee_id, leave_type, period.year, scope, for_update=True,
        )

    async def _load_weekend(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        period: PeriodKey,
        *,
        for_update: bool = False,
    ) -> Optional[WeekendLeaveLedgerEntry]:
        query = select(WeekendLeaveLedgerEntry).where(
            WeekendLeaveLedgerEntry.employee_id == employee_id,
            WeekendLeaveLedgerEntry.year == period.year,
            WeekendLeaveLedgerEntry.period == period.half,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    async def _open_weekend(
        self, db: AsyncSession, employee_id: uuid.UUID, period: PeriodKey,
    ) -> WeekendLeaveLedgerEntry:
        entry = await self._load_weekend(db, employee_id, period, for_update=True)
        if entry is not None:
            return entry
        await _insert_if_absent(
            db,
            WeekendLeaveLedgerEntry,
            employee_id=employee_id,
            year=period.year,
            period=period.half,
            cap=self.weekend_cap,
            used=0,
        )
        return await self._load_weekend(db, employee_id, period, for_update=True)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def get_period_balance(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        period: PeriodKey,
    ) -> LedgerBalance:
        """Balance of the single entry a request starting in *period* debits."""
        entry = await self._load_entry(
            db, employee_id, leave_type, period.year,
            self.scope_of(leave_type, period),
        )
        if entry is None:
            return _balance(get_policy(leave_type).period_allocation, ZERO)
        return _balance(entry.allocated, entry.used)

    async def get_balance(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: int,
    ) -> LedgerBalance:
        """Year balance; semi-annual types aggregate both halves."""
        if not get_policy(leave_type).semi_annual_scoped:
            return await self.get_period_balance(
                db, employee_id, leave_type, PeriodKey(year, SemiAnnualPeriod.H1),
            )
        allocated = used = ZERO
        for half in SemiAnnualPeriod:
            part = await self.get_period_balance(
                db, employee_id, leave_type, PeriodKey(year, half),
            )
            allocated += part.allocated
            used += part.used
        return _balance(allocated, used)

    async def get_weekend_usage(
        self, db: AsyncSession, employee_id: uuid.UUID, period: PeriodKey,
    ) -> WeekendLeaveUsageOut:
        entry = await self._load_weekend(db, employee_id, period)
        cap, used = (self.weekend_cap, 0) if entry is None else (entry.cap, entry.used)
        return WeekendLeaveUsageOut(
            year=period.year, period=period.half,
            cap=cap, used=used, remaining=cap - used,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reserve / release
    # ─────────────────────────────────────────────────────────────────

    async def reserve(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        period: PeriodKey,
        amount: Decimal,
    ) -> LedgerBalance:
        """Debit *amount* from the entry; raises ``InsufficientBalance``."""
        entry = await self._open_entry(db, employee_id, leave_type, period)
        if amount > entry.remaining:
            raise InsufficientBalance(requested=amount, remaining=entry.remaining)
        entry.used = entry.used + amount
        await db.flush()
        return _balance(entry.allocated, entry.used)

    async def release(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        period: PeriodKey,
        amount: Decimal,
    ) -> LedgerBalance:
        """Credit *amount* back. Never raises; clamps ``used`` at zero."""
        entry = await self._open_entry(db, employee_id, leave_type, period)
        new_used = entry.used - amount
        if new_used < 0:
            logger.error(
                "InconsistentRelease: releasing %s from %s ledger of employee %s "
                "(%s, scope %s) with only %s used; clamping to zero",
                amount, LeaveType(leave_type).value, employee_id,
                period.year, entry.period, entry.used,
            )
            new_used = ZERO
        entry.used = new_used
        await db.flush()
        return _balance(entry.allocated, entry.used)

    async def reserve_weekend(
        self, db: AsyncSession, employee_id: uuid.UUID, period: PeriodKey,
    ) -> WeekendLeaveUsageOut:
        """Take one weekend-leave unit; raises ``InsufficientBalance`` at the cap."""
        entry = await self._open_weekend(db, employee_id, period)
        if entry.used >= entry.cap:
            raise InsufficientBalance(
                requested=Decimal(1), remaining=Decimal(entry.remaining),
            )
        entry.used += 1
        await db.flush()
        return WeekendLeaveUsageOut(
            year=entry.year, period=entry.period,
            cap=entry.cap, used=entry.used, remaining=entry.remaining,
        )

    async def release_weekend(
        self, db: AsyncSession, employee_id: uuid.UUID, period: PeriodKey,
    ) -> WeekendLeaveUsageOut:
        entry = await self._open_weekend(db, employee_id, period)
        if entry.used <= 0:
            logger.error(
                "InconsistentRelease: releasing weekend-leave unit of employee %s "
                "for %s with none used; clamping to zero",
                employee_id, period.label,
            )
            entry.used = 0
        else:
            entry.used -= 1
        await db.flush()
        return WeekendLeaveUsageOut(
            year=entry.year, period=entry.period,
            cap=entry.cap, used=entry.used, remaining=entry.remaining,
        )

    # ─────────────────────────────────────────────────────────────────
    # Administration
    # ─────────────────────────────────────────────────────────────────

    async def open_period(
        self,
        db: AsyncSession,
        period: PeriodKey,
        employee_ids: Iterable[uuid.UUID],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[int, int]:
        """Pre-create the half-year's semi-annual and weekend entries.

        Idempotent: existing entries are left untouched. Returns
        ``(created, existing)`` counted over ledger rows.
        """
        semi_annual_types = [
            lt for lt in LeaveType if get_policy(lt).semi_annual_scoped
        ]
        created = existing = 0
        for employee_id in dict.fromkeys(employee_ids):
            for leave_type in semi_annual_types:
                entry = await self._load_entry(
                    db, employee_id, leave_type, period.year, period.half,
                )
                if entry is not None:
                    existing += 1
                    continue
                entry = await self._open_entry(db, employee_id, leave_type, period)
                created += 1
                await create_audit_entry(
                    db,
                    action="open_period",
                    entity_type="entitlement_ledger",
                    entity_id=entry.id,
                    actor_id=actor_id,
                    new_values={
                        "employee_id": str(employee_id),
                        "leave_type": leave_type.value,
                        "period": period.label,
                        "allocated": str(entry.allocated),
                    },
                )

            if await self._load_weekend(db, employee_id, period) is not None:
                existing += 1
            else:
                await self._open_weekend(db, employee_id, period)
                created += 1

        logger.info(
            "Opened %s: %d ledger entries created, %d already present",
            period.label, created, existing,
        )
        return created, existing

    async def adjust_allocation(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        period: PeriodKey,
        delta: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> LedgerBalance:
        """Change ``allocated`` by a signed delta; ``used`` is never touched."""
        entry = await self._open_entry(db, employee_id, leave_type, period)
        old_allocated = entry.allocated
        new_allocated = old_allocated + delta
        if new_allocated < entry.used:
            raise ValidationException({
                "adjustment": [
                    f"Allocation cannot drop below the {entry.used} day(s) "
                    f"already used (currently {old_allocated})."
                ]
            })
        entry.allocated = new_allocated
        await db.flush()

        await create_audit_entry(
            db,
            action="adjust",
            entity_type="entitlement_ledger",
            entity_id=entry.id,
            actor_id=actor_id,
            old_values={"allocated": str(old_allocated)},
            new_values={
                "allocated": str(new_allocated),
                "adjustment": str(delta),
                "reason": reason,
            },
        )
        logger.info(
            "Adjusted %s allocation of employee %s for %s by %s (now %s)",
            LeaveType(leave_type).value, employee_id, period.year, delta, new_allocated,
        )
        return _balance(entry.allocated, entry.used)
