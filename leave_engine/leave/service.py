"""Leave read side — request lookups, listings, balance summaries, policies.

Nothing here changes state; every write goes through ``LeaveLifecycle``.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.constants import LeaveStatus, LeaveType, SemiAnnualPeriod
from leave_engine.common.exceptions import ForbiddenException, NotFoundException
from leave_engine.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_engine.leave.ledger import EntitlementLedger
from leave_engine.leave.models import LeaveRequest
from leave_engine.leave.periods import PeriodKey
from leave_engine.leave.policies import LEAVE_POLICIES
from leave_engine.leave.schemas import (
    BalanceSummaryOut,
    LeaveBalanceOut,
    LeavePolicyOut,
    LeaveRequestOut,
)


class LeaveService:
    """Async read operations over leave requests and the entitlement ledger."""

    # ─────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        requestor_id: uuid.UUID,
        is_admin: bool = False,
    ) -> LeaveRequestOut:
        """Fetch a request visible to its owner and to HR admins."""
        leave_req = await db.get(LeaveRequest, request_id)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        if not is_admin and leave_req.employee_id != requestor_id:
            raise ForbiddenException("You can only view your own leave requests.")
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        params: PaginationParams,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """List requests newest first; date filters match any overlap."""
        query = select(LeaveRequest).order_by(LeaveRequest.created_at.desc())

        if employee_id:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.where(LeaveRequest.status == status)
        if leave_type:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if from_date:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date:
            query = query.where(LeaveRequest.start_date <= to_date)

        rows, meta = await paginate(db, query, params, model=LeaveRequest)
        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveRequestOut.model_validate(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def list_pending(
        db: AsyncSession,
        params: PaginationParams,
        *,
        leave_type: Optional[LeaveType] = None,
        admin_approval_only: bool = False,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """Admin review queue, oldest first."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.pending)
            .order_by(LeaveRequest.created_at.asc())
        )
        if leave_type:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if admin_approval_only:
            query = query.where(LeaveRequest.requires_admin_approval.is_(True))

        rows, meta = await paginate(db, query, params, model=LeaveRequest)
        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveRequestOut.model_validate(r) for r in rows],
            meta=meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Balances / Policies
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance_summary(
        db: AsyncSession,
        ledger: EntitlementLedger,
        employee_id: uuid.UUID,
        year: int,
    ) -> BalanceSummaryOut:
        """Every leave type's year balance plus both weekend-leave halves."""
        balances: list[LeaveBalanceOut] = []
        for leave_type, policy in LEAVE_POLICIES.items():
            total = await ledger.get_balance(db, employee_id, leave_type, year)
            periods = {}
            if policy.semi_annual_scoped:
                for half in SemiAnnualPeriod:
                    periods[int(half)] = await ledger.get_period_balance(
                        db, employee_id, leave_type, PeriodKey(year, half),
                    )
            balances.append(LeaveBalanceOut(
                leave_type=leave_type,
                label=policy.label,
                year=year,
                allocated=total.allocated,
                used=total.used,
                remaining=total.remaining,
                periods=periods,
            ))

        weekend = [
            await ledger.get_weekend_usage(db, employee_id, PeriodKey(year, half))
            for half in SemiAnnualPeriod
        ]
        return BalanceSummaryOut(
            employee_id=employee_id,
            year=year,
            balances=balances,
            weekend_leave=weekend,
        )

    @staticmethod
    def list_policies() -> list[LeavePolicyOut]:
        return [LeavePolicyOut.model_validate(p) for p in LEAVE_POLICIES.values()]
