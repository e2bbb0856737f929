"""Leave router — submit, preview, review, cancel, balances, policies, admin.

Identity comes from the gateway headers (see ``leave_engine.dependencies``).
Review and ledger administration endpoints require an HR / system admin.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.constants import LeaveStatus, LeaveType
from leave_engine.common.exceptions import SubmissionRejected, ValidationException
from leave_engine.common.pagination import PaginatedResponse, PaginationParams
from leave_engine.common.rate_limit import limiter
from leave_engine.config import settings
from leave_engine.database import get_db
from leave_engine.dependencies import Actor, get_actor, get_lifecycle, require_admin
from leave_engine.leave.lifecycle import LeaveLifecycle
from leave_engine.leave.periods import PeriodKey, current_period
from leave_engine.leave.policies import get_policy
from leave_engine.leave.schemas import (
    AllocationAdjustRequest,
    BalanceSummaryOut,
    LeaveApproveRequest,
    LeavePolicyOut,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LedgerBalance,
    OpenPeriodOut,
    OpenPeriodRequest,
    SubmissionResult,
)
from leave_engine.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(settings.SUBMIT_RATE_LIMIT)
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    actor: Actor = Depends(get_actor),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    """Submit a leave request. Every violated rule is reported in one 422."""
    result = await lifecycle.submit(actor.id, body)
    if not result.accepted:
        raise SubmissionRejected(result.violations)
    return result.request


# ── POST /requests/preview ──────────────────────────────────────────

@router.post("/requests/preview", response_model=SubmissionResult)
async def preview_leave(
    body: LeaveRequestCreate,
    actor: Actor = Depends(get_actor),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    """Dry run: evaluate every rule without reserving anything."""
    return await lifecycle.preview(actor.id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(
        None, description="HR admins only; others always see their own requests",
    ),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests, newest first."""
    if not actor.is_admin:
        employee_id = actor.id
    return await LeaveService.list_requests(
        db,
        pagination,
        employee_id=employee_id,
        status=status,
        leave_type=leave_type,
        from_date=from_date,
        to_date=to_date,
    )


# ── GET /requests/pending ───────────────────────────────────────────

@router.get("/requests/pending", response_model=PaginatedResponse[LeaveRequestOut])
async def list_pending(
    leave_type: Optional[LeaveType] = Query(None),
    admin_approval_only: bool = Query(False),
    pagination: PaginationParams = Depends(),
    _admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Review queue, oldest first."""
    return await LeaveService.list_pending(
        db, pagination, leave_type=leave_type, admin_approval_only=admin_approval_only,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(
        db, request_id, requestor_id=actor.id, is_admin=actor.is_admin,
    )


# ── PUT /requests/{id}/approve|reject|cancel ────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    admin: Actor = Depends(require_admin),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.approve(request_id, admin.id, body.notes)


@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    admin: Actor = Depends(require_admin),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    """Reject a pending request; notes are mandatory."""
    return await lifecycle.reject(request_id, admin.id, body.notes)


@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    """Cancel one of your own pending requests."""
    return await lifecycle.cancel(request_id, actor.id)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=BalanceSummaryOut)
async def get_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(get_actor),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
    db: AsyncSession = Depends(get_db),
):
    """Year balances per leave type plus weekend-leave usage."""
    target = employee_id if (employee_id and actor.is_admin) else actor.id
    return await LeaveService.get_balance_summary(
        db, lifecycle.ledger, target, year or lifecycle.today().year,
    )


# ── GET /policies ───────────────────────────────────────────────────

@router.get("/policies", response_model=list[LeavePolicyOut])
async def list_policies(_actor: Actor = Depends(get_actor)):
    return LeaveService.list_policies()


# ── POST /admin/periods/open ────────────────────────────────────────

@router.post("/admin/periods/open", response_model=OpenPeriodOut)
async def open_period(
    body: OpenPeriodRequest,
    admin: Actor = Depends(require_admin),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    """Semi-annual reset: pre-create the half-year's ledger entries."""
    current = current_period(lifecycle.today())
    period = PeriodKey(body.year or current.year, body.period or current.half)
    created, existing = await lifecycle.open_period(
        period, body.employee_ids, actor_id=admin.id,
    )
    return OpenPeriodOut(
        year=period.year, period=int(period.half), created=created, existing=existing,
    )


# ── POST /admin/balances/adjust ─────────────────────────────────────

@router.post("/admin/balances/adjust", response_model=LedgerBalance)
async def adjust_balance(
    body: AllocationAdjustRequest,
    admin: Actor = Depends(require_admin),
    lifecycle: LeaveLifecycle = Depends(get_lifecycle),
):
    """Credit or debit an employee's allocation for one ledger entry."""
    if get_policy(body.leave_type).semi_annual_scoped and body.period is None:
        raise ValidationException(
            {"period": [f"{body.leave_type.value} allocations are per half-year; give 1 or 2."]}
        )
    return await lifecycle.adjust_allocation(
        body.employee_id,
        body.leave_type,
        PeriodKey(body.year, body.period or 1),
        body.adjustment,
        actor_id=admin.id,
        reason=body.reason,
    )
