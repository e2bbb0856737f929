"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)

Date order is deliberately not checked here: a reversed range is a leave
rule violation reported together with the others, not a malformed payload.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leave_engine.common.constants import (
    HalfDayPeriod,
    LeaveCategory,
    LeaveStatus,
    LeaveType,
    ViolationCode,
)


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting (or previewing) a leave request."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    half_day: bool = False
    half_day_period: Optional[HalfDayPeriod] = None
    reason: str = Field(..., min_length=3, max_length=1000)
    emergency_contact_name: Optional[str] = Field(None, max_length=200)
    emergency_contact_phone: Optional[str] = Field(None, max_length=50)
    supporting_document_ref: Optional[str] = Field(
        None,
        max_length=500,
        description="Opaque reference returned by the document store",
    )


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    half_day: bool
    half_day_period: Optional[HalfDayPeriod] = None
    total_days: Decimal
    reason: str
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    supporting_document_ref: Optional[str] = None
    status: LeaveStatus
    is_weekend_leave: bool
    semi_annual_period: int
    period_year: int
    leave_category: LeaveCategory
    team_conflict_check: bool
    requires_admin_approval: bool
    admin_notes: Optional[str] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Submission outcome
# ═════════════════════════════════════════════════════════════════════


class Violation(BaseModel):
    """A single failed leave rule."""

    model_config = ConfigDict(frozen=True)

    code: ViolationCode
    message: str
    field: Optional[str] = None


class SubmissionResult(BaseModel):
    """Outcome of ``submit`` / ``preview``.

    ``request`` is set only when a submission was accepted and persisted.
    """

    accepted: bool
    request: Optional[LeaveRequestOut] = None
    violations: list[Violation] = Field(default_factory=list)
    requires_admin_approval: bool = False
    total_days: Decimal = Decimal("0")
    is_weekend_leave: bool = False
    semi_annual_period: Optional[int] = None
    leave_category: Optional[LeaveCategory] = None

    @property
    def violation_codes(self) -> set[ViolationCode]:
        return {v.code for v in self.violations}


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class LedgerBalance(BaseModel):
    """Allocated / used / remaining for one ledger key or an aggregate."""

    allocated: Decimal
    used: Decimal
    remaining: Decimal


class LeaveBalanceOut(BaseModel):
    leave_type: LeaveType
    label: str
    year: int
    allocated: Decimal
    used: Decimal
    remaining: Decimal
    # Populated for semi-annual-scoped types only
    periods: dict[int, LedgerBalance] = Field(default_factory=dict)


class WeekendLeaveUsageOut(BaseModel):
    year: int
    period: int
    cap: int
    used: int
    remaining: int


class BalanceSummaryOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    balances: list[LeaveBalanceOut]
    weekend_leave: list[WeekendLeaveUsageOut]


# ═════════════════════════════════════════════════════════════════════
# Policies
# ═════════════════════════════════════════════════════════════════════


class LeavePolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_type: LeaveType
    label: str
    annual_allocation: Decimal
    semi_annual_allocation: Optional[Decimal] = None
    requires_admin_approval: bool
    requires_document: bool
    category: LeaveCategory


# ═════════════════════════════════════════════════════════════════════
# Review / Admin
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    notes: Optional[str] = Field(None, max_length=1000)


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request.

    ``notes`` is mandatory; a missing or blank value is rejected by the
    lifecycle with a field error so that every caller gets the same answer.
    """

    notes: Optional[str] = Field(None, max_length=1000)


class OpenPeriodRequest(BaseModel):
    """HR admin semi-annual reset: pre-create the period's ledger entries.

    Omitting ``year`` and ``period`` opens the half-year containing today.
    """

    year: Optional[int] = Field(None, ge=2000, le=2100)
    period: Optional[int] = Field(None, ge=1, le=2)
    employee_ids: list[uuid.UUID] = Field(..., min_length=1)


class OpenPeriodOut(BaseModel):
    year: int
    period: int
    created: int
    existing: int


class AllocationAdjustRequest(BaseModel):
    """HR admin allocation adjustment payload."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    year: int = Field(..., ge=2000, le=2100)
    period: Optional[int] = Field(
        None, ge=1, le=2,
        description="Half-year for semi-annual-scoped types; ignored otherwise",
    )
    adjustment: Decimal = Field(
        ..., description="Positive to credit, negative to debit"
    )
    reason: str = Field(..., min_length=5, max_length=500)
