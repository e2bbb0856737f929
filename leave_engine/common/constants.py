"""Enums and constants for the leave engine."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


ADMIN_ROLES = frozenset({UserRole.hr_admin, UserRole.system_admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    vacation = "vacation"
    sick = "sick"
    personal = "personal"
    emergency = "emergency"
    maternity = "maternity"
    paternity = "paternity"
    bereavement = "bereavement"
    other = "other"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset(
    {LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled}
)

# Statuses that hold ledger capacity and count against team capacity
ACTIVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


class HalfDayPeriod(str, enum.Enum):
    first_half = "first_half"
    second_half = "second_half"


class LeaveCategory(str, enum.Enum):
    regular = "regular"
    medical = "medical"
    family = "family"
    extended = "extended"


class SemiAnnualPeriod(enum.IntEnum):
    H1 = 1  # Jan–Jun
    H2 = 2  # Jul–Dec


# Ledger scope for leave types that are not split into semi-annual periods
ANNUAL_SCOPE = 0


class ViolationCode(str, enum.Enum):
    date_order = "date_order"
    no_working_days = "no_working_days"
    max_consecutive_span = "max_consecutive_span"
    same_day_full_day = "same_day_full_day"
    half_day_inconsistent = "half_day_inconsistent"
    insufficient_balance = "insufficient_balance"
    weekend_leave_quota = "weekend_leave_quota"
    document_required = "document_required"
    team_capacity = "team_capacity"
    overlapping_request = "overlapping_request"


# ── Misc constants ──────────────────────────────────────────────────

EXTENDED_LEAVE_THRESHOLD_DAYS = 3
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
