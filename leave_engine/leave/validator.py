"""Rule validator — decides whether a candidate leave request is submittable.

Pure: every input arrives in the ``LeaveCandidate`` and ``ValidationContext``
and nothing is read or written here. Rules are independent and all of them
run, so a rejected request reports every problem at once.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from leave_engine.common.constants import HalfDayPeriod, LeaveCategory, LeaveType, ViolationCode
from leave_engine.leave.calendar import LeaveCalendar
from leave_engine.leave.capacity import CapacityCheck
from leave_engine.leave.periods import PeriodKey, resolve_period
from leave_engine.leave.policies import LeavePolicy, categorize, get_policy, needs_admin_review
from leave_engine.leave.schemas import (
    LedgerBalance,
    LeaveRequestCreate,
    Violation,
    WeekendLeaveUsageOut,
)


@dataclass(frozen=True)
class LeaveCandidate:
    """A submission with every derived attribute computed."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    policy: LeavePolicy
    start_date: date
    end_date: date
    half_day: bool
    half_day_period: Optional[HalfDayPeriod]
    total_days: Decimal
    is_weekend_leave: bool
    period: PeriodKey
    category: LeaveCategory
    has_document: bool

    @property
    def requires_admin_approval(self) -> bool:
        return needs_admin_review(self.policy, self.category)

    @classmethod
    def from_payload(
        cls,
        employee_id: uuid.UUID,
        payload: LeaveRequestCreate,
        calendar: LeaveCalendar,
    ) -> "LeaveCandidate":
        policy = get_policy(payload.leave_type)
        total_days = calendar.total_days(
            payload.start_date, payload.end_date, payload.half_day,
        )
        return cls(
            employee_id=employee_id,
            leave_type=policy.leave_type,
            policy=policy,
            start_date=payload.start_date,
            end_date=payload.end_date,
            half_day=payload.half_day,
            half_day_period=payload.half_day_period,
            total_days=total_days,
            is_weekend_leave=calendar.touches_weekend_boundary(
                payload.start_date, payload.end_date,
            ),
            # Derived from the start date only, even when the range crosses into H2
            period=resolve_period(payload.start_date),
            category=categorize(policy, total_days),
            has_document=bool(
                payload.supporting_document_ref
                and payload.supporting_document_ref.strip()
            ),
        )


@dataclass(frozen=True)
class ValidationContext:
    today: date
    balance: LedgerBalance
    weekend_usage: WeekendLeaveUsageOut
    capacity: CapacityCheck
    overlapping_request_ids: tuple[uuid.UUID, ...] = ()


@dataclass(frozen=True)
class ValidationOutcome:
    violations: tuple[Violation, ...] = field(default_factory=tuple)
    requires_admin_approval: bool = False

    @property
    def accepted(self) -> bool:
        return not self.violations

    @property
    def codes(self) -> set[ViolationCode]:
        return {v.code for v in self.violations}


Rule = Callable[[LeaveCandidate, ValidationContext], Optional[Violation]]


class RuleValidator:
    def __init__(self, calendar: LeaveCalendar, max_consecutive_days: int) -> None:
        self.calendar = calendar
        self.max_consecutive_days = max_consecutive_days
        self.rules: tuple[Rule, ...] = (
            self.check_date_order,
            self.check_working_days,
            self.check_max_consecutive,
            self.check_same_day,
            self.check_half_day,
            self.check_balance,
            self.check_weekend_quota,
            self.check_document,
            self.check_team_capacity,
            self.check_overlap,
        )

    def validate(
        self, candidate: LeaveCandidate, context: ValidationContext,
    ) -> ValidationOutcome:
        violations = tuple(
            v for v in (rule(candidate, context) for rule in self.rules)
            if v is not None
        )
        return ValidationOutcome(
            violations=violations,
            requires_admin_approval=candidate.requires_admin_approval,
        )

    # ── Rules ───────────────────────────────────────────────────────

    @staticmethod
    def check_date_order(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if c.end_date < c.start_date:
            return Violation(
                code=ViolationCode.date_order,
                message="End date must be on or after the start date.",
                field="end_date",
            )
        return None

    def check_working_days(self, c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if not c.half_day and c.total_days == 0:
            return Violation(
                code=ViolationCode.no_working_days,
                message=(
                    "The selected dates contain no working days "
                    f"({self.calendar.work_week.label} week)."
                ),
                field="start_date",
            )
        return None

    def check_max_consecutive(self, c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if not c.half_day and c.total_days > self.max_consecutive_days:
            return Violation(
                code=ViolationCode.max_consecutive_span,
                message=(
                    f"A request may span at most {self.max_consecutive_days} "
                    f"working days; this one spans {c.total_days}."
                ),
                field="end_date",
            )
        return None

    @staticmethod
    def check_same_day(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if c.start_date == ctx.today and not c.half_day:
            return Violation(
                code=ViolationCode.same_day_full_day,
                message="Full-day leave cannot start today; request a half day instead.",
                field="start_date",
            )
        return None

    @staticmethod
    def check_half_day(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if not c.half_day:
            return None
        if c.start_date != c.end_date:
            return Violation(
                code=ViolationCode.half_day_inconsistent,
                message="A half-day request must start and end on the same date.",
                field="end_date",
            )
        if c.half_day_period is None:
            return Violation(
                code=ViolationCode.half_day_inconsistent,
                message="A half-day request must say which half of the day.",
                field="half_day_period",
            )
        return None

    @staticmethod
    def check_balance(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if ctx.balance.remaining < c.total_days:
            return Violation(
                code=ViolationCode.insufficient_balance,
                message=(
                    f"Insufficient {c.policy.label.lower()} balance: "
                    f"{c.total_days} day(s) requested, "
                    f"{ctx.balance.remaining} remaining"
                    + (f" for {c.period.label}." if c.policy.semi_annual_scoped else ".")
                ),
                field="leave_type",
            )
        return None

    @staticmethod
    def check_weekend_quota(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        usage = ctx.weekend_usage
        if c.is_weekend_leave and usage.used >= usage.cap:
            return Violation(
                code=ViolationCode.weekend_leave_quota,
                message=(
                    f"Weekend-leave limit reached: {usage.used} of {usage.cap} "
                    f"already taken in {c.period.label}."
                ),
                field="start_date",
            )
        return None

    @staticmethod
    def check_document(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if c.policy.requires_document and not c.has_document:
            return Violation(
                code=ViolationCode.document_required,
                message=f"{c.policy.label} requires a supporting document.",
                field="supporting_document_ref",
            )
        return None

    @staticmethod
    def check_team_capacity(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        cap = ctx.capacity
        if cap.exceeded:
            return Violation(
                code=ViolationCode.team_capacity,
                message=(
                    f"{cap.on_leave} of {cap.team_size} team members are already "
                    f"on leave for these dates; at most {cap.ceiling:.0%} of the "
                    "team may be away at once."
                ),
                field="start_date",
            )
        return None

    @staticmethod
    def check_overlap(c: LeaveCandidate, ctx: ValidationContext) -> Optional[Violation]:
        if ctx.overlapping_request_ids:
            return Violation(
                code=ViolationCode.overlapping_request,
                message=(
                    "You already have a pending or approved request overlapping "
                    "these dates."
                ),
                field="start_date",
            )
        return None
