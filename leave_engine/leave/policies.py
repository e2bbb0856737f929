"""Static per-leave-type policy table."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from leave_engine.common.constants import (
    EXTENDED_LEAVE_THRESHOLD_DAYS,
    LeaveCategory,
    LeaveType,
)


@dataclass(frozen=True)
class LeavePolicy:
    leave_type: LeaveType
    label: str
    annual_allocation: Decimal
    semi_annual_allocation: Optional[Decimal] = None
    requires_admin_approval: bool = False
    requires_document: bool = False
    category: LeaveCategory = LeaveCategory.regular

    @property
    def semi_annual_scoped(self) -> bool:
        """True when the ledger splits this type into H1/H2 entries."""
        return self.semi_annual_allocation is not None

    @property
    def period_allocation(self) -> Decimal:
        """Allocation of a single ledger entry for this type."""
        if self.semi_annual_allocation is not None:
            return self.semi_annual_allocation
        return self.annual_allocation


LEAVE_POLICIES: dict[LeaveType, LeavePolicy] = {
    policy.leave_type: policy
    for policy in (
        LeavePolicy(
            LeaveType.vacation, "Vacation Leave", Decimal(24),
            semi_annual_allocation=Decimal(12),
        ),
        LeavePolicy(
            LeaveType.sick, "Sick Leave", Decimal(10),
            requires_admin_approval=True, requires_document=True,
            category=LeaveCategory.medical,
        ),
        LeavePolicy(LeaveType.personal, "Personal Leave", Decimal(3)),
        LeavePolicy(LeaveType.emergency, "Emergency Leave", Decimal(2)),
        LeavePolicy(
            LeaveType.maternity, "Maternity Leave", Decimal(90),
            requires_admin_approval=True, requires_document=True,
            category=LeaveCategory.family,
        ),
        LeavePolicy(
            LeaveType.paternity, "Paternity Leave", Decimal(14),
            requires_admin_approval=True,
            category=LeaveCategory.family,
        ),
        LeavePolicy(LeaveType.bereavement, "Bereavement Leave", Decimal(5)),
        LeavePolicy(
            LeaveType.other, "Other Leave", Decimal(5),
            requires_admin_approval=True,
        ),
    )
}


def get_policy(leave_type: LeaveType | str) -> LeavePolicy:
    """Policy for *leave_type*; an unknown type is a caller bug, not a violation."""
    try:
        return LEAVE_POLICIES[LeaveType(leave_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown leave type: {leave_type!r}") from None


def categorize(policy: LeavePolicy, total_days: Decimal) -> LeaveCategory:
    if policy.category != LeaveCategory.regular:
        return policy.category
    if total_days > EXTENDED_LEAVE_THRESHOLD_DAYS:
        return LeaveCategory.extended
    return LeaveCategory.regular


def needs_admin_review(policy: LeavePolicy, category: LeaveCategory) -> bool:
    return policy.requires_admin_approval or category == LeaveCategory.extended
