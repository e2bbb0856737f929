"""Leave ORM models: LeaveRequest, EntitlementLedgerEntry, WeekendLeaveLedgerEntry."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from leave_engine.common.constants import (
    HalfDayPeriod,
    LeaveCategory,
    LeaveStatus,
    LeaveType,
)
from leave_engine.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
        sa.Index("ix_leave_requests_dates", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    half_day: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    half_day_period: Mapped[Optional[HalfDayPeriod]] = mapped_column(
        sa.Enum(HalfDayPeriod, name="half_day_period")
    )
    total_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    emergency_contact_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    emergency_contact_phone: Mapped[Optional[str]] = mapped_column(sa.String(50))
    supporting_document_ref: Mapped[Optional[str]] = mapped_column(sa.String(500))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        default=LeaveStatus.pending,
        nullable=False,
    )

    # Derived at submission
    is_weekend_leave: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, nullable=False
    )
    semi_annual_period: Mapped[int] = mapped_column(sa.SmallInteger, nullable=False)
    period_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    # Ledger entry period actually debited: 1/2, or 0 for annual-scoped types
    ledger_period: Mapped[int] = mapped_column(sa.SmallInteger, nullable=False)
    leave_category: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category"), nullable=False
    )
    team_conflict_check: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, nullable=False
    )
    requires_admin_approval: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, nullable=False
    )

    # Review
    admin_notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.leave_type.value} "
            f"{self.start_date}..{self.end_date} {self.status.value}>"
        )


class EntitlementLedgerEntry(Base):
    """Allocation and consumption for one (employee, type, year, period) key.

    ``period`` is 1 or 2 for semi-annual-scoped types and 0 for annual scope.
    ``used`` is only moved by the ledger's reserve/release.
    """

    __tablename__ = "entitlement_ledger"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type", "year", "period",
            name="uq_entitlement_ledger_key",
        ),
        sa.CheckConstraint("used >= 0", name="ck_entitlement_ledger_used"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    period: Mapped[int] = mapped_column(sa.SmallInteger, nullable=False)
    allocated: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    used: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    @property
    def remaining(self) -> Decimal:
        return self.allocated - self.used


class WeekendLeaveLedgerEntry(Base):
    """Weekend-leave sub-quota for one (employee, year, half) key."""

    __tablename__ = "weekend_leave_ledger"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "year", "period", name="uq_weekend_leave_ledger_key",
        ),
        sa.CheckConstraint("used >= 0", name="ck_weekend_leave_ledger_used"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    period: Mapped[int] = mapped_column(sa.SmallInteger, nullable=False)
    cap: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    used: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    @property
    def remaining(self) -> int:
        return self.cap - self.used
