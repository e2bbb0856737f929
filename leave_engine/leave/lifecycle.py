"""Leave request lifecycle — submission, review and cancellation.

States: ``pending`` → ``approved`` | ``rejected`` | ``cancelled`` (terminal).

Side effects per transition:
  - submit:  validate, reserve ledger days (+ one weekend unit), create pending
  - approve: reviewer attribution only; the reservation becomes permanent
  - reject:  reviewer attribution, notes mandatory, release the reservation
  - cancel:  owner only, release the reservation

Locks are taken in one global order: team → request (or the applicant's
request set) → ledger entry → weekend entry. Each transaction commits before
its locks are released and notifications go out after that.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Hashable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leave_engine.common.audit import create_audit_entry
from leave_engine.common.constants import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    LeaveStatus,
    LeaveType,
    ViolationCode,
)
from leave_engine.common.exceptions import (
    InsufficientBalance,
    InvalidTransition,
    NotFoundException,
    ValidationException,
)
from leave_engine.common.locks import KeyedLocks
from leave_engine.config import settings
from leave_engine.directory.service import SqlDirectory, TeamDirectory, TeamInfo
from leave_engine.leave import notifications
from leave_engine.leave.calendar import LeaveCalendar, WorkWeek, get_work_week
from leave_engine.leave.capacity import TeamCapacityChecker
from leave_engine.leave.ledger import EntitlementLedger
from leave_engine.leave.models import LeaveRequest
from leave_engine.leave.notifications import LeaveNotifier, LoggingNotifier
from leave_engine.leave.periods import PeriodKey
from leave_engine.leave.schemas import (
    LedgerBalance,
    LeaveRequestCreate,
    LeaveRequestOut,
    SubmissionResult,
    Violation,
)
from leave_engine.leave.validator import (
    LeaveCandidate,
    RuleValidator,
    ValidationContext,
    ValidationOutcome,
)

logger = logging.getLogger(__name__)


def _team_key(team: Optional[TeamInfo]) -> Optional[Hashable]:
    return ("team", team.id) if team is not None else None


def _request_key(request_id: uuid.UUID) -> Hashable:
    return ("request", request_id)


def _applicant_key(employee_id: uuid.UUID) -> Hashable:
    return ("requests-of", employee_id)


class LeaveLifecycle:
    """Owns every state change of a leave request and every ledger write."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        calendar: LeaveCalendar,
        ledger: EntitlementLedger,
        validator: RuleValidator,
        capacity: TeamCapacityChecker,
        directory: TeamDirectory,
        notifier: LeaveNotifier,
        capacity_ceiling: float,
        today: Callable[[], date] = date.today,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._session_factory = session_factory
        self.calendar = calendar
        self.ledger = ledger
        self.validator = validator
        self.capacity = capacity
        self.directory = directory
        self.notifier = notifier
        self.capacity_ceiling = capacity_ceiling
        self.today = today
        self.locks = locks or KeyedLocks()

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    async def _overlapping_request_ids(
        self, db: AsyncSession, candidate: LeaveCandidate,
    ) -> tuple[uuid.UUID, ...]:
        if candidate.end_date < candidate.start_date:
            return ()
        result = await db.execute(
            select(LeaveRequest.id).where(
                LeaveRequest.employee_id == candidate.employee_id,
                LeaveRequest.status.in_(ACTIVE_STATUSES),
                LeaveRequest.start_date <= candidate.end_date,
                LeaveRequest.end_date >= candidate.start_date,
            )
        )
        return tuple(result.scalars().all())

    async def _build_context(
        self,
        db: AsyncSession,
        candidate: LeaveCandidate,
        team: Optional[TeamInfo],
    ) -> ValidationContext:
        return ValidationContext(
            today=self.today(),
            balance=await self.ledger.get_period_balance(
                db, candidate.employee_id, candidate.leave_type, candidate.period,
            ),
            weekend_usage=await self.ledger.get_weekend_usage(
                db, candidate.employee_id, candidate.period,
            ),
            capacity=await self.capacity.evaluate(
                db, team, candidate.start_date, candidate.end_date,
                self.capacity_ceiling, applicant_id=candidate.employee_id,
            ),
            overlapping_request_ids=await self._overlapping_request_ids(db, candidate),
        )

    async def _assess(
        self,
        db: AsyncSession,
        candidate: LeaveCandidate,
        team: Optional[TeamInfo],
    ) -> ValidationOutcome:
        context = await self._build_context(db, candidate, team)
        return self.validator.validate(candidate, context)

    @staticmethod
    def _result(
        candidate: LeaveCandidate,
        violations: Iterable[Violation],
        request: Optional[LeaveRequestOut] = None,
    ) -> SubmissionResult:
        violations = list(violations)
        return SubmissionResult(
            accepted=not violations,
            request=request,
            violations=violations,
            requires_admin_approval=candidate.requires_admin_approval,
            total_days=candidate.total_days,
            is_weekend_leave=candidate.is_weekend_leave,
            semi_annual_period=candidate.period.half,
            leave_category=candidate.category,
        )

    async def _notify(
        self,
        event: str,
        request: LeaveRequestOut,
        *,
        actor_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> None:
        # The transition is already committed; a delivery failure must not undo it
        try:
            await self.notifier.notify(event, request, actor_id=actor_id, notes=notes)
        except Exception:
            logger.exception(
                "Notifier failed for %s event of leave request %s", event, request.id,
            )

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .with_for_update()
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def _period_of(leave_req: LeaveRequest) -> PeriodKey:
        return PeriodKey(leave_req.period_year, leave_req.semi_annual_period)

    def _release_keys(self, leave_req: LeaveRequest) -> list[Hashable]:
        period = self._period_of(leave_req)
        keys = [self.ledger.lock_key(leave_req.employee_id, leave_req.leave_type, period)]
        if leave_req.is_weekend_leave:
            keys.append(self.ledger.weekend_lock_key(leave_req.employee_id, period))
        return keys

    async def _release_reservation(self, db: AsyncSession, leave_req: LeaveRequest) -> None:
        period = self._period_of(leave_req)
        await self.ledger.release(
            db, leave_req.employee_id, leave_req.leave_type, period, leave_req.total_days,
        )
        if leave_req.is_weekend_leave:
            await self.ledger.release_weekend(db, leave_req.employee_id, period)

    # ─────────────────────────────────────────────────────────────────
    # Preview / Submit
    # ─────────────────────────────────────────────────────────────────

    async def preview(
        self, employee_id: uuid.UUID, payload: LeaveRequestCreate,
    ) -> SubmissionResult:
        """Run every rule without reserving or persisting anything."""
        candidate = LeaveCandidate.from_payload(employee_id, payload, self.calendar)
        team = await self.directory.team_for(employee_id)
        async with self._session_factory() as db:
            outcome = await self._assess(db, candidate, team)
        return self._result(candidate, outcome.violations)

    async def submit(
        self, employee_id: uuid.UUID, payload: LeaveRequestCreate,
    ) -> SubmissionResult:
        """Validate and, when every rule passes, create a pending request.

        A rejected submission persists nothing; the result carries all
        violations.
        """
        candidate = LeaveCandidate.from_payload(employee_id, payload, self.calendar)
        team = await self.directory.team_for(employee_id)
        keys: list[Optional[Hashable]] = [
            _team_key(team),
            _applicant_key(employee_id),
            self.ledger.lock_key(employee_id, candidate.leave_type, candidate.period),
        ]
        if candidate.is_weekend_leave:
            keys.append(self.ledger.weekend_lock_key(employee_id, candidate.period))

        async with self.locks.hold(*keys):
            async with self._session_factory() as db:
                outcome = await self._assess(db, candidate, team)
                if not outcome.accepted:
                    logger.info(
                        "Leave submission by %s rejected: %s",
                        employee_id, ", ".join(sorted(c.value for c in outcome.codes)),
                    )
                    return self._result(candidate, outcome.violations)

                try:
                    await self.ledger.reserve(
                        db, employee_id, candidate.leave_type,
                        candidate.period, candidate.total_days,
                    )
                except InsufficientBalance as exc:
                    await db.rollback()
                    logger.info(
                        "Leave submission by %s rejected at reservation: %s",
                        employee_id, exc,
                    )
                    return self._result(candidate, [Violation(
                        code=ViolationCode.insufficient_balance,
                        message=str(exc),
                        field="leave_type",
                    )])
                if candidate.is_weekend_leave:
                    try:
                        await self.ledger.reserve_weekend(db, employee_id, candidate.period)
                    except InsufficientBalance:
                        await db.rollback()
                        return self._result(candidate, [Violation(
                            code=ViolationCode.weekend_leave_quota,
                            message="Weekend-leave limit reached for "
                                    f"{candidate.period.label}.",
                            field="start_date",
                        )])

                leave_req = LeaveRequest(
                    employee_id=employee_id,
                    leave_type=candidate.leave_type,
                    start_date=candidate.start_date,
                    end_date=candidate.end_date,
                    half_day=candidate.half_day,
                    half_day_period=candidate.half_day_period,
                    total_days=candidate.total_days,
                    reason=payload.reason,
                    emergency_contact_name=payload.emergency_contact_name,
                    emergency_contact_phone=payload.emergency_contact_phone,
                    supporting_document_ref=payload.supporting_document_ref,
                    status=LeaveStatus.pending,
                    is_weekend_leave=candidate.is_weekend_leave,
                    semi_annual_period=candidate.period.half,
                    period_year=candidate.period.year,
                    ledger_period=self.ledger.scope_of(
                        candidate.leave_type, candidate.period,
                    ),
                    leave_category=candidate.category,
                    team_conflict_check=True,
                    requires_admin_approval=candidate.requires_admin_approval,
                )
                db.add(leave_req)
                await db.flush()

                await create_audit_entry(
                    db,
                    action="submit",
                    entity_type="leave_request",
                    entity_id=leave_req.id,
                    actor_id=employee_id,
                    new_values={
                        "status": LeaveStatus.pending.value,
                        "leave_type": candidate.leave_type.value,
                        "start_date": candidate.start_date.isoformat(),
                        "end_date": candidate.end_date.isoformat(),
                        "total_days": str(candidate.total_days),
                        "is_weekend_leave": candidate.is_weekend_leave,
                    },
                )
                await db.commit()
                out = LeaveRequestOut.model_validate(leave_req)

        logger.info(
            "Leave request %s submitted by %s: %s day(s) of %s",
            out.id, employee_id, out.total_days, out.leave_type.value,
        )
        await self._notify(notifications.SUBMITTED, out, actor_id=employee_id)
        return self._result(candidate, [], request=out)

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject / Cancel
    # ─────────────────────────────────────────────────────────────────

    async def approve(
        self,
        request_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> LeaveRequestOut:
        """pending → approved. The reserved days stay counted as used."""
        now = datetime.now(timezone.utc)
        async with self.locks.hold(_request_key(request_id)):
            async with self._session_factory() as db:
                leave_req = await self._load_request(db, request_id)
                if leave_req.status in TERMINAL_STATUSES:
                    raise InvalidTransition(request_id, leave_req.status, "approve")

                leave_req.status = LeaveStatus.approved
                leave_req.reviewed_by = reviewer_id
                leave_req.reviewed_at = now
                leave_req.admin_notes = notes
                leave_req.updated_at = now
                await db.flush()

                await create_audit_entry(
                    db,
                    action="approve",
                    entity_type="leave_request",
                    entity_id=leave_req.id,
                    actor_id=reviewer_id,
                    old_values={"status": LeaveStatus.pending.value},
                    new_values={"status": LeaveStatus.approved.value, "notes": notes},
                )
                await db.commit()
                out = LeaveRequestOut.model_validate(leave_req)

        logger.info("Leave request %s approved by %s", request_id, reviewer_id)
        await self._notify(notifications.APPROVED, out, actor_id=reviewer_id, notes=notes)
        return out

    async def reject(
        self,
        request_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        notes: Optional[str],
    ) -> LeaveRequestOut:
        """pending → rejected. Notes are mandatory; the reservation is released."""
        if notes is None or not notes.strip():
            raise ValidationException(
                {"notes": ["Notes are required when rejecting a leave request."]}
            )
        notes = notes.strip()
        now = datetime.now(timezone.utc)

        async with self.locks.hold(_request_key(request_id)):
            async with self._session_factory() as db:
                leave_req = await self._load_request(db, request_id)
                if leave_req.status in TERMINAL_STATUSES:
                    raise InvalidTransition(request_id, leave_req.status, "reject")

                async with self.locks.hold(*self._release_keys(leave_req)):
                    await self._release_reservation(db, leave_req)
                    leave_req.status = LeaveStatus.rejected
                    leave_req.reviewed_by = reviewer_id
                    leave_req.reviewed_at = now
                    leave_req.admin_notes = notes
                    leave_req.updated_at = now
                    await db.flush()

                    await create_audit_entry(
                        db,
                        action="reject",
                        entity_type="leave_request",
                        entity_id=leave_req.id,
                        actor_id=reviewer_id,
                        old_values={"status": LeaveStatus.pending.value},
                        new_values={
                            "status": LeaveStatus.rejected.value,
                            "notes": notes,
                            "released_days": str(leave_req.total_days),
                        },
                    )
                    await db.commit()
                out = LeaveRequestOut.model_validate(leave_req)

        logger.info("Leave request %s rejected by %s", request_id, reviewer_id)
        await self._notify(notifications.REJECTED, out, actor_id=reviewer_id, notes=notes)
        return out

    async def cancel(
        self, request_id: uuid.UUID, acting_employee_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """pending → cancelled, by the owning employee only."""
        now = datetime.now(timezone.utc)

        async with self.locks.hold(_request_key(request_id)):
            async with self._session_factory() as db:
                leave_req = await self._load_request(db, request_id)
                if leave_req.employee_id != acting_employee_id:
                    raise InvalidTransition(
                        request_id, leave_req.status, "cancel",
                        detail="Only the employee who submitted a leave request can cancel it.",
                        status_code=403,
                    )
                if leave_req.status in TERMINAL_STATUSES:
                    raise InvalidTransition(request_id, leave_req.status, "cancel")

                async with self.locks.hold(*self._release_keys(leave_req)):
                    await self._release_reservation(db, leave_req)
                    leave_req.status = LeaveStatus.cancelled
                    leave_req.cancelled_at = now
                    leave_req.updated_at = now
                    await db.flush()

                    await create_audit_entry(
                        db,
                        action="cancel",
                        entity_type="leave_request",
                        entity_id=leave_req.id,
                        actor_id=acting_employee_id,
                        old_values={"status": LeaveStatus.pending.value},
                        new_values={
                            "status": LeaveStatus.cancelled.value,
                            "released_days": str(leave_req.total_days),
                        },
                    )
                    await db.commit()
                out = LeaveRequestOut.model_validate(leave_req)

        logger.info("Leave request %s cancelled by %s", request_id, acting_employee_id)
        await self._notify(notifications.CANCELLED, out, actor_id=acting_employee_id)
        return out

    # ─────────────────────────────────────────────────────────────────
    # Ledger administration
    # ─────────────────────────────────────────────────────────────────

    async def open_period(
        self,
        period: PeriodKey,
        employee_ids: Iterable[uuid.UUID],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> tuple[int, int]:
        """Semi-annual reset: pre-create the period's ledger entries."""
        employees = sorted(set(employee_ids), key=str)
        semi_annual = [
            lt for lt in LeaveType
            if self.ledger.scope_of(lt, period) == period.half
        ]
        keys = [
            self.ledger.lock_key(emp, lt, period) for emp in employees for lt in semi_annual
        ] + [self.ledger.weekend_lock_key(emp, period) for emp in employees]

        async with self.locks.hold(*keys):
            async with self._session_factory() as db:
                created, existing = await self.ledger.open_period(
                    db, period, employees, actor_id=actor_id,
                )
                await db.commit()
        return created, existing

    async def adjust_allocation(
        self,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        period: PeriodKey,
        delta: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> LedgerBalance:
        async with self.locks.hold(self.ledger.lock_key(employee_id, leave_type, period)):
            async with self._session_factory() as db:
                balance = await self.ledger.adjust_allocation(
                    db, employee_id, leave_type, period, delta,
                    actor_id=actor_id, reason=reason,
                )
                await db.commit()
        return balance


def build_lifecycle(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    directory: Optional[TeamDirectory] = None,
    notifier: Optional[LeaveNotifier] = None,
    today: Optional[Callable[[], date]] = None,
    work_week: Optional[WorkWeek] = None,
    max_consecutive_days: Optional[int] = None,
    weekend_cap: Optional[int] = None,
    capacity_ceiling: Optional[float] = None,
) -> LeaveLifecycle:
    """Wire a lifecycle from settings; keyword arguments override them."""
    calendar = LeaveCalendar(work_week or get_work_week(settings.WORK_WEEK))
    directory = directory or SqlDirectory(session_factory)
    return LeaveLifecycle(
        session_factory,
        calendar=calendar,
        ledger=EntitlementLedger(weekend_cap=weekend_cap),
        validator=RuleValidator(
            calendar,
            settings.MAX_CONSECUTIVE_DAYS
            if max_consecutive_days is None else max_consecutive_days,
        ),
        capacity=TeamCapacityChecker(directory),
        directory=directory,
        notifier=notifier or LoggingNotifier(),
        capacity_ceiling=(
            settings.TEAM_CAPACITY_CEILING
            if capacity_ceiling is None else capacity_ceiling
        ),
        today=today or date.today,
    )
