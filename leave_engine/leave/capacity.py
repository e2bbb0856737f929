"""Team capacity — share of a team simultaneously on leave."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from fractions import Fraction
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.constants import ACTIVE_STATUSES
from leave_engine.directory.service import TeamDirectory, TeamInfo
from leave_engine.leave.models import LeaveRequest


@dataclass(frozen=True)
class CapacityCheck:
    team_id: Optional[uuid.UUID]
    team_size: int
    on_leave: int
    ceiling: float
    exceeded: bool


def unconstrained(ceiling: float, team: Optional[TeamInfo] = None) -> CapacityCheck:
    return CapacityCheck(
        team_id=team.id if team else None,
        team_size=team.size if team else 0,
        on_leave=0,
        ceiling=ceiling,
        exceeded=False,
    )


class TeamCapacityChecker:
    """Counts teammates on pending/approved leave overlapping a date range.

    The projected fraction includes the applicant: ``(on_leave + 1) / size``.
    It is compared exactly (not in floating point) and a fraction equal to
    the ceiling does not exceed it. Teams of fewer than two are never
    constrained.
    """

    def __init__(self, directory: TeamDirectory) -> None:
        self.directory = directory

    @staticmethod
    async def count_on_leave(
        db: AsyncSession,
        member_ids: frozenset[uuid.UUID],
        start: date,
        end: date,
        *,
        exclude_employee_id: Optional[uuid.UUID] = None,
    ) -> int:
        members = [m for m in member_ids if m != exclude_employee_id]
        if not members:
            return 0
        result = await db.execute(
            select(func.count(func.distinct(LeaveRequest.employee_id))).where(
                LeaveRequest.employee_id.in_(members),
                LeaveRequest.status.in_(ACTIVE_STATUSES),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
        )
        return int(result.scalar_one())

    async def evaluate(
        self,
        db: AsyncSession,
        team: Optional[TeamInfo],
        start: date,
        end: date,
        ceiling: float,
        applicant_id: Optional[uuid.UUID] = None,
    ) -> CapacityCheck:
        if team is None or team.size < 2:
            return unconstrained(ceiling, team)
        # A reversed range overlaps nothing; normalise so the check stays meaningful
        lo, hi = min(start, end), max(start, end)
        on_leave = await self.count_on_leave(
            db, team.member_ids, lo, hi, exclude_employee_id=applicant_id,
        )
        projected = Fraction(on_leave + 1, team.size)
        return CapacityCheck(
            team_id=team.id,
            team_size=team.size,
            on_leave=on_leave,
            ceiling=ceiling,
            exceeded=projected > Fraction(str(ceiling)),
        )

    async def would_exceed_capacity(
        self,
        db: AsyncSession,
        team_id: uuid.UUID,
        start: date,
        end: date,
        ceiling: float,
        applicant_id: Optional[uuid.UUID] = None,
    ) -> bool:
        team = await self.directory.get_team(team_id)
        check = await self.evaluate(db, team, start, end, ceiling, applicant_id)
        return check.exceeded
