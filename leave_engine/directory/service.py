"""Team lookups for capacity checks.

The engine treats employee and team ids as opaque keys; membership is owned
by the organisation directory. ``SqlDirectory`` reads the ``teams`` tables
of the deployed service, ``InMemoryDirectory`` serves tests and embedding.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leave_engine.directory.models import Team, TeamMember


@dataclass(frozen=True)
class TeamInfo:
    id: uuid.UUID
    name: str
    manager_id: Optional[uuid.UUID]
    member_ids: frozenset[uuid.UUID]

    @property
    def size(self) -> int:
        return len(self.member_ids)


class TeamDirectory(Protocol):
    """Read-only view of team membership."""

    async def team_for(self, employee_id: uuid.UUID) -> Optional[TeamInfo]: ...
    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamInfo]: ...


class InMemoryDirectory:
    def __init__(self) -> None:
        self._teams: dict[uuid.UUID, TeamInfo] = {}
        self._membership: dict[uuid.UUID, uuid.UUID] = {}

    def add_team(
        self,
        name: str,
        member_ids: Iterable[uuid.UUID],
        *,
        manager_id: Optional[uuid.UUID] = None,
        team_id: Optional[uuid.UUID] = None,
    ) -> TeamInfo:
        team = TeamInfo(
            id=team_id or uuid.uuid4(),
            name=name,
            manager_id=manager_id,
            member_ids=frozenset(member_ids),
        )
        for member_id in team.member_ids:
            current = self._membership.get(member_id)
            if current is not None and current != team.id:
                raise ValueError(
                    f"Employee {member_id} already belongs to team {current}."
                )
        self._teams[team.id] = team
        for member_id in team.member_ids:
            self._membership[member_id] = team.id
        return team

    async def team_for(self, employee_id: uuid.UUID) -> Optional[TeamInfo]:
        team_id = self._membership.get(employee_id)
        return self._teams.get(team_id) if team_id is not None else None

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamInfo]:
        return self._teams.get(team_id)


class SqlDirectory:
    """Directory backed by the ``teams`` / ``team_members`` tables.

    Each lookup runs in its own short-lived session so that callers can
    resolve a team before taking any lock or opening their own transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_info(team: Team) -> TeamInfo:
        return TeamInfo(
            id=team.id,
            name=team.name,
            manager_id=team.manager_id,
            member_ids=frozenset(m.employee_id for m in team.members),
        )

    async def team_for(self, employee_id: uuid.UUID) -> Optional[TeamInfo]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Team)
                .join(TeamMember, TeamMember.team_id == Team.id)
                .where(TeamMember.employee_id == employee_id)
            )
            team = result.scalars().first()
            return self._to_info(team) if team is not None else None

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamInfo]:
        async with self._session_factory() as db:
            team = await db.get(Team, team_id)
            return self._to_info(team) if team is not None else None
