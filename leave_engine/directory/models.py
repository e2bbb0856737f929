"""Directory ORM models: Team, TeamMember."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leave_engine.database import Base


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # ── Relationships ───────────────────────────────────────────────
    members: Mapped[list[TeamMember]] = relationship(
        back_populates="team", cascade="all, delete-orphan", lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Team {self.name!r}>"


class TeamMember(Base):
    """Membership row; an employee belongs to at most one team."""

    __tablename__ = "team_members"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", name="uq_team_members_employee"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)

    team: Mapped[Team] = relationship(back_populates="members")
