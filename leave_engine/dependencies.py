"""Shared FastAPI dependencies — caller identity and engine wiring.

Authentication happens upstream: the gateway forwards the authenticated
employee in ``X-Employee-Id`` and their role in ``X-Employee-Role``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.exceptions import HTTPException

from leave_engine.common.constants import ADMIN_ROLES, UserRole
from leave_engine.common.exceptions import ForbiddenException
from leave_engine.leave.lifecycle import LeaveLifecycle


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


# ── Core dependency ─────────────────────────────────────────────────

async def get_actor(
    x_employee_id: Optional[str] = Header(None),
    x_employee_role: Optional[str] = Header(None),
) -> Actor:
    """Return the calling employee as forwarded by the gateway."""
    if not x_employee_id:
        raise HTTPException(status_code=401, detail="Missing X-Employee-Id header.")
    try:
        employee_id = uuid.UUID(x_employee_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-Employee-Id header.")

    try:
        role = UserRole(x_employee_role) if x_employee_role else UserRole.employee
    except ValueError:
        role = UserRole.employee
    return Actor(id=employee_id, role=role)


# ── Role-based dependency ───────────────────────────────────────────

async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """Restrict an endpoint to HR / system admins."""
    if not actor.is_admin:
        raise ForbiddenException(
            detail=(
                f"Role '{actor.role.value}' is not permitted. "
                f"Required: {sorted(r.value for r in ADMIN_ROLES)}."
            ),
        )
    return actor


# ── Engine ──────────────────────────────────────────────────────────

def get_lifecycle(request: Request) -> LeaveLifecycle:
    """The application's single ``LeaveLifecycle`` (it owns the lock registry)."""
    return request.app.state.lifecycle
