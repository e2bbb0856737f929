"""Leave notification hook.

Delivery (email, in-app, chat) lives outside the engine. The lifecycle calls
the notifier after a transition has been committed and its locks released.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Protocol

from leave_engine.leave.schemas import LeaveRequestOut

logger = logging.getLogger(__name__)

SUBMITTED = "submitted"
APPROVED = "approved"
REJECTED = "rejected"
CANCELLED = "cancelled"


class LeaveNotifier(Protocol):
    async def notify(
        self,
        event: str,
        request: LeaveRequestOut,
        *,
        actor_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> None: ...


class LoggingNotifier:
    """Default notifier: records each event in the application log."""

    _MESSAGES = {
        SUBMITTED: "Leave request {id} from {start} to {end} ({days} day(s)) awaits review{admin}.",
        APPROVED: "Leave request {id} from {start} to {end} has been approved.",
        REJECTED: "Leave request {id} from {start} to {end} was rejected. Reason: {notes}",
        CANCELLED: "Leave request {id} from {start} to {end} has been cancelled by the employee.",
    }

    async def notify(
        self,
        event: str,
        request: LeaveRequestOut,
        *,
        actor_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> None:
        template = self._MESSAGES.get(event, "Leave request {id}: " + event)
        logger.info(
            "[notify %s → %s] %s",
            event,
            request.employee_id,
            template.format(
                id=request.id,
                start=request.start_date,
                end=request.end_date,
                days=request.total_days,
                admin=" (HR admin approval required)" if request.requires_admin_approval else "",
                notes=notes,
            ),
        )
