"""Leave application state machine with transition validation."""

from __future__ import annotations

from typing import Dict, FrozenSet

from app.core.exceptions import AlreadyTerminalError, StateConflictError
from app.models.leave_application import LeaveStatus


class LeaveStateMachine:
    """State machine for leave application status transitions.

    Allowed transitions:
    - pending → approved
    - pending → rejected
    - approved → cancelled

    Every transition is one-shot; rejected and cancelled are final.
    """

    VALID_TRANSITIONS: Dict[LeaveStatus, FrozenSet[LeaveStatus]] = {
        LeaveStatus.PENDING: frozenset({LeaveStatus.APPROVED, LeaveStatus.REJECTED}),
        LeaveStatus.APPROVED: frozenset({LeaveStatus.CANCELLED}),
        LeaveStatus.REJECTED: frozenset(),
        LeaveStatus.CANCELLED: frozenset(),
    }

    # A decision has been taken; approve/reject no longer apply
    DECIDED = frozenset({LeaveStatus.APPROVED, LeaveStatus.REJECTED, LeaveStatus.CANCELLED})

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return LeaveStatus(to_status) in cls.VALID_TRANSITIONS.get(LeaveStatus(from_status), frozenset())

    @classmethod
    def validate_transition(cls, application_id: int, from_status: str, to_status: str) -> None:
        """Raise if `from_status → to_status` is not allowed."""
        if cls.can_transition(from_status, to_status):
            return
        current = LeaveStatus(from_status)
        if current in cls.DECIDED and LeaveStatus(to_status) in (LeaveStatus.APPROVED, LeaveStatus.REJECTED):
            raise AlreadyTerminalError(application_id, current.value)
        raise StateConflictError(
            f"Cannot move leave application {application_id} from '{current.value}' to '{LeaveStatus(to_status).value}'",
            details={"application_id": application_id, "from": current.value, "to": LeaveStatus(to_status).value},
        )
