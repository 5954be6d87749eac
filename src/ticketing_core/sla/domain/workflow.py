"""
Ticket Workflow
===============

The authoritative state machine for a ticket's lifecycle.

`apply_status_change` and `assign` are the only two ways a ticket's status,
owner, priority or close time change. Both return a new Ticket and leave
their input untouched, so a rejected request has no side effects.
Permission checks belong to the caller.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from ticketing_core.config import Priority, TicketStatus, PRIORITY_SCALE
from ticketing_core.core import InvalidAssignee, InvalidTransition, MissingResolution
from ticketing_core.sla.domain.entities import StaffCandidate, Ticket, utcnow


TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.NEW: frozenset({TicketStatus.OPEN, TicketStatus.CLOSED}),
    TicketStatus.OPEN: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD, TicketStatus.CLOSED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.ON_HOLD, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    }),
    TicketStatus.ON_HOLD: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.REOPENED}),
    TicketStatus.CLOSED: frozenset({TicketStatus.REOPENED}),
    TicketStatus.REOPENED: frozenset({
        TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED,
    }),
}

_missing = set(TicketStatus) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"Transition table has no entry for {sorted(s.value for s in _missing)}")


class TicketWorkflow:
    """Validates and applies ticket status changes and assignments."""

    @staticmethod
    def allowed_transitions(status: TicketStatus) -> FrozenSet[TicketStatus]:
        return TRANSITIONS[TicketStatus(status)]

    @staticmethod
    def can_transition(current: TicketStatus, new: TicketStatus) -> bool:
        return TicketStatus(new) in TRANSITIONS[TicketStatus(current)]

    def apply_status_change(
        self,
        ticket: Ticket,
        new_status: TicketStatus,
        resolution: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Ticket:
        """
        Move a ticket to `new_status`.

        Raises:
            InvalidTransition: new_status is not reachable from the current one
            MissingResolution: RESOLVED requested without resolution text
        """
        new_status = TicketStatus(new_status)
        if not self.can_transition(ticket.status, new_status):
            raise InvalidTransition(ticket.id, ticket.status.value, new_status.value)

        resolution = resolution.strip() if resolution else None
        if new_status == TicketStatus.RESOLVED and not resolution:
            raise MissingResolution(ticket.id)

        now = now or utcnow()
        changes = {"status": new_status, "updated_at": now}
        if new_status == TicketStatus.CLOSED:
            changes["closed_at"] = now
        if resolution:
            changes["resolution"] = resolution
        return replace(ticket, **changes)

    def assign(
        self,
        ticket: Ticket,
        assignee: StaffCandidate,
        now: Optional[datetime] = None,
        priority: Optional[Priority] = None
    ) -> Ticket:
        """
        Give a ticket a new owner.

        A NEW ticket moves to OPEN, since assignment means work has been
        picked up. `priority` is set alongside the owner when escalating.

        Raises:
            InvalidAssignee: assignee is inactive or not a staff account
        """
        if not assignee.active:
            raise InvalidAssignee(assignee.id, "account is inactive")
        if not assignee.is_staff:
            raise InvalidAssignee(assignee.id, f"role {assignee.role.value} cannot own tickets")

        now = now or utcnow()
        changes = {"assigned_to_id": assignee.id, "updated_at": now}
        if priority is not None:
            changes["priority"] = Priority(priority)
        if ticket.status == TicketStatus.NEW:
            # NEW -> OPEN through the transition table
            opened = self.apply_status_change(ticket, TicketStatus.OPEN, now=now)
            changes["status"] = opened.status
        return replace(ticket, **changes)


def escalated_priority(priority: Priority) -> Priority:
    """One step up the LOW < MEDIUM < HIGH < CRITICAL scale; CRITICAL stays."""
    index = PRIORITY_SCALE.index(Priority(priority))
    return PRIORITY_SCALE[min(index + 1, len(PRIORITY_SCALE) - 1)]
