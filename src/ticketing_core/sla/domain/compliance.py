"""
SLA Compliance Planning
=======================

Decides what a compliance pass should do, without doing it.

`plan_compliance` takes the current time and a snapshot of open tickets and
staff, and returns a CompliancePlan: per ticket, an ordered list of effects
(notifications to send, ticket updates to persist). The application layer
executes plans; keeping this step pure lets the warning, breach and
escalation rules be tested without a scheduler or database.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ticketing_core.config import NotificationType, Priority, UserRole
from ticketing_core.sla.domain.assignment import AssignmentBalancer
from ticketing_core.sla.domain.entities import StaffCandidate, Ticket
from ticketing_core.sla.domain.workflow import TicketWorkflow, escalated_priority


@dataclass(frozen=True)
class CompliancePolicy:
    """Time windows that drive the warning and breach passes."""
    warning_window: timedelta = timedelta(hours=2)
    warning_dedup: timedelta = timedelta(hours=2)
    breach_dedup: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings: Any) -> "CompliancePolicy":
        return cls(
            warning_window=timedelta(hours=settings.warning_window_hours),
            warning_dedup=timedelta(hours=settings.warning_dedup_hours),
            breach_dedup=timedelta(hours=settings.breach_dedup_hours),
        )


@dataclass(frozen=True)
class NotifyEffect:
    """Notify every recipient once; deduplicated per ticket when a window is set."""
    ticket_id: str
    kind: NotificationType
    recipients: Tuple[str, ...]
    title: str
    message: str
    payload: Mapping[str, Any]
    dedup_window: Optional[timedelta] = None


@dataclass(frozen=True)
class SaveTicketEffect:
    """
    Escalate a ticket to `assignee`.

    `ticket` is the planned result and `previous` the snapshot it was built
    from. The executor re-applies the assignment to the stored row.
    """
    ticket: Ticket
    previous: Ticket
    assignee: StaffCandidate
    reason: str


Effect = Union[NotifyEffect, SaveTicketEffect]


@dataclass(frozen=True)
class ComplianceSnapshot:
    """Open tickets and the staff directory as read at the start of a pass."""
    tickets: Sequence[Ticket]
    staff: Sequence[StaffCandidate]

    @property
    def staff_by_id(self) -> Dict[str, StaffCandidate]:
        return {s.id: s for s in self.staff}

    @property
    def managers(self) -> List[StaffCandidate]:
        return [s for s in self.staff if s.active and s.role == UserRole.SUPPORT_MANAGER]


@dataclass
class CompliancePlan:
    """Effects grouped by ticket id, in the order they must run."""
    now: datetime
    effects: Dict[str, List[Effect]] = field(default_factory=dict)
    warnings: int = 0
    breaches: int = 0
    escalations: int = 0
    unassignable: int = 0

    def add(self, ticket_id: str, *effects: Effect) -> None:
        self.effects.setdefault(ticket_id, []).extend(effects)

    @property
    def ticket_count(self) -> int:
        return len(self.effects)


def ticket_payload(ticket: Ticket) -> Dict[str, Any]:
    """Serializable ticket summary attached to notifications."""
    return {
        "ticket_id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "title": ticket.title,
        "status": ticket.status.value,
        "priority": ticket.priority.value,
        "due_date": ticket.due_date.isoformat() if ticket.due_date else None,
        "assigned_to_id": ticket.assigned_to_id,
        "requester_id": ticket.requester_id,
    }


def _unique(ids: Iterable[Optional[str]]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for user_id in ids:
        if user_id:
            seen.setdefault(user_id, None)
    return tuple(seen)


def is_ticket_escalated(ticket: Ticket, staff_by_id: Mapping[str, StaffCandidate]) -> bool:
    """Owned by a manager/admin, or already at the top of the priority scale."""
    assignee = staff_by_id.get(ticket.assigned_to_id) if ticket.assigned_to_id else None
    if assignee is not None and assignee.is_escalation_owner:
        return True
    return ticket.priority == Priority.CRITICAL


def warning_effect(ticket: Ticket, policy: CompliancePolicy) -> NotifyEffect:
    return NotifyEffect(
        ticket_id=ticket.id,
        kind=NotificationType.SLA_WARNING,
        recipients=_unique([ticket.requester_id, ticket.assigned_to_id]),
        title="SLA Warning",
        message=(
            f"Ticket {ticket.label} is approaching its SLA deadline. "
            f"Due: {ticket.due_date.isoformat()}"
        ),
        payload=ticket_payload(ticket),
        dedup_window=policy.warning_dedup,
    )


def breach_effect(
    ticket: Ticket,
    managers: Sequence[StaffCandidate],
    policy: CompliancePolicy
) -> NotifyEffect:
    return NotifyEffect(
        ticket_id=ticket.id,
        kind=NotificationType.SLA_BREACH,
        recipients=_unique(
            [ticket.requester_id, ticket.assigned_to_id] + [m.id for m in managers]
        ),
        title="SLA Breach",
        message=(
            f"Ticket {ticket.label} has breached its SLA deadline. "
            f"Due: {ticket.due_date.isoformat()}"
        ),
        payload=ticket_payload(ticket),
        dedup_window=policy.breach_dedup,
    )


def plan_escalation(
    ticket: Ticket,
    managers: Sequence[StaffCandidate],
    now: datetime,
    workflow: Optional[TicketWorkflow] = None,
    balancer: Optional[AssignmentBalancer] = None,
    initiator_id: Optional[str] = None
) -> Optional[Tuple[List[Effect], StaffCandidate]]:
    """
    Escalate one ticket to the least-loaded manager.

    Returns the effects and the chosen manager, or None when no manager is
    available. Breach status is not checked here.
    """
    workflow = workflow or TicketWorkflow()
    balancer = balancer or AssignmentBalancer()

    ranked = balancer.rank(managers)
    if not ranked:
        return None
    manager = ranked[0]

    escalated = workflow.assign(
        ticket, manager, now=now, priority=escalated_priority(ticket.priority)
    )
    reason = f"manual escalation by {initiator_id}" if initiator_id else "SLA breach"
    payload = ticket_payload(escalated)

    effects: List[Effect] = [
        SaveTicketEffect(ticket=escalated, previous=ticket, assignee=manager, reason=reason),
        NotifyEffect(
            ticket_id=ticket.id,
            kind=NotificationType.TICKET_ESCALATED,
            recipients=(manager.id,),
            title="Ticket Escalated",
            message=f"Ticket {ticket.label} has been escalated due to {reason} and assigned to you.",
            payload=payload,
        ),
        NotifyEffect(
            ticket_id=ticket.id,
            kind=NotificationType.TICKET_ESCALATED,
            recipients=(ticket.requester_id,),
            title="Ticket Escalated",
            message=f"Your ticket {ticket.label} has been escalated to a support manager due to {reason}.",
            payload=payload,
        ),
    ]
    return effects, manager


def plan_compliance(
    now: datetime,
    snapshot: ComplianceSnapshot,
    policy: Optional[CompliancePolicy] = None,
    workflow: Optional[TicketWorkflow] = None,
    balancer: Optional[AssignmentBalancer] = None
) -> CompliancePlan:
    """
    Plan the warning, breach and auto-escalation passes for one tick.

    - warning: due within [now, now + warning_window]
    - breach: due before now, notified to requester, assignee and managers
    - escalation: breached and not already escalated; each escalation adds
      one to the chosen manager's load for the rest of the plan
    """
    policy = policy or CompliancePolicy()
    workflow = workflow or TicketWorkflow()
    balancer = balancer or AssignmentBalancer()

    plan = CompliancePlan(now=now)
    staff_by_id = snapshot.staff_by_id
    managers = {m.id: m for m in snapshot.managers}
    horizon = now + policy.warning_window

    for ticket in snapshot.tickets:
        if not ticket.is_open or ticket.due_date is None:
            continue

        if now <= ticket.due_date <= horizon:
            plan.add(ticket.id, warning_effect(ticket, policy))
            plan.warnings += 1
            continue

        if ticket.due_date >= now:
            continue

        plan.add(ticket.id, breach_effect(ticket, list(managers.values()), policy))
        plan.breaches += 1

        if is_ticket_escalated(ticket, staff_by_id):
            continue

        escalation = plan_escalation(
            ticket, list(managers.values()), now, workflow, balancer
        )
        if escalation is None:
            plan.unassignable += 1
            continue

        effects, manager = escalation
        plan.add(ticket.id, *effects)
        plan.escalations += 1
        managers[manager.id] = replace(
            manager, open_ticket_count=manager.open_ticket_count + 1
        )

    return plan
