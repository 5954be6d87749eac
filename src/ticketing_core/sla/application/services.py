"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from ticketing_core.config import (
    NotificationType, TicketStatus, UserRole,
    AUTO_ASSIGN_ROLES, STAFF_ROLES
)
from ticketing_core.core import InvalidAssignee, TicketNotFound
from ticketing_core.shared.infrastructure.logging import get_logger, log_latency
from ticketing_core.sla.application.dto import (
    ComplianceReport,
    ComplianceSummaryResponse,
    TicketCreateDTO,
    TicketSLAResponse,
)
from ticketing_core.sla.domain import (
    AssignmentBalancer,
    CalendarConfig,
    CompliancePolicy,
    ComplianceSnapshot,
    Notification,
    NotifyEffect,
    SaveTicketEffect,
    SLACalculator,
    StaffCandidate,
    Ticket,
    TicketWorkflow,
    category_key,
    plan_compliance,
    plan_escalation,
    utcnow,
)
from ticketing_core.sla.domain.compliance import Effect, ticket_payload

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def load_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by id."""

    @abstractmethod
    async def load_open_tickets(self) -> List[Ticket]:
        """All tickets whose status is neither RESOLVED nor CLOSED."""

    @abstractmethod
    async def list_tickets(self, statuses: Optional[Iterable[TicketStatus]] = None) -> List[Ticket]:
        """Tickets in any of `statuses` (all tickets when None)."""

    @abstractmethod
    async def save_ticket(self, ticket: Ticket) -> None:
        """Insert or update a ticket."""


class IStaffRepository(ABC):
    """Interface for the staff directory."""

    @abstractmethod
    async def load_staff_candidates(
        self,
        roles: Iterable[UserRole],
        category: Optional[str] = None
    ) -> List[StaffCandidate]:
        """Accounts holding any of `roles`, with open ticket counts."""


class INotificationRepository(ABC):
    """Interface for notification records and alert deduplication."""

    @abstractmethod
    async def try_claim(
        self,
        ticket_id: str,
        kind: NotificationType,
        window_seconds: int,
        now: datetime
    ) -> bool:
        """
        Atomically record that `kind` is being raised for `ticket_id`.

        Returns False when the same kind was already claimed for the ticket
        within the last `window_seconds`.
        """

    @abstractmethod
    async def release_claim(self, ticket_id: str, kind: NotificationType, claimed_at: datetime) -> None:
        """
        Drop the claim taken at `claimed_at` so the next pass raises the
        alert again. A newer claim by another pass is left in place.
        """

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        """Persist a notification record."""


class INotificationDispatcher(ABC):
    """Outbound delivery (email, websocket, webhook...)."""

    @abstractmethod
    async def notify(self, user_id: str, kind: NotificationType, payload: Mapping[str, Any]) -> None:
        """Deliver a notification; failures are logged, never raised."""


class ICalendarConfigProvider(ABC):
    """Interface for business calendar configuration access."""

    @abstractmethod
    def get_config(self) -> CalendarConfig:
        """Get the business calendar configuration."""


# ========== Application Services ==========

class NotificationService:
    """Persists notification records and hands them to the dispatcher."""

    def __init__(
        self,
        notification_repository: INotificationRepository,
        dispatcher: INotificationDispatcher
    ):
        self._repo = notification_repository
        self._dispatcher = dispatcher

    async def send(
        self,
        ticket_id: str,
        kind: NotificationType,
        recipients: Sequence[str],
        title: str,
        message: str,
        payload: Mapping[str, Any],
        now: Optional[datetime] = None
    ) -> int:
        """Record and dispatch one notification per recipient."""
        now = now or utcnow()
        for user_id in recipients:
            await self._repo.create(Notification(
                id=None,
                user_id=user_id,
                ticket_id=ticket_id,
                type=kind,
                title=title,
                message=message,
                created_at=now,
            ))
            await self._dispatcher.notify(
                user_id, kind, {**payload, "title": title, "message": message}
            )
        return len(recipients)

    async def send_effect(self, effect: NotifyEffect, now: datetime) -> bool:
        """
        Deliver a planned notification.

        Deduplicated effects first claim the (ticket, kind) window; a lost
        claim means the alert was already raised and nothing is sent. When
        recording or dispatch fails the claim is released and the error
        propagates, so the next pass retries.
        """
        deduplicated = effect.dedup_window is not None
        if deduplicated:
            claimed = await self._repo.try_claim(
                effect.ticket_id,
                effect.kind,
                int(effect.dedup_window.total_seconds()),
                now,
            )
            if not claimed:
                logger.debug(
                    "Duplicate alert suppressed",
                    extra={"ticket_id": effect.ticket_id, "kind": effect.kind.value}
                )
                return False

        try:
            await self.send(
                effect.ticket_id, effect.kind, effect.recipients,
                effect.title, effect.message, effect.payload, now
            )
        except Exception:
            if deduplicated:
                await self._release_claim(effect, now)
            raise
        return True

    async def _release_claim(self, effect: NotifyEffect, claimed_at: datetime) -> None:
        try:
            await self._repo.release_claim(effect.ticket_id, effect.kind, claimed_at)
        except Exception as e:
            logger.error(
                "Failed to release alert claim",
                extra={"ticket_id": effect.ticket_id, "kind": effect.kind.value, "error": str(e)}
            )


class TicketService:
    """
    Ticket intake, status changes and assignment.

    Every mutation goes through TicketWorkflow; this service only loads,
    persists and notifies.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        staff_repository: IStaffRepository,
        notification_service: NotificationService,
        calculator: SLACalculator,
        workflow: Optional[TicketWorkflow] = None,
        balancer: Optional[AssignmentBalancer] = None,
        auto_assign_enabled: bool = False,
        auto_close_enabled: bool = False,
        auto_close_days: int = 7
    ):
        self._tickets = ticket_repository
        self._staff = staff_repository
        self._notifications = notification_service
        self._calculator = calculator
        self._workflow = workflow or TicketWorkflow()
        self._balancer = balancer or AssignmentBalancer()
        self._auto_assign_enabled = auto_assign_enabled
        self._auto_close_enabled = auto_close_enabled
        self._auto_close_days = auto_close_days

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._tickets.load_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)
        return ticket

    async def _find_staff(self, assignee_id: str) -> StaffCandidate:
        for candidate in await self._staff.load_staff_candidates(STAFF_ROLES):
            if candidate.id == assignee_id:
                return candidate
        raise InvalidAssignee(assignee_id, "not a staff account")

    async def create_ticket(self, request: TicketCreateDTO, now: Optional[datetime] = None) -> Ticket:
        """
        Open a ticket: compute its due date, then assign it if possible.

        An explicit assignee is validated; otherwise, with auto-assignment
        enabled, the least-loaded support staff member for the category is
        chosen. No eligible candidate leaves the ticket unassigned.
        """
        now = now or utcnow()
        ticket_id = str(uuid4())
        ticket = Ticket(
            id=ticket_id,
            ticket_number=request.ticket_number or f"TCK-{ticket_id[:8].upper()}",
            title=request.title,
            requester_id=request.requester_id,
            status=TicketStatus.NEW,
            priority=request.priority,
            sla_level=request.sla_level,
            category_id=request.category_id,
            subcategory_id=request.subcategory_id,
            created_at=now,
            updated_at=now,
            due_date=self._calculator.due_date(request.sla_level, request.priority, now),
        )

        assignee: Optional[StaffCandidate] = None
        if request.assigned_to_id:
            assignee = await self._find_staff(request.assigned_to_id)
        elif self._auto_assign_enabled:
            key = category_key(request.category_id, request.subcategory_id)
            candidates = await self._staff.load_staff_candidates(AUTO_ASSIGN_ROLES, key)
            chosen = self._balancer.select_assignee(candidates, key)
            if chosen is None:
                logger.warning("No support staff available for auto-assignment", extra={"ticket_id": ticket_id})
            else:
                assignee = next(c for c in candidates if c.id == chosen)

        if assignee is not None:
            ticket = self._workflow.assign(ticket, assignee, now=now)

        await self._tickets.save_ticket(ticket)
        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "sla_level": ticket.sla_level.value,
                "priority": ticket.priority.value,
                "due_date": ticket.due_date.isoformat(),
                "assigned_to_id": ticket.assigned_to_id,
            }
        )

        if ticket.assigned_to_id:
            await self._notify_assigned(ticket, now)
        return ticket

    async def change_status(
        self,
        ticket_id: str,
        new_status: TicketStatus,
        resolution: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Ticket:
        now = now or utcnow()
        ticket = await self.get_ticket(ticket_id)
        updated = self._workflow.apply_status_change(ticket, new_status, resolution, now)
        await self._tickets.save_ticket(updated)

        logger.info(
            "Ticket status changed",
            extra={"ticket_id": ticket_id, "from": ticket.status.value, "to": updated.status.value}
        )
        await self._notifications.send(
            ticket_id,
            NotificationType.TICKET_STATUS_CHANGED,
            [updated.requester_id],
            "Ticket Status Changed",
            f"Your ticket {updated.label} is now {updated.status.value}.",
            ticket_payload(updated),
            now,
        )
        return updated

    async def assign_ticket(
        self,
        ticket_id: str,
        assignee_id: str,
        now: Optional[datetime] = None
    ) -> Ticket:
        now = now or utcnow()
        ticket = await self.get_ticket(ticket_id)
        assignee = await self._find_staff(assignee_id)
        updated = self._workflow.assign(ticket, assignee, now=now)
        await self._tickets.save_ticket(updated)

        logger.info("Ticket assigned", extra={"ticket_id": ticket_id, "assigned_to_id": assignee_id})
        await self._notify_assigned(updated, now)
        return updated

    async def _notify_assigned(self, ticket: Ticket, now: datetime) -> None:
        await self._notifications.send(
            ticket.id,
            NotificationType.TICKET_ASSIGNED,
            [ticket.assigned_to_id],
            "Ticket Assigned",
            f"You have been assigned ticket {ticket.label}.",
            ticket_payload(ticket),
            now,
        )

    async def auto_close_resolved(self, now: Optional[datetime] = None) -> int:
        """
        Close tickets that have stayed RESOLVED for `auto_close_days`.

        Returns the number of tickets closed. A ticket that fails to close
        is logged and skipped.
        """
        if not self._auto_close_enabled:
            return 0

        now = now or utcnow()
        cutoff = now - timedelta(days=self._auto_close_days)
        resolved = await self._tickets.list_tickets([TicketStatus.RESOLVED])

        closed = 0
        for ticket in resolved:
            if ticket.updated_at > cutoff:
                continue
            try:
                updated = self._workflow.apply_status_change(ticket, TicketStatus.CLOSED, now=now)
                await self._tickets.save_ticket(updated)
                await self._notifications.send(
                    ticket.id,
                    NotificationType.TICKET_STATUS_CHANGED,
                    [ticket.requester_id],
                    "Ticket Auto-Closed",
                    f"Your ticket {ticket.label} has been automatically closed after being "
                    f"resolved for {self._auto_close_days} days.",
                    ticket_payload(updated),
                    now,
                )
            except Exception as e:
                logger.error("Auto-close failed", extra={"ticket_id": ticket.id, "error": str(e)})
                continue
            closed += 1

        if closed:
            logger.info("Auto-closed resolved tickets", extra={"closed": closed})
        return closed


class SLAService:
    """Read-side SLA queries for single tickets and the whole corpus."""

    def __init__(self, ticket_repository: ITicketRepository, calculator: SLACalculator):
        self._tickets = ticket_repository
        self._calculator = calculator

    async def get_ticket_sla(self, ticket_id: str, now: Optional[datetime] = None) -> TicketSLAResponse:
        now = now or utcnow()
        ticket = await self._tickets.load_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)

        remaining = (ticket.due_date - now).total_seconds() if ticket.due_date else None
        return TicketSLAResponse(
            ticket_id=ticket.id,
            status=ticket.status,
            priority=ticket.priority,
            sla_level=ticket.sla_level,
            due_date=ticket.due_date,
            is_overdue=self._calculator.is_overdue(ticket, now),
            remaining_seconds=remaining,
            resolution_budget_hours=self._calculator.budget_hours(ticket.sla_level, ticket.priority),
            response_budget_hours=self._calculator.response_time_budget(ticket.sla_level),
        )

    async def compliance_summary(self, now: Optional[datetime] = None) -> ComplianceSummaryResponse:
        now = now or utcnow()
        tickets = await self._tickets.list_tickets()
        return ComplianceSummaryResponse(
            open_tickets=sum(1 for t in tickets if t.is_open),
            overdue_tickets=sum(1 for t in tickets if self._calculator.is_overdue(t, now)),
            compliance_percentage=self._calculator.compliance_percentage(tickets),
        )


@dataclass
class _TicketOutcome:
    warnings: int = 0
    breaches: int = 0
    escalations: int = 0
    suppressed: int = 0
    failed: bool = False
    escalated: Optional[Ticket] = None


def _changed_since(current: Ticket, snapshot: Ticket) -> bool:
    return (current.status, current.assigned_to_id, current.priority, current.resolution) != (
        snapshot.status, snapshot.assigned_to_id, snapshot.priority, snapshot.resolution
    )


class ComplianceMonitor:
    """
    Recurring SLA compliance pass: warn, report breaches, auto-escalate.

    Each pass reads a snapshot, plans it with `plan_compliance`, then
    executes the plan. Different tickets run concurrently (bounded); the
    effects of a single ticket run in order. A failure on one ticket is
    logged and does not stop the others. Overlapping passes are refused.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        staff_repository: IStaffRepository,
        notification_service: NotificationService,
        policy: Optional[CompliancePolicy] = None,
        workflow: Optional[TicketWorkflow] = None,
        balancer: Optional[AssignmentBalancer] = None,
        max_concurrency: int = 8
    ):
        self._tickets = ticket_repository
        self._staff = staff_repository
        self._notifications = notification_service
        self._policy = policy or CompliancePolicy()
        self._workflow = workflow or TicketWorkflow()
        self._balancer = balancer or AssignmentBalancer()
        self._max_concurrency = max_concurrency
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def load_snapshot(self) -> ComplianceSnapshot:
        tickets = await self._tickets.load_open_tickets()
        staff = await self._staff.load_staff_candidates(STAFF_ROLES)
        return ComplianceSnapshot(tickets=tickets, staff=staff)

    async def run_once(self, now: Optional[datetime] = None) -> ComplianceReport:
        """Run one compliance pass, unless one is already in progress."""
        now = now or utcnow()
        report = ComplianceReport(started_at=now)

        if self._lock.locked():
            logger.warning("Compliance pass already in progress, skipping")
            report.skipped = True
            return report

        async with self._lock:
            with log_latency(logger, "compliance_pass"):
                snapshot = await self.load_snapshot()
                plan = plan_compliance(
                    now, snapshot, self._policy, self._workflow, self._balancer
                )

                semaphore = asyncio.Semaphore(self._max_concurrency)
                outcomes = await asyncio.gather(*(
                    self._run_ticket(semaphore, ticket_id, effects, now)
                    for ticket_id, effects in plan.effects.items()
                ))

        report.tickets_scanned = len(snapshot.tickets)
        report.unassignable = plan.unassignable
        for outcome in outcomes:
            report.warnings_sent += outcome.warnings
            report.breaches_sent += outcome.breaches
            report.escalations += outcome.escalations
            report.duplicates_suppressed += outcome.suppressed
            report.failures += int(outcome.failed)
        report.finished_at = utcnow()

        logger.info("SLA compliance check completed", extra=report.model_dump(mode="json"))
        return report

    async def _run_ticket(
        self,
        semaphore: asyncio.Semaphore,
        ticket_id: str,
        effects: List[Effect],
        now: datetime
    ) -> _TicketOutcome:
        async with semaphore:
            try:
                return await self._execute(ticket_id, effects, now)
            except Exception as e:
                logger.error(
                    "Compliance actions failed for ticket",
                    extra={"ticket_id": ticket_id, "error": str(e), "error_type": type(e).__name__}
                )
                return _TicketOutcome(failed=True)

    async def _execute(self, ticket_id: str, effects: List[Effect], now: datetime) -> _TicketOutcome:
        outcome = _TicketOutcome()
        for effect in effects:
            if isinstance(effect, SaveTicketEffect):
                escalated = await self._apply_escalation(effect, now)
                if escalated is None:
                    # Drop the escalation notices too
                    break
                outcome.escalations += 1
                outcome.escalated = escalated
                logger.info(
                    "Ticket escalated",
                    extra={
                        "ticket_id": ticket_id,
                        "assigned_to_id": escalated.assigned_to_id,
                        "priority_from": effect.previous.priority.value,
                        "priority_to": escalated.priority.value,
                        "reason": effect.reason,
                    }
                )
                continue

            if not await self._notifications.send_effect(effect, now):
                outcome.suppressed += 1
            elif effect.kind == NotificationType.SLA_WARNING:
                outcome.warnings += 1
            elif effect.kind == NotificationType.SLA_BREACH:
                outcome.breaches += 1
        return outcome

    async def _apply_escalation(self, effect: SaveTicketEffect, now: datetime) -> Optional[Ticket]:
        """
        Escalate the stored ticket rather than the snapshot copy.

        The row is re-read first. If it was closed, resolved, reassigned or
        reprioritised since the snapshot, the escalation is dropped.
        """
        current = await self._tickets.load_ticket(effect.previous.id)
        if current is None or not current.is_open or _changed_since(current, effect.previous):
            logger.info(
                "Escalation dropped, ticket changed during pass",
                extra={
                    "ticket_id": effect.previous.id,
                    "status": current.status.value if current else None,
                }
            )
            return None

        escalated = self._workflow.assign(
            current, effect.assignee, now=now, priority=effect.ticket.priority
        )
        await self._tickets.save_ticket(escalated)
        return escalated

    async def manual_escalate(
        self,
        ticket_id: str,
        initiator_id: str,
        now: Optional[datetime] = None
    ) -> Optional[Ticket]:
        """
        Escalate one ticket on request, without checking for a breach.

        Returns the escalated ticket, or None when no manager is available
        or the ticket is no longer open.

        Raises:
            TicketNotFound: ticket does not exist
        """
        now = now or utcnow()
        ticket = await self._tickets.load_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)

        staff = await self._staff.load_staff_candidates([UserRole.SUPPORT_MANAGER])
        managers = ComplianceSnapshot(tickets=[ticket], staff=staff).managers
        escalation = plan_escalation(
            ticket, managers, now, self._workflow, self._balancer, initiator_id=initiator_id
        )
        if escalation is None:
            logger.warning(
                "No support managers available to escalate ticket",
                extra={"ticket_id": ticket_id, "initiator_id": initiator_id}
            )
            return None

        effects, manager = escalation
        outcome = await self._execute(ticket_id, effects, now)
        if outcome.escalated is None:
            return None
        logger.info(
            "Ticket manually escalated",
            extra={"ticket_id": ticket_id, "initiator_id": initiator_id, "manager_id": manager.id}
        )
        return outcome.escalated
