"""
Test ticket intake, status changes, assignment and auto-close
"""
from datetime import datetime, timedelta, timezone

import pytest

from ticketing_core.config import NotificationType, Priority, SLALevel, TicketStatus, UserRole
from ticketing_core.core import InvalidAssignee, InvalidTransition, ResourceNotFoundException
from ticketing_core.sla.application import SLAService, TicketCreateDTO, TicketService

UTC = timezone.utc
MONDAY_0800 = datetime(2024, 3, 4, 8, 0, tzinfo=UTC)


@pytest.fixture
def service_factory(ticket_repo, staff_repo, notification_service, calculator):
    def _make(**options) -> TicketService:
        return TicketService(ticket_repo, staff_repo, notification_service, calculator, **options)
    return _make


@pytest.fixture
def service(service_factory) -> TicketService:
    return service_factory()


def add(repo, ticket):
    repo.tickets[ticket.id] = ticket
    return ticket


class TestCreateTicket:
    """Test TicketService.create_ticket"""

    @pytest.mark.asyncio
    async def test_due_date_from_business_calendar(self, service, ticket_repo):
        request = TicketCreateDTO(requester_id="user-1", title="Printer jammed")

        ticket = await service.create_ticket(request, now=MONDAY_0800)

        assert ticket.status == TicketStatus.NEW
        assert ticket.priority == Priority.MEDIUM
        assert ticket.sla_level == SLALevel.STANDARD
        assert ticket.due_date == datetime(2024, 3, 8, 17, 0, tzinfo=UTC)
        assert ticket.assigned_to_id is None
        assert ticket.ticket_number.startswith("TCK-")
        assert ticket_repo.tickets[ticket.id] == ticket

    @pytest.mark.asyncio
    async def test_auto_assign_picks_least_loaded_staff(
        self, service_factory, staff_repo, notification_repo, make_staff
    ):
        staff_repo.staff.extend([
            make_staff("agent-busy", open_tickets=7),
            make_staff("agent-free", open_tickets=2),
            make_staff("admin", role=UserRole.ADMIN, open_tickets=0),
        ])
        service = service_factory(auto_assign_enabled=True)

        ticket = await service.create_ticket(
            TicketCreateDTO(requester_id="user-1", title="No VPN"), now=MONDAY_0800
        )

        assert ticket.assigned_to_id == "agent-free"
        assert ticket.status == TicketStatus.OPEN
        assigned = notification_repo.of_kind(NotificationType.TICKET_ASSIGNED)
        assert [n.user_id for n in assigned] == ["agent-free"]

    @pytest.mark.asyncio
    async def test_auto_assign_with_no_staff_leaves_unassigned(self, service_factory):
        service = service_factory(auto_assign_enabled=True)

        ticket = await service.create_ticket(
            TicketCreateDTO(requester_id="user-1", title="No VPN"), now=MONDAY_0800
        )

        assert ticket.assigned_to_id is None
        assert ticket.status == TicketStatus.NEW

    @pytest.mark.asyncio
    async def test_explicit_assignee_must_be_staff(self, service, ticket_repo):
        request = TicketCreateDTO(requester_id="user-1", title="x", assigned_to_id="ghost")

        with pytest.raises(InvalidAssignee):
            await service.create_ticket(request, now=MONDAY_0800)

        assert ticket_repo.tickets == {}

    @pytest.mark.asyncio
    async def test_explicit_inactive_assignee_rejected(self, service, staff_repo, make_staff):
        staff_repo.staff.append(make_staff("agent-gone", active=False))
        request = TicketCreateDTO(requester_id="user-1", title="x", assigned_to_id="agent-gone")

        with pytest.raises(InvalidAssignee):
            await service.create_ticket(request, now=MONDAY_0800)


class TestChangeStatus:
    """Test TicketService.change_status and assign_ticket"""

    @pytest.mark.asyncio
    async def test_change_status_notifies_requester(self, service, ticket_repo, notification_repo, make_ticket):
        ticket = add(ticket_repo, make_ticket(status=TicketStatus.OPEN))

        updated = await service.change_status(ticket.id, TicketStatus.IN_PROGRESS, now=MONDAY_0800)

        assert updated.status == TicketStatus.IN_PROGRESS
        assert ticket_repo.tickets[ticket.id].status == TicketStatus.IN_PROGRESS
        changed = notification_repo.of_kind(NotificationType.TICKET_STATUS_CHANGED)
        assert [n.user_id for n in changed] == ["requester-1"]

    @pytest.mark.asyncio
    async def test_invalid_transition_saves_nothing(self, service, ticket_repo, notification_repo, make_ticket):
        ticket = add(ticket_repo, make_ticket(status=TicketStatus.NEW))

        with pytest.raises(InvalidTransition):
            await service.change_status(ticket.id, TicketStatus.RESOLVED, "done", now=MONDAY_0800)

        assert ticket_repo.saved == []
        assert notification_repo.notifications == []

    @pytest.mark.asyncio
    async def test_missing_ticket(self, service):
        with pytest.raises(ResourceNotFoundException):
            await service.change_status("missing", TicketStatus.OPEN)

    @pytest.mark.asyncio
    async def test_assign_ticket(self, service, ticket_repo, staff_repo, make_ticket, make_staff):
        staff_repo.staff.append(make_staff("agent-1"))
        ticket = add(ticket_repo, make_ticket(status=TicketStatus.NEW))

        updated = await service.assign_ticket(ticket.id, "agent-1", now=MONDAY_0800)

        assert updated.assigned_to_id == "agent-1"
        assert updated.status == TicketStatus.OPEN


class TestAutoClose:
    """Test TicketService.auto_close_resolved"""

    @pytest.mark.asyncio
    async def test_closes_only_stale_resolved_tickets(self, service_factory, ticket_repo, make_ticket):
        now = MONDAY_0800 + timedelta(days=30)
        stale = add(ticket_repo, make_ticket(
            status=TicketStatus.RESOLVED, updated_at=now - timedelta(days=8)
        ))
        fresh = add(ticket_repo, make_ticket(
            status=TicketStatus.RESOLVED, updated_at=now - timedelta(days=1)
        ))
        still_open = add(ticket_repo, make_ticket(
            status=TicketStatus.OPEN, updated_at=now - timedelta(days=20)
        ))
        service = service_factory(auto_close_enabled=True, auto_close_days=7)

        closed = await service.auto_close_resolved(now)

        assert closed == 1
        assert ticket_repo.tickets[stale.id].status == TicketStatus.CLOSED
        assert ticket_repo.tickets[stale.id].closed_at == now
        assert ticket_repo.tickets[fresh.id].status == TicketStatus.RESOLVED
        assert ticket_repo.tickets[still_open.id].status == TicketStatus.OPEN

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, service, ticket_repo, make_ticket):
        add(ticket_repo, make_ticket(status=TicketStatus.RESOLVED))

        assert await service.auto_close_resolved(MONDAY_0800 + timedelta(days=60)) == 0


class TestSLAService:
    """Test SLA read queries"""

    @pytest.mark.asyncio
    async def test_ticket_sla(self, ticket_repo, calculator, make_ticket):
        ticket = add(ticket_repo, make_ticket(sla_level=SLALevel.PREMIUM, due_date=MONDAY_0800))
        service = SLAService(ticket_repo, calculator)

        sla = await service.get_ticket_sla(ticket.id, now=MONDAY_0800 + timedelta(hours=1))

        assert sla.is_overdue is True
        assert sla.remaining_seconds == -3600
        assert sla.resolution_budget_hours == 16
        assert sla.response_budget_hours == 4

    @pytest.mark.asyncio
    async def test_ticket_sla_missing(self, ticket_repo, calculator):
        with pytest.raises(ResourceNotFoundException):
            await SLAService(ticket_repo, calculator).get_ticket_sla("missing")

    @pytest.mark.asyncio
    async def test_compliance_summary(self, ticket_repo, calculator, make_ticket):
        add(ticket_repo, make_ticket(due_date=MONDAY_0800 - timedelta(hours=1)))
        add(ticket_repo, make_ticket(due_date=MONDAY_0800 + timedelta(hours=1)))
        add(ticket_repo, make_ticket(
            status=TicketStatus.CLOSED, due_date=MONDAY_0800, closed_at=MONDAY_0800 - timedelta(hours=2)
        ))

        summary = await SLAService(ticket_repo, calculator).compliance_summary(MONDAY_0800)

        assert summary.open_tickets == 2
        assert summary.overdue_tickets == 1
        assert summary.compliance_percentage == 100
