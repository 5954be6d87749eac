"""
Test compliance planning (no I/O)
"""
from datetime import datetime, timedelta, timezone

import pytest

from ticketing_core.config import NotificationType, Priority, TicketStatus, UserRole
from ticketing_core.sla.domain import (
    ComplianceSnapshot,
    NotifyEffect,
    SaveTicketEffect,
    plan_compliance,
    plan_escalation,
)

NOW = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


def kinds(effects):
    return [e.kind if isinstance(e, NotifyEffect) else "save" for e in effects]


@pytest.fixture
def managers(make_staff):
    return [
        make_staff("mgr-busy", role=UserRole.SUPPORT_MANAGER, open_tickets=4),
        make_staff("mgr-free", role=UserRole.SUPPORT_MANAGER, open_tickets=1),
    ]


class TestWarnings:
    """Test the warning window"""

    def test_due_within_window_warns(self, make_ticket):
        ticket = make_ticket(due_date=NOW + timedelta(hours=1), assigned_to_id="agent-1")
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], []))

        effects = plan.effects[ticket.id]
        assert kinds(effects) == [NotificationType.SLA_WARNING]
        assert effects[0].recipients == ("requester-1", "agent-1")
        assert effects[0].dedup_window == timedelta(hours=2)
        assert plan.warnings == 1

    def test_window_edges_are_inclusive(self, make_ticket):
        at_now = make_ticket(due_date=NOW)
        at_horizon = make_ticket(due_date=NOW + timedelta(hours=2))
        plan = plan_compliance(NOW, ComplianceSnapshot([at_now, at_horizon], []))

        assert plan.warnings == 2
        assert plan.breaches == 0

    def test_far_deadline_is_ignored(self, make_ticket):
        ticket = make_ticket(due_date=NOW + timedelta(hours=3))
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], []))

        assert plan.effects == {}

    def test_closed_and_undated_tickets_are_ignored(self, make_ticket):
        tickets = [
            make_ticket(status=TicketStatus.RESOLVED, due_date=NOW - timedelta(hours=1)),
            make_ticket(due_date=None),
        ]
        plan = plan_compliance(NOW, ComplianceSnapshot(tickets, []))

        assert plan.effects == {}


class TestBreachAndEscalation:
    """Test breach notification and auto-escalation"""

    def test_new_unassigned_ticket_is_escalated(self, make_ticket, managers):
        ticket = make_ticket(
            status=TicketStatus.NEW, priority=Priority.LOW, due_date=NOW - timedelta(minutes=5)
        )
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], managers))

        effects = plan.effects[ticket.id]
        assert kinds(effects) == [
            NotificationType.SLA_BREACH,
            "save",
            NotificationType.TICKET_ESCALATED,
            NotificationType.TICKET_ESCALATED,
        ]

        saved = effects[1]
        assert isinstance(saved, SaveTicketEffect)
        assert saved.ticket.priority == Priority.MEDIUM
        assert saved.ticket.assigned_to_id == "mgr-free"
        assert saved.ticket.status == TicketStatus.OPEN
        assert saved.previous is ticket
        assert effects[2].recipients == ("mgr-free",)
        assert effects[3].recipients == ("requester-1",)
        assert plan.escalations == 1

    def test_breach_notifies_requester_assignee_and_managers(self, make_ticket, make_staff, managers):
        agent = make_staff("agent-1")
        ticket = make_ticket(assigned_to_id="agent-1", due_date=NOW - timedelta(hours=1))
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], managers + [agent]))

        breach = plan.effects[ticket.id][0]
        assert breach.kind == NotificationType.SLA_BREACH
        assert breach.recipients == ("requester-1", "agent-1", "mgr-busy", "mgr-free")
        assert breach.dedup_window == timedelta(hours=24)

    def test_critical_ticket_is_notified_not_bumped(self, make_ticket, managers):
        ticket = make_ticket(priority=Priority.CRITICAL, due_date=NOW - timedelta(hours=1))
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], managers))

        assert kinds(plan.effects[ticket.id]) == [NotificationType.SLA_BREACH]
        assert plan.escalations == 0

    def test_ticket_owned_by_manager_is_not_escalated(self, make_ticket, managers):
        ticket = make_ticket(assigned_to_id="mgr-busy", due_date=NOW - timedelta(hours=1))
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], managers))

        assert kinds(plan.effects[ticket.id]) == [NotificationType.SLA_BREACH]

    def test_no_manager_counts_as_unassignable(self, make_ticket):
        ticket = make_ticket(due_date=NOW - timedelta(hours=1))
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], []))

        assert kinds(plan.effects[ticket.id]) == [NotificationType.SLA_BREACH]
        assert plan.unassignable == 1

    def test_inactive_manager_is_not_chosen(self, make_ticket, make_staff):
        staff = [
            make_staff("mgr-away", role=UserRole.SUPPORT_MANAGER, active=False),
            make_staff("mgr-on", role=UserRole.SUPPORT_MANAGER, open_tickets=10),
        ]
        ticket = make_ticket(due_date=NOW - timedelta(hours=1))
        plan = plan_compliance(NOW, ComplianceSnapshot([ticket], staff))

        assert plan.effects[ticket.id][1].ticket.assigned_to_id == "mgr-on"

    def test_escalations_spread_across_managers(self, make_ticket, make_staff):
        staff = [
            make_staff("mgr-a", role=UserRole.SUPPORT_MANAGER, created_at=datetime(2020, 1, 1, tzinfo=timezone.utc)),
            make_staff("mgr-b", role=UserRole.SUPPORT_MANAGER, created_at=datetime(2021, 1, 1, tzinfo=timezone.utc)),
        ]
        tickets = [make_ticket(due_date=NOW - timedelta(hours=1)) for _ in range(2)]
        plan = plan_compliance(NOW, ComplianceSnapshot(tickets, staff))

        owners = [plan.effects[t.id][1].ticket.assigned_to_id for t in tickets]
        assert owners == ["mgr-a", "mgr-b"]

    def test_planning_does_not_mutate_snapshot(self, make_ticket, managers):
        ticket = make_ticket(due_date=NOW - timedelta(hours=1))
        plan_compliance(NOW, ComplianceSnapshot([ticket], managers))

        assert ticket.assigned_to_id is None
        assert ticket.priority == Priority.MEDIUM
        assert managers[1].open_ticket_count == 1


class TestManualEscalationPlan:
    """Test plan_escalation directly"""

    def test_reason_names_initiator(self, make_ticket, managers):
        ticket = make_ticket(due_date=NOW + timedelta(days=2))
        effects, manager = plan_escalation(ticket, managers, NOW, initiator_id="admin-7")

        assert manager.id == "mgr-free"
        assert effects[0].reason == "manual escalation by admin-7"
        assert "manual escalation by admin-7" in effects[1].message

    def test_no_managers(self, make_ticket):
        assert plan_escalation(make_ticket(), [], NOW) is None
