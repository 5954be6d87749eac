"""
SLA Domain Layer
================

Domain layer for the ticket lifecycle and SLA enforcement engine.

Contains:
- Entities: Ticket, StaffCandidate, Notification
- Value Objects: CalendarConfig, Holiday, BusinessCalendar, SLACalculator
- Domain Services: TicketWorkflow, AssignmentBalancer, compliance planning

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticketing_core.sla.domain.entities import Ticket, StaffCandidate, Notification, utcnow
from ticketing_core.sla.domain.value_objects import (
    BusinessCalendar,
    CalendarConfig,
    Holiday,
    SLACalculator,
)
from ticketing_core.sla.domain.workflow import TicketWorkflow, TRANSITIONS, escalated_priority
from ticketing_core.sla.domain.assignment import AssignmentBalancer, category_key
from ticketing_core.sla.domain.compliance import (
    CompliancePlan,
    CompliancePolicy,
    ComplianceSnapshot,
    NotifyEffect,
    SaveTicketEffect,
    is_ticket_escalated,
    plan_compliance,
    plan_escalation,
)

__all__ = [
    # Entities
    "Ticket",
    "StaffCandidate",
    "Notification",
    "utcnow",
    # Value Objects
    "BusinessCalendar",
    "CalendarConfig",
    "Holiday",
    "SLACalculator",
    # Domain Services
    "TicketWorkflow",
    "TRANSITIONS",
    "escalated_priority",
    "AssignmentBalancer",
    "category_key",
    "CompliancePlan",
    "CompliancePolicy",
    "ComplianceSnapshot",
    "NotifyEffect",
    "SaveTicketEffect",
    "is_ticket_escalated",
    "plan_compliance",
    "plan_escalation",
]
