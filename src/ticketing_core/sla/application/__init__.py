"""
SLA Application Layer
======================

Application layer for the ticket lifecycle engine.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from ticketing_core.sla.application.dto import (
    TicketCreateDTO,
    StatusChangeDTO,
    AssignDTO,
    ManualEscalationDTO,
    TicketResponse,
    TicketSLAResponse,
    ComplianceReport,
    ComplianceSummaryResponse,
    AutoCloseResponse,
)
from ticketing_core.sla.application.services import (
    ComplianceMonitor,
    NotificationService,
    SLAService,
    TicketService,
    ITicketRepository,
    IStaffRepository,
    INotificationRepository,
    INotificationDispatcher,
    ICalendarConfigProvider,
)

__all__ = [
    # DTOs
    "TicketCreateDTO",
    "StatusChangeDTO",
    "AssignDTO",
    "ManualEscalationDTO",
    "TicketResponse",
    "TicketSLAResponse",
    "ComplianceReport",
    "ComplianceSummaryResponse",
    "AutoCloseResponse",
    # Services
    "ComplianceMonitor",
    "NotificationService",
    "SLAService",
    "TicketService",
    # Repository Interfaces
    "ITicketRepository",
    "IStaffRepository",
    "INotificationRepository",
    "INotificationDispatcher",
    "ICalendarConfigProvider",
]
