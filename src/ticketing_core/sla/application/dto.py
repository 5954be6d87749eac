"""
SLA Application DTOs
=====================

Data Transfer Objects for the lifecycle API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ticketing_core.config import Priority, SLALevel, TicketStatus
from ticketing_core.sla.domain import Ticket


# ========== Request DTOs ==========

class TicketCreateDTO(BaseModel):
    """DTO for opening a ticket."""
    requester_id: str = Field(..., min_length=1, description="Requesting user")
    title: str = Field(..., min_length=1, max_length=500, description="Ticket title")
    ticket_number: Optional[str] = Field(None, description="Human-facing ticket number")
    priority: Priority = Field(default=Priority.MEDIUM, description="Ticket priority")
    sla_level: SLALevel = Field(default=SLALevel.STANDARD, description="SLA tier")
    category_id: Optional[str] = Field(None, description="Category")
    subcategory_id: Optional[str] = Field(None, description="Subcategory")
    assigned_to_id: Optional[str] = Field(None, description="Explicit assignee")


class StatusChangeDTO(BaseModel):
    """DTO for a status transition."""
    status: TicketStatus = Field(..., description="Target status")
    resolution: Optional[str] = Field(None, description="Required when resolving")


class AssignDTO(BaseModel):
    """DTO for assigning a ticket."""
    assignee_id: str = Field(..., min_length=1, description="Staff account to assign")


class ManualEscalationDTO(BaseModel):
    """DTO for an administrator-initiated escalation."""
    initiator_id: str = Field(..., min_length=1, description="Who requested the escalation")


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Response model for a ticket."""
    id: str
    ticket_number: str
    title: str
    status: TicketStatus
    priority: Priority
    sla_level: SLALevel
    requester_id: str
    assigned_to_id: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    resolution: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    due_date: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            title=ticket.title,
            status=ticket.status,
            priority=ticket.priority,
            sla_level=ticket.sla_level,
            requester_id=ticket.requester_id,
            assigned_to_id=ticket.assigned_to_id,
            category_id=ticket.category_id,
            subcategory_id=ticket.subcategory_id,
            resolution=ticket.resolution,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            due_date=ticket.due_date,
            closed_at=ticket.closed_at,
        )


class TicketSLAResponse(BaseModel):
    """SLA position of a single ticket."""
    ticket_id: str
    status: TicketStatus
    priority: Priority
    sla_level: SLALevel
    due_date: Optional[datetime] = Field(None, description="Resolution deadline")
    is_overdue: bool = Field(..., description="Open and past its deadline")
    remaining_seconds: Optional[float] = Field(None, description="Seconds until the deadline (negative when overdue)")
    resolution_budget_hours: int = Field(..., description="Business hours allowed for resolution")
    response_budget_hours: int = Field(..., description="Business hours allowed for first response")


class ComplianceReport(BaseModel):
    """Outcome of one compliance pass."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = Field(default=False, description="Another pass was already running")
    tickets_scanned: int = 0
    warnings_sent: int = 0
    breaches_sent: int = 0
    escalations: int = 0
    duplicates_suppressed: int = 0
    unassignable: int = Field(default=0, description="Breached tickets with no manager available")
    failures: int = 0


class ComplianceSummaryResponse(BaseModel):
    """Aggregate SLA position over all tickets."""
    open_tickets: int
    overdue_tickets: int
    compliance_percentage: int = Field(..., ge=0, le=100)


class AutoCloseResponse(BaseModel):
    """Result of closing long-resolved tickets."""
    closed: int
