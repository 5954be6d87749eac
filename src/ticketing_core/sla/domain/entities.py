"""
SLA Domain Entities
====================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Tickets are
frozen: every lifecycle change produces a new instance, so a rejected
operation can never leave a half-modified ticket behind.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

from ticketing_core.config import (
    Priority, SLALevel, TicketStatus, UserRole, NotificationType,
    TERMINAL_STATUSES, ESCALATED_ROLES, STAFF_ROLES
)


def utcnow() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Ticket:
    """
    Ticket entity representing a support ticket.

    Only TicketWorkflow produces modified copies of a ticket; other code
    reads it.
    """

    # Core attributes
    id: str
    requester_id: str
    status: TicketStatus
    priority: Priority
    sla_level: SLALevel

    # Timestamps
    created_at: datetime
    updated_at: datetime
    due_date: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    # Ownership and outcome
    assigned_to_id: Optional[str] = None
    resolution: Optional[str] = None

    # Descriptive
    ticket_number: str = ""
    title: str = ""
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @property
    def label(self) -> str:
        """Human-facing identifier used in messages and logs."""
        return self.ticket_number or self.id

    @property
    def is_open(self) -> bool:
        """Check if ticket still counts against its SLA."""
        return self.status not in TERMINAL_STATUSES


@dataclass(frozen=True)
class StaffCandidate:
    """
    Read-only projection of a staff account used for assignment.

    `open_ticket_count` is the total of the account's unresolved tickets;
    `open_tickets_by_category` breaks the same tickets down by category key.
    """

    id: str
    active: bool
    role: UserRole
    created_at: datetime
    open_ticket_count: int = 0
    open_tickets_by_category: Mapping[str, int] = field(default_factory=dict)
    email: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_escalation_owner(self) -> bool:
        """Owning a ticket in this role means it is already escalated."""
        return self.role in ESCALATED_ROLES

    def load_for(self, category_key: Optional[str]) -> int:
        """Open ticket count for a category, or overall when no key is given."""
        if category_key is None:
            return self.open_ticket_count
        return self.open_tickets_by_category.get(category_key, 0)


@dataclass(frozen=True)
class Notification:
    """A notification record addressed to one user."""

    id: Optional[str]
    user_id: str
    ticket_id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime
