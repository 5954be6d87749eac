"""
Pytest configuration and fixtures
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import pytest

from ticketing_core.config import (
    NotificationType, Priority, SLALevel, TicketStatus, UserRole
)
from ticketing_core.sla.application import (
    INotificationDispatcher,
    INotificationRepository,
    IStaffRepository,
    ITicketRepository,
    NotificationService,
)
from ticketing_core.sla.domain import (
    BusinessCalendar,
    CalendarConfig,
    Notification,
    SLACalculator,
    StaffCandidate,
    Ticket,
)

UTC = timezone.utc

# Monday 2024-03-04 08:00 UTC, one hour before opening.
MONDAY_0800 = datetime(2024, 3, 4, 8, 0, tzinfo=UTC)


class InMemoryTicketRepository(ITicketRepository):
    """Ticket store backed by a dict"""

    def __init__(self, tickets: Iterable[Ticket] = ()):
        self.tickets: Dict[str, Ticket] = {t.id: t for t in tickets}
        self.saved: List[Ticket] = []

    async def load_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return self.tickets.get(ticket_id)

    async def load_open_tickets(self) -> List[Ticket]:
        return [t for t in self.tickets.values() if t.is_open]

    async def list_tickets(self, statuses=None) -> List[Ticket]:
        if statuses is None:
            return list(self.tickets.values())
        wanted = set(statuses)
        return [t for t in self.tickets.values() if t.status in wanted]

    async def save_ticket(self, ticket: Ticket) -> None:
        self.tickets[ticket.id] = ticket
        self.saved.append(ticket)


class InMemoryStaffRepository(IStaffRepository):
    """Staff directory backed by a list"""

    def __init__(self, staff: Iterable[StaffCandidate] = ()):
        self.staff = list(staff)

    async def load_staff_candidates(self, roles, category=None) -> List[StaffCandidate]:
        roles = set(roles)
        return [s for s in self.staff if s.role in roles]


class InMemoryNotificationRepository(INotificationRepository):
    """Notification records plus last-claim times per (ticket, kind)"""

    def __init__(self):
        self.notifications: List[Notification] = []
        self.claims: Dict[tuple, datetime] = {}

    async def try_claim(self, ticket_id, kind, window_seconds, now) -> bool:
        last = self.claims.get((ticket_id, kind))
        if last is not None and last >= now - timedelta(seconds=window_seconds):
            return False
        self.claims[(ticket_id, kind)] = now
        return True

    async def release_claim(self, ticket_id, kind, claimed_at) -> None:
        if self.claims.get((ticket_id, kind)) == claimed_at:
            del self.claims[(ticket_id, kind)]

    async def create(self, notification: Notification) -> Notification:
        self.notifications.append(notification)
        return notification

    def of_kind(self, kind: NotificationType) -> List[Notification]:
        return [n for n in self.notifications if n.type == kind]


class RecordingDispatcher(INotificationDispatcher):
    """Dispatcher that remembers every delivery"""

    def __init__(self):
        self.sent: List[tuple] = []

    async def notify(self, user_id: str, kind: NotificationType, payload: Mapping[str, Any]) -> None:
        self.sent.append((user_id, kind, dict(payload)))


@pytest.fixture
def calendar() -> BusinessCalendar:
    """09:00-17:00 Monday to Friday, UTC"""
    return BusinessCalendar(CalendarConfig())


@pytest.fixture
def calculator(calendar) -> SLACalculator:
    return SLACalculator(calendar)


@pytest.fixture
def make_ticket() -> Callable[..., Ticket]:
    """Factory for tickets opened a day before MONDAY_0800"""
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> Ticket:
        n = next(counter)
        created = overrides.pop("created_at", MONDAY_0800 - timedelta(days=1))
        fields = {
            "id": f"ticket-{n}",
            "ticket_number": f"TCK-{n:04d}",
            "title": f"Ticket {n}",
            "requester_id": "requester-1",
            "status": TicketStatus.OPEN,
            "priority": Priority.MEDIUM,
            "sla_level": SLALevel.STANDARD,
            "created_at": created,
            "updated_at": created,
            "due_date": MONDAY_0800 + timedelta(days=3),
        }
        fields.update(overrides)
        return Ticket(**fields)

    return _make


@pytest.fixture
def make_staff() -> Callable[..., StaffCandidate]:
    """Factory for staff accounts"""

    def _make(
        staff_id: str,
        role: UserRole = UserRole.SUPPORT_STAFF,
        open_tickets: int = 0,
        active: bool = True,
        created_at: datetime = datetime(2023, 1, 1, tzinfo=UTC),
        by_category: Optional[Dict[str, int]] = None
    ) -> StaffCandidate:
        return StaffCandidate(
            id=staff_id,
            active=active,
            role=role,
            created_at=created_at,
            open_ticket_count=open_tickets,
            open_tickets_by_category=by_category or {},
        )

    return _make


@pytest.fixture
def notification_repo() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def notification_service(notification_repo, dispatcher) -> NotificationService:
    return NotificationService(notification_repo, dispatcher)


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def staff_repo() -> InMemoryStaffRepository:
    return InMemoryStaffRepository()
