"""
Test SQLAlchemy repositories against a SQLite file database
"""
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ticketing_core.config import NotificationType, Priority, SLALevel, TicketStatus, UserRole
from ticketing_core.core import RepositoryException
from ticketing_core.infrastructure.database import Base
from ticketing_core.sla.domain import Notification, Ticket
from ticketing_core.sla.infrastructure import (
    SQLAlchemyNotificationRepository,
    SQLAlchemyStaffRepository,
    SQLAlchemyTicketRepository,
    TicketModel,
    UserModel,
)

UTC = timezone.utc
NOW = datetime(2024, 3, 4, 12, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


def ticket(ticket_id: str, **overrides) -> Ticket:
    fields = {
        "id": ticket_id,
        "ticket_number": f"TCK-{ticket_id}",
        "title": "Laptop will not boot",
        "requester_id": "user-1",
        "status": TicketStatus.OPEN,
        "priority": Priority.HIGH,
        "sla_level": SLALevel.PREMIUM,
        "created_at": NOW - timedelta(days=1),
        "updated_at": NOW - timedelta(days=1),
        "due_date": NOW + timedelta(hours=3),
    }
    fields.update(overrides)
    return Ticket(**fields)


class TestTicketRepository:
    """Test SQLAlchemyTicketRepository"""

    @pytest.mark.asyncio
    async def test_save_and_load_round_trip(self, session_maker):
        repo = SQLAlchemyTicketRepository(session_maker)
        original = ticket("t-1", category_id="hardware")

        await repo.save_ticket(original)
        loaded = await repo.load_ticket("t-1")

        assert loaded == original
        assert loaded.due_date.tzinfo is not None

    @pytest.mark.asyncio
    async def test_save_updates_existing(self, session_maker):
        repo = SQLAlchemyTicketRepository(session_maker)
        await repo.save_ticket(ticket("t-1"))

        await repo.save_ticket(ticket("t-1", status=TicketStatus.IN_PROGRESS, updated_at=NOW))

        loaded = await repo.load_ticket("t-1")
        assert loaded.status == TicketStatus.IN_PROGRESS
        assert loaded.updated_at == NOW

    @pytest.mark.asyncio
    async def test_driver_errors_become_repository_errors(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        repo = SQLAlchemyTicketRepository(async_sessionmaker(engine, expire_on_commit=False))

        try:
            with pytest.raises(RepositoryException):
                await repo.save_ticket(ticket("t-1"))
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_load_missing(self, session_maker):
        assert await SQLAlchemyTicketRepository(session_maker).load_ticket("nope") is None

    @pytest.mark.asyncio
    async def test_open_tickets_exclude_terminal(self, session_maker):
        repo = SQLAlchemyTicketRepository(session_maker)
        await repo.save_ticket(ticket("open"))
        await repo.save_ticket(ticket("resolved", status=TicketStatus.RESOLVED))
        await repo.save_ticket(ticket("closed", status=TicketStatus.CLOSED, closed_at=NOW))
        await repo.save_ticket(ticket("reopened", status=TicketStatus.REOPENED))

        open_ids = {t.id for t in await repo.load_open_tickets()}
        resolved = await repo.list_tickets([TicketStatus.RESOLVED])

        assert open_ids == {"open", "reopened"}
        assert [t.id for t in resolved] == ["resolved"]


class TestStaffRepository:
    """Test SQLAlchemyStaffRepository"""

    @pytest.mark.asyncio
    async def test_counts_open_tickets_per_staff_and_category(self, session_maker):
        async with session_maker() as session:
            session.add_all([
                UserModel(id="agent-1", email="a1@example.com", role=UserRole.SUPPORT_STAFF.value,
                          created_at=NOW - timedelta(days=100)),
                UserModel(id="mgr-1", email="m1@example.com", role=UserRole.SUPPORT_MANAGER.value,
                          is_active=False, created_at=NOW - timedelta(days=50)),
                UserModel(id="user-1", email="u1@example.com", role=UserRole.END_USER.value,
                          created_at=NOW - timedelta(days=10)),
            ])
            await session.commit()

        tickets = SQLAlchemyTicketRepository(session_maker)
        await tickets.save_ticket(ticket("t-1", assigned_to_id="agent-1", category_id="net", subcategory_id="vpn"))
        await tickets.save_ticket(ticket("t-2", assigned_to_id="agent-1", category_id="net", subcategory_id="vpn"))
        await tickets.save_ticket(ticket("t-3", assigned_to_id="agent-1"))
        await tickets.save_ticket(ticket("t-4", assigned_to_id="agent-1", status=TicketStatus.CLOSED, closed_at=NOW))

        staff = await SQLAlchemyStaffRepository(session_maker).load_staff_candidates(
            [UserRole.SUPPORT_STAFF, UserRole.SUPPORT_MANAGER]
        )
        by_id = {s.id: s for s in staff}

        assert set(by_id) == {"agent-1", "mgr-1"}
        assert by_id["agent-1"].open_ticket_count == 3
        assert by_id["agent-1"].load_for("net/vpn") == 2
        assert by_id["mgr-1"].open_ticket_count == 0
        assert by_id["mgr-1"].active is False


class TestNotificationRepository:
    """Test alert claims and notification records"""

    @pytest.mark.asyncio
    async def test_claim_is_exclusive_within_window(self, session_maker):
        repo = SQLAlchemyNotificationRepository(session_maker)
        window = int(timedelta(hours=2).total_seconds())

        assert await repo.try_claim("t-1", NotificationType.SLA_WARNING, window, NOW) is True
        assert await repo.try_claim("t-1", NotificationType.SLA_WARNING, window, NOW + timedelta(minutes=30)) is False

    @pytest.mark.asyncio
    async def test_claims_are_per_ticket_and_kind(self, session_maker):
        repo = SQLAlchemyNotificationRepository(session_maker)
        window = 3600

        assert await repo.try_claim("t-1", NotificationType.SLA_WARNING, window, NOW) is True
        assert await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, NOW) is True
        assert await repo.try_claim("t-2", NotificationType.SLA_WARNING, window, NOW) is True

    @pytest.mark.asyncio
    async def test_claim_reopens_after_window(self, session_maker):
        repo = SQLAlchemyNotificationRepository(session_maker)
        window = 3600

        assert await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, NOW) is True
        assert await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, NOW + timedelta(hours=2)) is True
        assert await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, NOW + timedelta(hours=2, minutes=5)) is False

    @pytest.mark.asyncio
    async def test_released_claim_can_be_taken_again(self, session_maker):
        repo = SQLAlchemyNotificationRepository(session_maker)
        window = 3600

        assert await repo.try_claim("t-1", NotificationType.SLA_WARNING, window, NOW) is True
        await repo.release_claim("t-1", NotificationType.SLA_WARNING, NOW)

        assert await repo.try_claim("t-1", NotificationType.SLA_WARNING, window, NOW + timedelta(minutes=15)) is True

    @pytest.mark.asyncio
    async def test_release_keeps_a_newer_claim(self, session_maker):
        repo = SQLAlchemyNotificationRepository(session_maker)
        window = 3600
        later = NOW + timedelta(hours=2)

        await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, NOW)
        await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, later)
        await repo.release_claim("t-1", NotificationType.SLA_BREACH, NOW)

        assert await repo.try_claim("t-1", NotificationType.SLA_BREACH, window, later + timedelta(minutes=5)) is False

    @pytest.mark.asyncio
    async def test_create_assigns_id(self, session_maker):
        repo = SQLAlchemyNotificationRepository(session_maker)

        saved = await repo.create(Notification(
            id=None,
            user_id="user-1",
            ticket_id="t-1",
            type=NotificationType.SLA_WARNING,
            title="SLA Warning",
            message="Ticket t-1 is approaching its SLA deadline.",
            created_at=NOW,
        ))

        assert saved.id is not None
        assert saved.type == NotificationType.SLA_WARNING
