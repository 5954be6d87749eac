"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Repositories are built from a session factory
and open one session per call, so concurrent compliance tasks never share
a session.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

import yaml
from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing_core.config import (
    NotificationType, Priority, SLALevel, TicketStatus, UserRole, OPEN_STATUSES
)
from ticketing_core.core import CalendarMisconfiguration, RepositoryException
from ticketing_core.infrastructure.database import session_scope
from ticketing_core.shared.infrastructure.logging import get_logger
from ticketing_core.sla.application import (
    ICalendarConfigProvider,
    INotificationRepository,
    IStaffRepository,
    ITicketRepository,
)
from ticketing_core.sla.domain import (
    CalendarConfig,
    Notification,
    StaffCandidate,
    Ticket,
    category_key,
)
from ticketing_core.sla.infrastructure.models import (
    NotificationClaimModel,
    NotificationModel,
    TicketModel,
    UserModel,
)

logger = get_logger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return _aware(value).astimezone(timezone.utc)


def _to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        ticket_number=model.ticket_number,
        title=model.title,
        requester_id=model.requester_id,
        status=TicketStatus(model.status),
        priority=Priority(model.priority),
        sla_level=SLALevel(model.sla_level),
        category_id=model.category_id,
        subcategory_id=model.subcategory_id,
        assigned_to_id=model.assigned_to_id,
        resolution=model.resolution,
        created_at=_aware(model.created_at),
        updated_at=_aware(model.updated_at),
        due_date=_aware(model.due_date),
        closed_at=_aware(model.closed_at),
    )


def _to_model(ticket: Ticket) -> TicketModel:
    return TicketModel(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        title=ticket.title,
        requester_id=ticket.requester_id,
        status=ticket.status.value,
        priority=ticket.priority.value,
        sla_level=ticket.sla_level.value,
        category_id=ticket.category_id,
        subcategory_id=ticket.subcategory_id,
        assigned_to_id=ticket.assigned_to_id,
        resolution=ticket.resolution,
        created_at=_utc(ticket.created_at),
        updated_at=_utc(ticket.updated_at),
        due_date=_utc(ticket.due_date),
        closed_at=_utc(ticket.closed_at),
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def load_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by id."""
        async with self._session_maker() as session:
            model = await session.get(TicketModel, ticket_id)
            return _to_entity(model) if model else None

    async def load_open_tickets(self) -> List[Ticket]:
        """All tickets still counting against their SLA."""
        return await self.list_tickets(OPEN_STATUSES)

    async def list_tickets(self, statuses: Optional[Iterable[TicketStatus]] = None) -> List[Ticket]:
        """List tickets, optionally filtered by status."""
        stmt = select(TicketModel)
        if statuses is not None:
            stmt = stmt.where(TicketModel.status.in_([s.value for s in statuses]))

        # Oldest first keeps pass order stable between ticks
        stmt = stmt.order_by(TicketModel.created_at.asc(), TicketModel.id.asc())

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [_to_entity(m) for m in result.scalars().all()]

    async def save_ticket(self, ticket: Ticket) -> None:
        """Insert or update a ticket."""
        async with session_scope(self._session_maker, "save ticket", ticket_id=ticket.id) as session:
            await session.merge(_to_model(ticket))


class SQLAlchemyStaffRepository(IStaffRepository):
    """
    Staff directory backed by the users and tickets tables.

    Open ticket counts are computed with one grouped query per call.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def load_staff_candidates(
        self,
        roles: Iterable[UserRole],
        category: Optional[str] = None
    ) -> List[StaffCandidate]:
        """Accounts holding any of `roles`, active or not, with their open ticket counts."""
        role_values = [r.value for r in roles]

        async with self._session_maker() as session:
            users = (await session.execute(
                select(UserModel).where(UserModel.role.in_(role_values))
            )).scalars().all()
            if not users:
                return []

            counts_stmt = (
                select(
                    TicketModel.assigned_to_id,
                    TicketModel.category_id,
                    TicketModel.subcategory_id,
                    func.count(TicketModel.id),
                )
                .where(
                    TicketModel.assigned_to_id.in_([u.id for u in users]),
                    TicketModel.status.in_([s.value for s in OPEN_STATUSES]),
                )
                .group_by(
                    TicketModel.assigned_to_id,
                    TicketModel.category_id,
                    TicketModel.subcategory_id,
                )
            )
            rows = (await session.execute(counts_stmt)).all()

        totals: Dict[str, int] = defaultdict(int)
        by_category: Dict[str, Dict[str, int]] = defaultdict(dict)
        for assignee_id, category_id, subcategory_id, count in rows:
            totals[assignee_id] += count
            key = category_key(category_id, subcategory_id)
            if key is not None:
                by_category[assignee_id][key] = by_category[assignee_id].get(key, 0) + count

        return [
            StaffCandidate(
                id=user.id,
                email=user.email,
                active=user.is_active,
                role=UserRole(user.role),
                created_at=_aware(user.created_at),
                open_ticket_count=totals.get(user.id, 0),
                open_tickets_by_category=dict(by_category.get(user.id, {})),
            )
            for user in users
        ]


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SQLAlchemyNotificationRepository(INotificationRepository):
    """
    Notification records plus the (ticket, kind) claim table used to
    deduplicate alerts.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def try_claim(
        self,
        ticket_id: str,
        kind: NotificationType,
        window_seconds: int,
        now: datetime
    ) -> bool:
        """
        Claim (ticket, kind) unless it was claimed within the window.

        A single INSERT ... ON CONFLICT DO UPDATE ... WHERE statement: the
        row comes back only when it was inserted or its previous claim had
        expired, so overlapping passes cannot both win.
        """
        now = _utc(now)
        cutoff = now - timedelta(seconds=window_seconds)

        async with session_scope(
            self._session_maker, "claim alert", ticket_id=ticket_id, kind=kind.value
        ) as session:
            dialect = session.bind.dialect.name
            insert = _DIALECT_INSERTS.get(dialect)
            if insert is None:
                raise RepositoryException(f"Alert deduplication is not supported on {dialect}")

            stmt = insert(NotificationClaimModel).values(
                ticket_id=ticket_id, kind=kind.value, claimed_at=now
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["ticket_id", "kind"],
                set_={"claimed_at": stmt.excluded.claimed_at},
                where=NotificationClaimModel.claimed_at < cutoff,
            ).returning(NotificationClaimModel.ticket_id)

            claimed = (await session.execute(stmt)).first() is not None
        return claimed

    async def release_claim(self, ticket_id: str, kind: NotificationType, claimed_at: datetime) -> None:
        """Delete the claim only if it is still the one taken at `claimed_at`."""
        stmt = delete(NotificationClaimModel).where(
            NotificationClaimModel.ticket_id == ticket_id,
            NotificationClaimModel.kind == kind.value,
            NotificationClaimModel.claimed_at == _utc(claimed_at),
        )
        async with session_scope(
            self._session_maker, "release alert claim", ticket_id=ticket_id, kind=kind.value
        ) as session:
            await session.execute(stmt)

    async def create(self, notification: Notification) -> Notification:
        """Create new notification record."""
        model = NotificationModel(
            id=notification.id or str(uuid4()),
            user_id=notification.user_id,
            ticket_id=notification.ticket_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            created_at=_utc(notification.created_at),
        )

        async with session_scope(
            self._session_maker, "record notification", ticket_id=notification.ticket_id
        ) as session:
            session.add(model)

        return Notification(
            id=model.id,
            user_id=notification.user_id,
            ticket_id=notification.ticket_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            created_at=notification.created_at,
        )


class YAMLConfigProvider(ICalendarConfigProvider):
    """
    Business calendar configuration loaded from YAML once, at start-up.

    Expected layout:

        business_hours:
          start: 9
          end: 17
          days: [0, 1, 2, 3, 4]
          timezone: Europe/London
        holidays:
          - date: 2024-12-25
            name: Christmas Day
    """

    def __init__(self, config_path: Path):
        self._config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> CalendarConfig:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            logger.warning(
                "Calendar config not found, using default business hours",
                extra={"path": str(self._config_path)}
            )
            return CalendarConfig()

        try:
            with open(self._config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CalendarMisconfiguration(
                f"Invalid calendar YAML: {e}", {"path": str(self._config_path)}
            ) from e

        try:
            config = CalendarConfig(
                **(data.get("business_hours") or {}),
                holidays=data.get("holidays") or [],
            )
        except (TypeError, ValidationError) as e:
            raise CalendarMisconfiguration(
                f"Invalid calendar configuration: {e}", {"path": str(self._config_path)}
            ) from e

        logger.info(
            "Calendar config loaded",
            extra={
                "path": str(self._config_path),
                "start": config.start,
                "end": config.end,
                "timezone": config.timezone,
                "holidays": len(config.holidays),
            }
        )
        return config

    def get_config(self) -> CalendarConfig:
        """Get the business calendar configuration."""
        return self._config
