"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the ticket lifecycle.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ticketing_core.infrastructure.database import Base
from ticketing_core.config import Priority, SLALevel, TicketStatus, UserRole


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    """
    Database model for user accounts.

    Maps to the 'users' table. Only the columns the lifecycle engine reads.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=UserRole.END_USER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ticket_number: Mapped[str] = mapped_column(String(50), nullable=False, default="", index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Lifecycle attributes
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.NEW.value, index=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM.value)
    sla_level: Mapped[str] = mapped_column(String(50), nullable=False, default=SLALevel.STANDARD.value)

    # Ownership
    requester_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    assigned_to_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # Classification
    category_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    subcategory_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class NotificationModel(Base):
    """
    Database model for per-user notification records.

    Maps to the 'notifications' table.
    """
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    ticket_id: Mapped[str] = mapped_column(String(36), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_notifications_ticket_type_created", "ticket_id", "type", "created_at"),
    )


class NotificationClaimModel(Base):
    """
    Last time a deduplicated alert kind was raised for a ticket.

    Maps to the 'notification_claims' table. One row per (ticket, kind);
    claiming is a conditional upsert so concurrent passes cannot both win.
    """
    __tablename__ = "notification_claims"

    ticket_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(50), primary_key=True)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
