"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the lifecycle engine:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and calendar YAML loading
- External: Notification webhook and compliance scheduler
"""

from ticketing_core.sla.infrastructure.models import (
    UserModel,
    TicketModel,
    NotificationModel,
    NotificationClaimModel,
)
from ticketing_core.sla.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyStaffRepository,
    SQLAlchemyNotificationRepository,
    YAMLConfigProvider,
)
from ticketing_core.sla.infrastructure.external import (
    CircuitBreaker,
    ComplianceScheduler,
    WebhookNotificationDispatcher,
)

__all__ = [
    "UserModel",
    "TicketModel",
    "NotificationModel",
    "NotificationClaimModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyStaffRepository",
    "SQLAlchemyNotificationRepository",
    "YAMLConfigProvider",
    "CircuitBreaker",
    "ComplianceScheduler",
    "WebhookNotificationDispatcher",
]
