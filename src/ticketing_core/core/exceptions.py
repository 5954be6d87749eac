"""
Core Exceptions
================

Error hierarchy for the ticket lifecycle engine.

Services raise these; the API layer maps them to status codes:
- ResourceNotFoundException -> 404
- DomainException (rule violations) -> 400
- anything else under ApplicationException -> 500

ConfigurationException subclasses are raised at startup and abort it.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """A ticket rule was violated; the request is rejected unchanged."""


class RepositoryException(ApplicationException):
    """Persistence failed."""


class ResourceNotFoundException(ApplicationException):
    """A referenced record does not exist."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class TicketNotFound(ResourceNotFoundException):
    def __init__(self, ticket_id: str):
        super().__init__("Ticket", ticket_id, {"ticket_id": ticket_id})


class ConfigurationException(ApplicationException):
    """Startup configuration is unusable."""


class CalendarMisconfiguration(ConfigurationException):
    """Business calendar cannot produce working time."""


class InvalidTransition(DomainException):
    """Requested status change is not allowed from the current status."""

    def __init__(self, ticket_id: str, current: str, requested: str):
        self.ticket_id = ticket_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid status transition from {current} to {requested}",
            {"ticket_id": ticket_id, "current": current, "requested": requested}
        )


class MissingResolution(DomainException):
    """RESOLVED was requested without resolution text."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(
            "Resolution is required when resolving a ticket",
            {"ticket_id": ticket_id}
        )


class InvalidAssignee(DomainException):
    """Assignment target is not an active staff account."""

    def __init__(self, assignee_id: str, reason: str):
        self.assignee_id = assignee_id
        self.reason = reason
        super().__init__(
            f"Cannot assign to {assignee_id}: {reason}",
            {"assignee_id": assignee_id, "reason": reason}
        )
