"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from ticketing_core.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ResourceNotFoundException,
    ConfigurationException,
    CalendarMisconfiguration,
    TicketNotFound,
    InvalidTransition,
    MissingResolution,
    InvalidAssignee,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "CalendarMisconfiguration",
    "TicketNotFound",
    "InvalidTransition",
    "MissingResolution",
    "InvalidAssignee",
]
