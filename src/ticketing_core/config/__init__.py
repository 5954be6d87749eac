"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticketing-core", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tickets",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Business Calendar ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to the business calendar YAML file"
    )

    # ========== Compliance Monitor ==========
    compliance_interval_minutes: int = Field(
        default=15,
        description="Minutes between compliance passes (0 disables the scheduler)",
        ge=0
    )
    compliance_max_concurrency: int = Field(
        default=8,
        description="Tickets processed concurrently within one pass",
        ge=1
    )
    warning_window_hours: float = Field(
        default=2.0,
        description="Look-ahead window for SLA warnings",
        gt=0
    )
    warning_dedup_hours: float = Field(
        default=2.0,
        description="Suppress repeat SLA warnings within this window",
        gt=0
    )
    breach_dedup_hours: float = Field(
        default=24.0,
        description="Suppress repeat SLA breach alerts within this window",
        gt=0
    )

    # ========== Ticket Lifecycle ==========
    auto_assign_enabled: bool = Field(
        default=False,
        description="Assign new tickets to the least-loaded staff member"
    )
    auto_close_enabled: bool = Field(
        default=False,
        description="Close resolved tickets after auto_close_days"
    )
    auto_close_days: int = Field(
        default=7,
        description="Days a ticket may stay resolved before auto-close",
        ge=1
    )

    # ========== Notification Webhook ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook URL receiving notification payloads"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    NEW = "NEW"
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REOPENED = "REOPENED"


class Priority(str, Enum):
    """Ticket priority levels, declared lowest to highest."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class SLALevel(str, Enum):
    """Service level commitments."""
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"
    CRITICAL_SUPPORT = "CRITICAL_SUPPORT"


class UserRole(str, Enum):
    """Account roles."""
    END_USER = "END_USER"
    SUPPORT_STAFF = "SUPPORT_STAFF"
    SUPPORT_MANAGER = "SUPPORT_MANAGER"
    ADMIN = "ADMIN"


class NotificationType(str, Enum):
    """Notification kinds emitted by the lifecycle engine."""
    SLA_WARNING = "SLA_WARNING"
    SLA_BREACH = "SLA_BREACH"
    TICKET_ESCALATED = "TICKET_ESCALATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_STATUS_CHANGED = "TICKET_STATUS_CHANGED"


# ========== Lists for validation ==========

PRIORITY_SCALE = [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]
TERMINAL_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
OPEN_STATUSES = frozenset(set(TicketStatus) - TERMINAL_STATUSES)
STAFF_ROLES = frozenset({UserRole.SUPPORT_STAFF, UserRole.SUPPORT_MANAGER, UserRole.ADMIN})
AUTO_ASSIGN_ROLES = frozenset({UserRole.SUPPORT_STAFF, UserRole.SUPPORT_MANAGER})
ESCALATED_ROLES = frozenset({UserRole.SUPPORT_MANAGER, UserRole.ADMIN})
