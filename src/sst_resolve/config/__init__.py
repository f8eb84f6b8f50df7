"""
Configuration Module
====================

Environment-driven settings plus the enums shared by every bounded
context: ticket statuses, roles, comment visibility and outbox event types.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings, read from the environment and an optional .env file."""

    # ========== Application ==========
    app_name: str = Field(default="sst-resolve", description="Application name")
    app_version: str = Field(default="2.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/sst_resolve",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    sla_evaluation_interval: int = Field(
        default=300,
        description="Seconds between breach sweeps (0 disables the scheduler)",
        ge=0
    )
    sla_reminder_interval: int = Field(
        default=3600,
        description="Seconds between reminder sweeps (0 disables them)",
        ge=0
    )
    policy_cache_ttl_seconds: float = Field(
        default=60.0,
        description="TTL for resolved SLA policies",
        ge=0
    )
    escalation_reason_max_length: int = Field(
        default=2000,
        description="Maximum length of a free-text escalation reason",
        ge=1
    )

    # ========== Outbox ==========
    outbox_poll_interval: int = Field(
        default=5,
        description="Seconds between outbox polls",
        ge=1
    )
    outbox_batch_size: int = Field(default=10, description="Events per outbox batch", ge=1)
    outbox_max_attempts: int = Field(default=3, description="Delivery attempts per event", ge=1)

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#tickets",
        description="Default Slack channel for ticket notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    ticket_base_url: str = Field(
        default="https://resolve.example.edu/tickets",
        description="Base URL used to link tickets from notifications"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
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
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    AWAITING_STUDENT_RESPONSE = "awaiting_student"
    REOPENED = "reopened"
    ESCALATED = "escalated"
    RESOLVED = "resolved"

    @property
    def is_terminal(self) -> bool:
        return self is TicketStatus.RESOLVED


# Legacy and display names still found in stored data and client payloads
STATUS_ALIASES = {
    "awaiting_student_response": TicketStatus.AWAITING_STUDENT_RESPONSE,
    "closed": TicketStatus.RESOLVED,
}


def canonical_status(value: Optional[str]) -> Optional[TicketStatus]:
    """Map a stored or user-supplied status string to its canonical status."""
    if not value:
        return None
    normalized = value.strip().lower()
    try:
        return TicketStatus(normalized)
    except ValueError:
        return STATUS_ALIASES.get(normalized)


class UserRole(str, Enum):
    """Roles an actor can hold."""
    STUDENT = "student"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    COMMITTEE = "committee"
    SYSTEM = "system"           # scheduled jobs


ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})


class CommentVisibility(str, Enum):
    """Who can see a comment."""
    STUDENT_VISIBLE = "student_visible"
    INTERNAL_NOTE = "internal_note"
    SUPER_ADMIN_NOTE = "super_admin_note"


class EventType(str, Enum):
    """Outbox event types consumed by notification workers."""
    TICKET_CREATED = "ticket.created"
    ACKNOWLEDGED = "ticket.acknowledged"
    COMMENT_ADDED = "ticket.comment_added"
    STATUS_CHANGED = "ticket.status_changed"
    ESCALATED_MANUAL = "ticket.escalated.manual"
    ESCALATED_AUTO = "ticket.escalated.auto"
    REASSIGNED = "ticket.reassigned"
    TAT_SET = "ticket.tat_set"
    RATED = "ticket.rated"
    TAT_REMINDER = "ticket.reminder.tat_due"
    ACK_REMINDER = "ticket.reminder.unacknowledged"


class EscalationTrigger(str, Enum):
    """What caused an escalation."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class SLAState(str, Enum):
    """SLA status states."""
    NO_SLA = "no_sla"
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"


SUPER_ADMIN_TIER = "super_admin"
SUPER_ADMIN_URGENT_TIER = "super_admin_urgent"

# Escalations that exhaust the chain at or beyond this level are flagged urgent
URGENT_ESCALATION_LEVEL = 2

RATING_MIN = 1
RATING_MAX = 5
