"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of escalation rules.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from sst_resolve.infrastructure.database import Base


class EscalationRuleModel(Base):
    """
    Database model for EscalationRule.

    Maps to the 'escalation_rules' table. A null scope is the domain-wide
    fallback for its level.
    """
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    domain: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    scope: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    tat_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=48)
    notify_channel: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("domain", "scope", "level", name="uq_escalation_rules_domain_scope_level"),
        # NULL scopes compare distinct, so domain-wide rules need their own index
        Index(
            "uq_escalation_rules_domain_level_wide",
            "domain",
            "level",
            unique=True,
            postgresql_where=text("scope IS NULL"),
            sqlite_where=text("scope IS NULL"),
        ),
        CheckConstraint("level >= 1", name="ck_escalation_rules_level_positive"),
    )
