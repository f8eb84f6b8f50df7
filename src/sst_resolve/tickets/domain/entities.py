"""
Ticket Domain Entities
=======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business data and small invariants and are free of infrastructure
concerns. Status changes go through ``TicketStateMachine``, not through
direct assignment in service code.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sst_resolve.config import ADMIN_ROLES, CommentVisibility, TicketStatus, UserRole


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_uuid(value: Any) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    return UUID(str(value))


@dataclass(frozen=True)
class Actor:
    """
    The identity performing an operation.

    ``user_id`` is None only for the scheduler's system actor.
    """
    user_id: Optional[UUID]
    role: UserRole
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    @property
    def is_system(self) -> bool:
        return self.role == UserRole.SYSTEM

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=None, role=UserRole.SYSTEM, name="system")


@dataclass
class Comment:
    """One entry of the append-only comment log."""
    text: str
    author_id: Optional[UUID]
    author_role: UserRole
    created_at: datetime
    visibility: CommentVisibility = CommentVisibility.STUDENT_VISIBLE

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "author_id": str(self.author_id) if self.author_id else None,
            "author_role": self.author_role.value,
            "created_at": _iso(self.created_at),
            "visibility": self.visibility.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Comment":
        return cls(
            text=data.get("text", ""),
            author_id=_parse_uuid(data.get("author_id")),
            author_role=UserRole(data.get("author_role", UserRole.STUDENT.value)),
            created_at=_parse_dt(data["created_at"]),
            visibility=CommentVisibility(
                data.get("visibility", CommentVisibility.STUDENT_VISIBLE.value)
            ),
        )


@dataclass
class TATExtension:
    """Audit record of a turnaround-time extension."""
    previous_tat: Optional[str]
    new_tat: str
    previous_due_at: Optional[datetime]
    new_due_at: datetime
    extended_at: datetime
    extended_by: Optional[UUID]

    def to_dict(self) -> dict:
        return {
            "previous_tat": self.previous_tat,
            "new_tat": self.new_tat,
            "previous_due_at": _iso(self.previous_due_at),
            "new_due_at": _iso(self.new_due_at),
            "extended_at": _iso(self.extended_at),
            "extended_by": str(self.extended_by) if self.extended_by else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TATExtension":
        return cls(
            previous_tat=data.get("previous_tat"),
            new_tat=data["new_tat"],
            previous_due_at=_parse_dt(data.get("previous_due_at")),
            new_due_at=_parse_dt(data["new_due_at"]),
            extended_at=_parse_dt(data["extended_at"]),
            extended_by=_parse_uuid(data.get("extended_by")),
        )


# Keys the metadata document owns; everything else is passed through untouched
_METADATA_KEYS = frozenset({
    "comments", "slack_thread_ts", "slack_channel", "email_message_id",
    "tat", "tat_date", "tat_set_at", "tat_set_by", "tat_extensions", "forward_count",
    "tat_reminded_on", "ack_reminded_at",
})


@dataclass
class TicketMetadata:
    """
    Typed view over the ticket's free-form metadata document.

    Category-specific dynamic fields live in ``extra`` and are never
    inspected by lifecycle code.
    """
    comments: List[Comment] = field(default_factory=list)
    slack_thread_ts: Optional[str] = None
    slack_channel: Optional[str] = None
    email_message_id: Optional[str] = None
    tat: Optional[str] = None
    tat_date: Optional[datetime] = None
    tat_set_at: Optional[datetime] = None
    tat_set_by: Optional[UUID] = None
    tat_extensions: List[TATExtension] = field(default_factory=list)
    forward_count: int = 0
    # Local date (ISO) of the last due-today reminder
    tat_reminded_on: Optional[str] = None
    ack_reminded_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def add_comment(self, comment: Comment) -> None:
        self.comments.append(comment)

    def clear_tat(self) -> None:
        self.tat = None
        self.tat_date = None
        self.tat_set_at = None
        self.tat_set_by = None

    @property
    def last_comment_at(self) -> Optional[datetime]:
        return max((c.created_at for c in self.comments), default=None)

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "comments": [c.to_dict() for c in self.comments],
            "slack_thread_ts": self.slack_thread_ts,
            "slack_channel": self.slack_channel,
            "email_message_id": self.email_message_id,
            "tat": self.tat,
            "tat_date": _iso(self.tat_date),
            "tat_set_at": _iso(self.tat_set_at),
            "tat_set_by": str(self.tat_set_by) if self.tat_set_by else None,
            "tat_extensions": [e.to_dict() for e in self.tat_extensions],
            "forward_count": self.forward_count,
            "tat_reminded_on": self.tat_reminded_on,
            "ack_reminded_at": _iso(self.ack_reminded_at),
        })
        return data

    @staticmethod
    def reserved_keys(data: dict) -> List[str]:
        """Keys of ``data`` that would collide with lifecycle fields."""
        return sorted(k for k in data if k in _METADATA_KEYS)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TicketMetadata":
        data = data or {}
        return cls(
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            slack_thread_ts=data.get("slack_thread_ts"),
            slack_channel=data.get("slack_channel"),
            email_message_id=data.get("email_message_id"),
            tat=data.get("tat"),
            tat_date=_parse_dt(data.get("tat_date")),
            tat_set_at=_parse_dt(data.get("tat_set_at")),
            tat_set_by=_parse_uuid(data.get("tat_set_by")),
            tat_extensions=[TATExtension.from_dict(e) for e in data.get("tat_extensions") or []],
            forward_count=int(data.get("forward_count") or 0),
            tat_reminded_on=data.get("tat_reminded_on"),
            ack_reminded_at=_parse_dt(data.get("ack_reminded_at")),
            extra={k: v for k, v in data.items() if k not in _METADATA_KEYS},
        )


@dataclass
class Ticket:
    """
    Ticket entity: the central record of the helpdesk.

    ``domain`` is the top-level category (e.g. "Hostel"); ``scope`` the
    optional location inside it (e.g. a hostel block).
    """

    # Core attributes
    id: Optional[int]
    creator_id: UUID
    domain: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime

    scope: Optional[str] = None
    description: str = ""
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    sub_subcategory_id: Optional[int] = None
    assigned_to: Optional[UUID] = None

    # SLA budgets and deadlines
    acknowledgement_tat_hours: Optional[float] = None
    resolution_tat_hours: Optional[float] = None
    acknowledgement_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None

    # Lifecycle timestamps
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    reopen_count: int = 0

    # Escalation
    escalation_level: int = 0
    last_escalation_at: Optional[datetime] = None
    sla_breached_at: Optional[datetime] = None
    tat_extended_count: int = 0

    # Feedback
    rating: Optional[int] = None
    feedback: Optional[str] = None
    rating_submitted_at: Optional[datetime] = None

    metadata: TicketMetadata = field(default_factory=TicketMetadata)

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        if self.escalation_level < 0:
            raise ValueError("escalation_level cannot be negative")
        if self.reopen_count < 0 or self.tat_extended_count < 0:
            raise ValueError("counters cannot be negative")

    @property
    def last_activity_at(self) -> datetime:
        last_comment = self.metadata.last_comment_at
        if last_comment is not None and last_comment > self.updated_at:
            return last_comment
        return self.updated_at

    def is_created_by(self, actor: Actor) -> bool:
        return actor.user_id is not None and actor.user_id == self.creator_id

    def to_dict(self) -> dict:
        """Serialize to a JSON-friendly dict."""
        return {
            "id": self.id,
            "creator_id": str(self.creator_id),
            "domain": self.domain,
            "scope": self.scope,
            "status": self.status.value,
            "description": self.description,
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "sub_subcategory_id": self.sub_subcategory_id,
            "assigned_to": str(self.assigned_to) if self.assigned_to else None,
            "acknowledgement_tat_hours": self.acknowledgement_tat_hours,
            "resolution_tat_hours": self.resolution_tat_hours,
            "acknowledgement_due_at": _iso(self.acknowledgement_due_at),
            "resolution_due_at": _iso(self.resolution_due_at),
            "acknowledged_at": _iso(self.acknowledged_at),
            "acknowledged_by": str(self.acknowledged_by) if self.acknowledged_by else None,
            "resolved_at": _iso(self.resolved_at),
            "reopened_at": _iso(self.reopened_at),
            "reopen_count": self.reopen_count,
            "escalation_level": self.escalation_level,
            "last_escalation_at": _iso(self.last_escalation_at),
            "sla_breached_at": _iso(self.sla_breached_at),
            "tat_extended_count": self.tat_extended_count,
            "rating": self.rating,
            "feedback": self.feedback,
            "rating_submitted_at": _iso(self.rating_submitted_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "metadata": self.metadata.to_dict(),
        }
