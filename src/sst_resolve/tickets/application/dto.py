"""
Ticket Application DTOs
========================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from sst_resolve.tickets.domain import Comment, OutboxEvent, Ticket


# ========== Type Aliases for Literals ==========
CommentVisibilityStr = Literal["student_visible", "internal_note", "super_admin_note"]


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for filing a ticket."""
    domain: str = Field(..., min_length=1, max_length=100, description="Top-level category, e.g. Hostel")
    scope: Optional[str] = Field(None, max_length=100, description="Location within the domain")
    description: str = Field(default="", max_length=10000)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    sub_subcategory_id: Optional[int] = None
    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Category-specific dynamic fields (stored as-is)"
    )


class AcknowledgeRequest(BaseModel):
    message: Optional[str] = Field(None, max_length=2000)


class CommentRequest(BaseModel):
    """Request model for adding a comment."""
    text: str = Field(..., min_length=1, max_length=10000)
    visibility: CommentVisibilityStr = "student_visible"
    ask_student: bool = Field(
        default=False,
        description="Admin question that waits for the student's reply"
    )


class EscalateRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Free-text reason (length-capped)")


class ReassignRequest(BaseModel):
    """Request model for reassignment; 'unassigned' or null clears the assignee."""
    assignee_id: Optional[str] = None

    @field_validator("assignee_id")
    @classmethod
    def normalize_unassigned(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v.strip().lower() in ("", "unassigned"):
            return None
        return v.strip()


class ReopenRequest(BaseModel):
    reason: Optional[str] = None


class RateRequest(BaseModel):
    """Request model for rating a resolved ticket."""
    rating: int = Field(..., description="1 (worst) to 5 (best)")
    feedback: Optional[str] = Field(None, max_length=5000)


class TATRequest(BaseModel):
    """Request model for setting or extending the turnaround time."""
    tat: str = Field(..., min_length=1, max_length=100, description='e.g. "2 days", "1 week"')
    mark_in_progress: bool = False


# ========== Response DTOs ==========

class CommentResponse(BaseModel):
    text: str
    author_id: Optional[str] = None
    author_role: str
    created_at: datetime
    visibility: CommentVisibilityStr

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        return cls(**comment.to_dict())


class TicketResponse(BaseModel):
    """Response model for a ticket."""
    id: int
    creator_id: str
    domain: str
    scope: Optional[str] = None
    status: str
    description: str
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    sub_subcategory_id: Optional[int] = None
    assigned_to: Optional[str] = None
    acknowledgement_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None
    reopen_count: int
    escalation_level: int
    last_escalation_at: Optional[datetime] = None
    sla_breached_at: Optional[datetime] = None
    tat: Optional[str] = None
    tat_extended_count: int
    rating: Optional[int] = None
    feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    comments: List[CommentResponse] = Field(default_factory=list)

    @classmethod
    def from_ticket(cls, ticket: Ticket, include_internal: bool = False) -> "TicketResponse":
        """Students only see student-visible comments."""
        data = ticket.to_dict()
        comments = [
            CommentResponse.from_comment(c)
            for c in ticket.metadata.comments
            if include_internal or c.visibility.value == "student_visible"
        ]
        return cls(
            **{k: v for k, v in data.items() if k in cls.model_fields and k != "comments"},
            tat=ticket.metadata.tat,
            comments=comments,
        )


class TransitionResponse(BaseModel):
    """Response for a lifecycle operation."""
    ticket: TicketResponse
    changed: bool
    previous_status: Optional[str] = None
    new_status: str
    event_type: Optional[str] = None


class EscalationResponse(BaseModel):
    """Response for an escalation."""
    ticket_id: int
    previous_level: int
    new_level: int
    previous_assignee: Optional[str] = None
    new_assignee: Optional[str] = None
    previous_status: str
    new_status: str
    escalated_to: str
    urgent: bool
    event_type: str


def event_type_of(event: Optional[OutboxEvent]) -> Optional[str]:
    return event.event_type.value if event is not None else None
