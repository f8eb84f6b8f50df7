"""
Ticket Domain Events
====================

Outbox events: durable intents-to-notify recorded in the same
transaction as the state change that produced them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from sst_resolve.config import EventType
from sst_resolve.tickets.domain.state_machine import Transition, TransitionRecord

TRANSITION_EVENTS = {
    Transition.ACKNOWLEDGE: EventType.ACKNOWLEDGED,
    Transition.COMMENT: EventType.COMMENT_ADDED,
    Transition.RESOLVE: EventType.STATUS_CHANGED,
    Transition.REOPEN: EventType.STATUS_CHANGED,
    Transition.REASSIGN: EventType.REASSIGNED,
    Transition.SET_TAT: EventType.TAT_SET,
    Transition.RATE: EventType.RATED,
}


def to_jsonable(value: Any) -> Any:
    """Convert UUIDs, datetimes and enums inside ``value`` to JSON primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


@dataclass
class OutboxEvent:
    """
    One pending notification.

    ``attempts``/``next_retry_at``/``processed_at`` are managed by the
    outbox processor. ``delivered_channels`` lists the channels that already
    received a fan-out event, so a retry only posts to the rest.
    """
    event_type: EventType
    payload: Dict[str, Any]
    id: Optional[int] = None
    attempts: int = 0
    next_retry_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_error: Optional[str] = None
    delivered_channels: List[str] = field(default_factory=list)

    @property
    def ticket_id(self) -> Optional[int]:
        return self.payload.get("ticket_id")

    @classmethod
    def from_transition(
        cls,
        record: TransitionRecord,
        event_type: Optional[EventType] = None,
        **extra: Any
    ) -> "OutboxEvent":
        """
        Build the event for a transition.

        The payload carries the actor, old/new status and whatever the
        transition put in its details (levels, assignees, reason).
        """
        payload: Dict[str, Any] = {
            "ticket_id": record.ticket_id,
            "transition": record.transition.value,
            "actor_id": record.actor_id,
            "actor_role": record.actor_role,
            "previous_status": record.old_status,
            "new_status": record.new_status,
            "student_visible": record.student_visible,
            "occurred_at": record.occurred_at,
        }
        payload.update(record.details)
        payload.update(extra)

        return cls(
            event_type=event_type or TRANSITION_EVENTS[record.transition],
            payload=to_jsonable(payload),
            created_at=record.occurred_at,
        )
