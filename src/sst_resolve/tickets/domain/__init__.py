"""
Ticket Domain Layer
===================

Domain layer for the ticket lifecycle.

Contains:
- Entities: Ticket, TicketMetadata, Comment, TATExtension, Actor
- State Machine: transitions, authorization table, transition records
- Events: outbox events built from transition records
- Triggers: auto-escalation and reminder predicates used by the sweeps

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from sst_resolve.tickets.domain.entities import (
    Actor,
    Comment,
    TATExtension,
    TicketMetadata,
    Ticket,
)
from sst_resolve.tickets.domain.state_machine import (
    Transition,
    AccessRule,
    TransitionRecord,
    TicketStateMachine,
    AUTHORIZATION_TABLE,
    ALLOWED_SOURCE_STATUSES,
    ACTIVE_STATUSES,
)
from sst_resolve.tickets.domain.events import OutboxEvent, to_jsonable
from sst_resolve.tickets.domain.triggers import (
    AutoEscalationCheck,
    DueReminders,
    check_auto_escalation,
    due_reminders,
)

__all__ = [
    # Entities
    "Actor",
    "Comment",
    "TATExtension",
    "TicketMetadata",
    "Ticket",
    # State Machine
    "Transition",
    "AccessRule",
    "TransitionRecord",
    "TicketStateMachine",
    "AUTHORIZATION_TABLE",
    "ALLOWED_SOURCE_STATUSES",
    "ACTIVE_STATUSES",
    # Events
    "OutboxEvent",
    "to_jsonable",
    # Triggers
    "AutoEscalationCheck",
    "check_auto_escalation",
    "DueReminders",
    "due_reminders",
]
