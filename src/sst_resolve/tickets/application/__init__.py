"""
Ticket Application Layer
=========================

Application layer for the ticket lifecycle.

Contains:
- Services: TicketService, EscalationService, SLABreachSweepService,
  SLAReminderService
- DTOs: Data transfer objects for API serialization
- Repository interfaces the infrastructure layer implements
"""

from sst_resolve.tickets.application.dto import (
    TicketCreateRequest,
    AcknowledgeRequest,
    CommentRequest,
    EscalateRequest,
    ReassignRequest,
    ReopenRequest,
    RateRequest,
    TATRequest,
    CommentResponse,
    TicketResponse,
    TransitionResponse,
    EscalationResponse,
)
from sst_resolve.tickets.application.services import (
    ITicketRepository,
    IOutboxRepository,
    IActorRepository,
    TicketOperationResult,
    EscalationResult,
    SweepResult,
    ReminderResult,
    EscalationService,
    TicketService,
    SLABreachSweepService,
    SLAReminderService,
)

__all__ = [
    # DTOs
    "TicketCreateRequest",
    "AcknowledgeRequest",
    "CommentRequest",
    "EscalateRequest",
    "ReassignRequest",
    "ReopenRequest",
    "RateRequest",
    "TATRequest",
    "CommentResponse",
    "TicketResponse",
    "TransitionResponse",
    "EscalationResponse",
    # Services
    "TicketOperationResult",
    "EscalationResult",
    "SweepResult",
    "ReminderResult",
    "EscalationService",
    "TicketService",
    "SLABreachSweepService",
    "SLAReminderService",
    # Repository Interfaces
    "ITicketRepository",
    "IOutboxRepository",
    "IActorRepository",
]
