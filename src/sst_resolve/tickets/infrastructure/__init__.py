"""
Ticket Infrastructure Layer
============================

Infrastructure implementations for the ticket module.

Contains:
- Models: SQLAlchemy ORM models (users, tickets, outbox)
- Repositories: Concrete repository implementations
"""

from sst_resolve.tickets.infrastructure.models import UserModel, TicketModel, OutboxModel
from sst_resolve.tickets.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyOutboxRepository,
    SQLAlchemyUserRepository,
)

__all__ = [
    "UserModel",
    "TicketModel",
    "OutboxModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyOutboxRepository",
    "SQLAlchemyUserRepository",
]
