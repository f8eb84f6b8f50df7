"""
Ticket Infrastructure Repositories
===================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Driver errors surface as
``DependencyFailureException`` so the request fails with 503 and its
transaction rolls back.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sst_resolve.config import EventType, TicketStatus, UserRole, canonical_status
from sst_resolve.core import DependencyFailureException, RepositoryException
from sst_resolve.sla.application.services import IIdentityProvider
from sst_resolve.sla.domain import Identity
from sst_resolve.tickets.application.services import (
    IActorRepository,
    IOutboxRepository,
    ITicketRepository,
)
from sst_resolve.tickets.domain import Actor, OutboxEvent, Ticket, TicketMetadata
from sst_resolve.tickets.infrastructure.models import OutboxModel, TicketModel, UserModel

# Ticket attributes copied one-to-one between entity and model
_TICKET_FIELDS = (
    "domain", "scope", "category_id", "subcategory_id", "sub_subcategory_id",
    "description", "assigned_to",
    "acknowledgement_tat_hours", "resolution_tat_hours",
    "acknowledgement_due_at", "resolution_due_at",
    "acknowledged_at", "acknowledged_by", "resolved_at", "reopened_at", "reopen_count",
    "escalation_level", "last_escalation_at", "sla_breached_at", "tat_extended_count",
    "rating", "feedback", "rating_submitted_at",
    "created_at", "updated_at",
)


def _database_error(action: str, error: SQLAlchemyError) -> DependencyFailureException:
    return DependencyFailureException("database", f"failed to {action}", {"error": type(error).__name__})


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        model = await self._fetch(ticket_id, lock=False)
        return self._to_domain(model) if model else None

    async def get_for_update(self, ticket_id: int) -> Optional[Ticket]:
        model = await self._fetch(ticket_id, lock=True)
        return self._to_domain(model) if model else None

    async def _fetch(self, ticket_id: int, lock: bool) -> Optional[TicketModel]:
        stmt = select(TicketModel).where(TicketModel.id == ticket_id)
        if lock:
            stmt = stmt.with_for_update()
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise _database_error("load ticket", e) from e
        return result.scalar_one_or_none()

    async def add(self, ticket: Ticket) -> Ticket:
        model = TicketModel(created_by=ticket.creator_id, status=ticket.status.value)
        self._copy_to_model(ticket, model)
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise _database_error("create ticket", e) from e
        ticket.id = model.id
        return ticket

    async def save(self, ticket: Ticket) -> None:
        model = await self._session.get(TicketModel, ticket.id)
        if model is None:
            raise RepositoryException(f"Ticket {ticket.id} not found")
        self._copy_to_model(ticket, model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise _database_error("save ticket", e) from e

    async def list(
        self,
        statuses: Optional[Iterable[TicketStatus]] = None,
        creator_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Ticket]:
        stmt = select(TicketModel)

        conditions = []
        if statuses is not None:
            conditions.append(TicketModel.status.in_([s.value for s in statuses]))
        if creator_id is not None:
            conditions.append(TicketModel.created_by == creator_id)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketModel.created_at.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise _database_error("list tickets", e) from e
        return [self._to_domain(model) for model in result.scalars().all()]

    @staticmethod
    def _copy_to_model(ticket: Ticket, model: TicketModel) -> None:
        for name in _TICKET_FIELDS:
            setattr(model, name, getattr(ticket, name))
        model.status = ticket.status.value
        model.metadata_ = ticket.metadata.to_dict()

    @staticmethod
    def _to_domain(model: TicketModel) -> Ticket:
        status = canonical_status(model.status)
        if status is None:
            raise RepositoryException(
                f"Ticket {model.id} has unknown status '{model.status}'"
            )
        values = {name: getattr(model, name) for name in _TICKET_FIELDS}
        return Ticket(
            id=model.id,
            creator_id=model.created_by,
            status=status,
            metadata=TicketMetadata.from_dict(model.metadata_),
            **values,
        )


class SQLAlchemyOutboxRepository(IOutboxRepository):
    """SQLAlchemy implementation of the outbox."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, event: OutboxEvent) -> OutboxEvent:
        model = OutboxModel(
            event_type=event.event_type.value,
            payload=event.payload,
            attempts=event.attempts,
            next_retry_at=event.next_retry_at,
            delivered_channels=list(event.delivered_channels),
        )
        if event.created_at is not None:
            model.created_at = event.created_at
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise _database_error("record outbox event", e) from e
        event.id = model.id
        event.created_at = model.created_at
        return event

    async def get_pending(self, now: datetime, limit: int, max_attempts: int) -> List[OutboxEvent]:
        stmt = (
            select(OutboxModel)
            .where(
                OutboxModel.processed_at.is_(None),
                OutboxModel.attempts < max_attempts,
                or_(OutboxModel.next_retry_at.is_(None), OutboxModel.next_retry_at <= now),
            )
            .order_by(OutboxModel.created_at.asc(), OutboxModel.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise _database_error("load outbox events", e) from e
        return [self._to_domain(model) for model in result.scalars().all()]

    async def mark_processed(self, event_id: int, processed_at: datetime) -> None:
        model = await self._get(event_id)
        model.processed_at = processed_at
        model.last_error = None
        await self._flush("mark outbox event processed")

    async def mark_failed(
        self,
        event_id: int,
        attempts: int,
        next_retry_at: datetime,
        error: Optional[str] = None,
        delivered_channels: Optional[List[str]] = None
    ) -> None:
        model = await self._get(event_id)
        model.attempts = attempts
        model.next_retry_at = next_retry_at
        model.last_error = error
        if delivered_channels is not None:
            model.delivered_channels = list(delivered_channels)
        await self._flush("mark outbox event failed")

    async def _get(self, event_id: int) -> OutboxModel:
        model = await self._session.get(OutboxModel, event_id)
        if model is None:
            raise RepositoryException(f"Outbox event {event_id} not found")
        return model

    async def _flush(self, action: str) -> None:
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise _database_error(action, e) from e

    @staticmethod
    def _to_domain(model: OutboxModel) -> OutboxEvent:
        return OutboxEvent(
            id=model.id,
            event_type=EventType(model.event_type),
            payload=model.payload,
            attempts=model.attempts,
            next_retry_at=model.next_retry_at,
            processed_at=model.processed_at,
            created_at=model.created_at,
            last_error=model.last_error,
            delivered_channels=list(model.delivered_channels or []),
        )


class SQLAlchemyUserRepository(IActorRepository, IIdentityProvider):
    """
    User lookups for both contexts.

    Serves actors to the ticket services and contactable identities to
    the SLA policy resolver.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_actor(self, user_id: UUID) -> Optional[Actor]:
        try:
            model = await self._session.get(UserModel, user_id)
        except SQLAlchemyError as e:
            raise _database_error("load user", e) from e
        if model is None:
            return None
        return Actor(user_id=model.id, role=self._role_of(model), name=model.name)

    async def get_identities(self, user_ids: Iterable[UUID]) -> Dict[UUID, Identity]:
        ids = list(user_ids)
        if not ids:
            return {}
        stmt = select(UserModel).where(UserModel.id.in_(ids))
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise _database_error("load users", e) from e
        return {model.id: self._to_identity(model) for model in result.scalars().all()}

    async def find_super_admin(self) -> Optional[Identity]:
        stmt = (
            select(UserModel)
            .where(UserModel.role == UserRole.SUPER_ADMIN.value)
            .order_by(UserModel.created_at.asc())
            .limit(1)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise _database_error("find super admin", e) from e
        model = result.scalar_one_or_none()
        return self._to_identity(model) if model else None

    @staticmethod
    def _role_of(model: UserModel) -> UserRole:
        try:
            return UserRole(model.role)
        except ValueError:
            raise RepositoryException(f"User {model.id} has unknown role '{model.role}'")

    @staticmethod
    def _to_identity(model: UserModel) -> Identity:
        return Identity(user_id=model.id, name=model.name, email=model.email, role=model.role)
