"""Shared fixtures: in-memory repositories, a controllable clock and seeded users."""

import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
from uuid import UUID, uuid4

import pytest

from sst_resolve.config import TicketStatus, UserRole
from sst_resolve.core import DependencyFailureException
from sst_resolve.sla.application import (
    IEscalationRuleRepository,
    IIdentityProvider,
    ISLAConfigProvider,
    SLAPolicyResolver,
)
from sst_resolve.sla.domain import EscalationRule, Identity, SLAConfig
from sst_resolve.tickets.application import (
    EscalationService,
    IActorRepository,
    IOutboxRepository,
    ITicketRepository,
    SLABreachSweepService,
    TicketService,
)
from sst_resolve.tickets.domain import Actor, OutboxEvent, Ticket, TicketStateMachine

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryTicketRepository(ITicketRepository):
    """Stores copies so a caller's unsaved mutations never leak into storage."""

    def __init__(self):
        self.tickets: Dict[int, Ticket] = {}
        self.saves = 0
        self._next_id = 1

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return copy.deepcopy(ticket) if ticket else None

    async def get_for_update(self, ticket_id: int) -> Optional[Ticket]:
        return await self.get(ticket_id)

    async def add(self, ticket: Ticket) -> Ticket:
        ticket.id = self._next_id
        self._next_id += 1
        self.tickets[ticket.id] = copy.deepcopy(ticket)
        return ticket

    async def save(self, ticket: Ticket) -> None:
        self.saves += 1
        self.tickets[ticket.id] = copy.deepcopy(ticket)

    async def list(
        self,
        statuses: Optional[Iterable[TicketStatus]] = None,
        creator_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Ticket]:
        wanted = set(statuses) if statuses is not None else None
        found = [
            copy.deepcopy(t) for t in self.tickets.values()
            if (wanted is None or t.status in wanted)
            and (creator_id is None or t.creator_id == creator_id)
        ]
        found.sort(key=lambda t: t.created_at, reverse=True)
        end = offset + limit if limit is not None else None
        return found[offset:end]

    def stored(self, ticket_id: int) -> Ticket:
        return self.tickets[ticket_id]


class InMemoryOutboxRepository(IOutboxRepository):
    def __init__(self):
        self.events: List[OutboxEvent] = []

    async def add(self, event: OutboxEvent) -> OutboxEvent:
        event.id = len(self.events) + 1
        self.events.append(event)
        return event

    async def get_pending(self, now: datetime, limit: int, max_attempts: int) -> List[OutboxEvent]:
        pending = [
            e for e in self.events
            if e.processed_at is None
            and e.attempts < max_attempts
            and (e.next_retry_at is None or e.next_retry_at <= now)
        ]
        return pending[:limit]

    async def mark_processed(self, event_id: int, processed_at: datetime) -> None:
        self._get(event_id).processed_at = processed_at

    async def mark_failed(
        self,
        event_id: int,
        attempts: int,
        next_retry_at: datetime,
        error: Optional[str] = None,
        delivered_channels: Optional[List[str]] = None
    ) -> None:
        event = self._get(event_id)
        event.attempts = attempts
        event.next_retry_at = next_retry_at
        event.last_error = error
        if delivered_channels is not None:
            event.delivered_channels = list(delivered_channels)

    def _get(self, event_id: int) -> OutboxEvent:
        return next(e for e in self.events if e.id == event_id)

    def of_type(self, event_type) -> List[OutboxEvent]:
        return [e for e in self.events if e.event_type == event_type]


class InMemoryUserDirectory(IActorRepository, IIdentityProvider):
    """Users, served both as actors and as escalation identities."""

    def __init__(self):
        self.users: Dict[UUID, Actor] = {}
        self.emails: Dict[UUID, str] = {}
        self.identity_calls = 0
        self.fail_identities = False
        self.fail_super_admin = False

    def add(self, role: UserRole, name: str) -> Actor:
        actor = Actor(user_id=uuid4(), role=role, name=name)
        self.users[actor.user_id] = actor
        self.emails[actor.user_id] = f"{name.lower().replace(' ', '.')}@example.edu"
        return actor

    def remove(self, user_id: UUID) -> None:
        self.users.pop(user_id, None)

    async def get_actor(self, user_id: UUID) -> Optional[Actor]:
        return self.users.get(user_id)

    async def get_identities(self, user_ids: Iterable[UUID]) -> Dict[UUID, Identity]:
        self.identity_calls += 1
        if self.fail_identities:
            raise DependencyFailureException("database", "users table unavailable")
        return {
            uid: self._identity(self.users[uid])
            for uid in user_ids if uid in self.users
        }

    async def find_super_admin(self) -> Optional[Identity]:
        if self.fail_super_admin:
            raise DependencyFailureException("database", "users table unavailable")
        for actor in self.users.values():
            if actor.role == UserRole.SUPER_ADMIN:
                return self._identity(actor)
        return None

    def _identity(self, actor: Actor) -> Identity:
        return Identity(
            user_id=actor.user_id,
            name=actor.name,
            email=self.emails[actor.user_id],
            role=actor.role.value,
        )


class InMemoryRuleRepository(IEscalationRuleRepository):
    def __init__(self):
        self.rules: List[EscalationRule] = []
        self.queries = 0

    def add(self, domain: str, level: int, user_id: Optional[UUID], scope: Optional[str] = None,
            tat_hours: Optional[float] = 48) -> EscalationRule:
        rule = EscalationRule(domain=domain, level=level, user_id=user_id, scope=scope, tat_hours=tat_hours)
        self.rules.append(rule)
        return rule

    async def list_for(self, domain: str, scope: Optional[str] = None) -> List[EscalationRule]:
        self.queries += 1
        return [
            r for r in self.rules
            if r.domain == domain and (r.scope is None or r.scope == scope)
        ]


class StaticConfigProvider(ISLAConfigProvider):
    def __init__(self, config: Optional[SLAConfig] = None):
        self.config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self.config


# ========== Fixtures ==========

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory()


@pytest.fixture
def student(directory) -> Actor:
    return directory.add(UserRole.STUDENT, "Asha Student")


@pytest.fixture
def other_student(directory) -> Actor:
    return directory.add(UserRole.STUDENT, "Ravi Student")


@pytest.fixture
def committee(directory) -> Actor:
    return directory.add(UserRole.COMMITTEE, "Mess Committee")


@pytest.fixture
def admin(directory) -> Actor:
    return directory.add(UserRole.ADMIN, "Hostel SPOC")


@pytest.fixture
def other_admin(directory) -> Actor:
    return directory.add(UserRole.ADMIN, "College SPOC")


@pytest.fixture
def super_admin(directory) -> Actor:
    return directory.add(UserRole.SUPER_ADMIN, "Dean")


@pytest.fixture
def rules() -> InMemoryRuleRepository:
    return InMemoryRuleRepository()


@pytest.fixture
def sla_config() -> SLAConfig:
    return SLAConfig(
        default_targets={"acknowledgement_hours": 24, "resolution_hours": 72},
        domain_targets={
            "Hostel": {
                "resolution_hours": 48,
                "scopes": {"Velankani": {"acknowledgement_hours": 12}},
            },
            "College": {"acknowledgement_hours": None, "resolution_hours": None},
        },
    )


@pytest.fixture
def config_provider(sla_config) -> StaticConfigProvider:
    return StaticConfigProvider(sla_config)


@pytest.fixture
def resolver(rules, directory, config_provider) -> SLAPolicyResolver:
    return SLAPolicyResolver(rules, directory, config_provider)


@pytest.fixture
def ticket_repo() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def outbox_repo() -> InMemoryOutboxRepository:
    return InMemoryOutboxRepository()


@pytest.fixture
def state_machine(clock) -> TicketStateMachine:
    return TicketStateMachine(clock)


@pytest.fixture
def escalation_service(ticket_repo, outbox_repo, directory, resolver, state_machine, clock) -> EscalationService:
    return EscalationService(
        ticket_repo, outbox_repo, directory, resolver,
        state_machine=state_machine, reason_max_length=200, clock=clock,
    )


@pytest.fixture
def ticket_service(ticket_repo, outbox_repo, directory, resolver, escalation_service,
                   state_machine, clock) -> TicketService:
    return TicketService(
        ticket_repo, outbox_repo, directory, resolver, escalation_service,
        state_machine=state_machine, clock=clock,
    )


@pytest.fixture
def sweep_service(ticket_repo, escalation_service, config_provider, clock) -> SLABreachSweepService:
    return SLABreachSweepService(ticket_repo, escalation_service, config_provider, clock=clock)


@pytest.fixture
def make_ticket(student):
    """Build an in-memory ticket filed by ``student`` unless told otherwise."""

    def _make(**overrides) -> Ticket:
        values = dict(
            id=1,
            creator_id=student.user_id,
            domain="Hostel",
            scope="Velankani",
            status=TicketStatus.OPEN,
            created_at=NOW - timedelta(hours=1),
            updated_at=NOW - timedelta(hours=1),
            resolution_tat_hours=48,
        )
        values.update(overrides)
        return Ticket(**values)

    return _make


@pytest.fixture
def store_ticket(ticket_repo, make_ticket):
    """Persist a ticket in the in-memory repository and return its id."""

    async def _store(**overrides) -> int:
        ticket = make_ticket(**overrides)
        ticket.id = None
        await ticket_repo.add(ticket)
        return ticket.id

    return _store
