"""
Ticket Application Services
============================

Application services orchestrate the ticket lifecycle: load the ticket
under a row lock, let the state machine validate and apply the
transition, persist the ticket and record its outbox event. The caller's
session is the transaction, so the ticket update and the event commit
together or not at all.

Following SOLID principles:
- Single Responsibility: TicketService (operations), EscalationService
  (chain walk), SLABreachSweepService (scheduled auto-escalation),
  SLAReminderService (scheduled reminders)
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sst_resolve.config import (
    SUPER_ADMIN_TIER,
    SUPER_ADMIN_URGENT_TIER,
    URGENT_ESCALATION_LEVEL,
    CommentVisibility,
    EscalationTrigger,
    EventType,
    SLAState,
    TicketStatus,
)
from sst_resolve.core import (
    ApplicationException,
    DependencyFailureException,
    ForbiddenException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from sst_resolve.shared.infrastructure.logging import get_logger, log_latency
from sst_resolve.sla.application.dto import SLAClockResponse, TicketSLAResponse
from sst_resolve.sla.application.services import (
    IIdentityProvider,
    ISLAConfigProvider,
    SLAPolicyResolver,
)
from sst_resolve.sla.domain import Identity, TATCalculator
from sst_resolve.tickets.domain import (
    ACTIVE_STATUSES,
    Actor,
    OutboxEvent,
    Ticket,
    TicketMetadata,
    TicketStateMachine,
    Transition,
    TransitionRecord,
    check_auto_escalation,
    due_reminders,
    to_jsonable,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by ID without locking."""

    @abstractmethod
    async def get_for_update(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by ID holding a row lock until the transaction ends."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket and return it with its assigned ID."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> None:
        """Write back every field of an existing ticket."""

    @abstractmethod
    async def list(
        self,
        statuses: Optional[Iterable[TicketStatus]] = None,
        creator_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets, newest first."""


class IOutboxRepository(ABC):
    """Interface for outbox event storage."""

    @abstractmethod
    async def add(self, event: OutboxEvent) -> OutboxEvent:
        """Record an event in the current transaction."""

    @abstractmethod
    async def get_pending(self, now: datetime, limit: int, max_attempts: int) -> List[OutboxEvent]:
        """Unprocessed events with attempts left whose retry time has come."""

    @abstractmethod
    async def mark_processed(self, event_id: int, processed_at: datetime) -> None:
        """Mark event delivered."""

    @abstractmethod
    async def mark_failed(
        self,
        event_id: int,
        attempts: int,
        next_retry_at: datetime,
        error: Optional[str] = None,
        delivered_channels: Optional[List[str]] = None
    ) -> None:
        """Record a failed delivery attempt and the channels already reached."""


class IActorRepository(ABC):
    """Interface for looking up users as actors."""

    @abstractmethod
    async def get_actor(self, user_id: UUID) -> Optional[Actor]:
        """Get the actor for a user ID, None if unknown."""


# ========== Results ==========

@dataclass
class TicketOperationResult:
    """Outcome of a lifecycle operation."""
    ticket: Ticket
    record: Optional[TransitionRecord] = None
    event: Optional[OutboxEvent] = None


@dataclass
class EscalationResult:
    """Outcome of an escalation."""
    ticket: Ticket
    previous_level: int
    new_level: int
    previous_assignee: Optional[UUID]
    new_assignee: Optional[UUID]
    previous_status: TicketStatus
    new_status: TicketStatus
    escalated_to: str
    urgent: bool
    event: OutboxEvent


@dataclass
class SweepResult:
    """Outcome of one breach sweep."""
    scanned: int = 0
    breached: int = 0
    escalated: int = 0
    skipped_cooldown: int = 0
    failed: int = 0
    escalated_ticket_ids: List[int] = field(default_factory=list)


@dataclass
class ReminderResult:
    """Outcome of one reminder sweep."""
    scanned: int = 0
    tat_reminders: int = 0
    ack_reminders: int = 0
    reminded_ticket_ids: List[int] = field(default_factory=list)


# ========== Escalation Engine ==========

class EscalationService:
    """
    Walks the escalation chain for a ticket.

    Algorithm:
    1. Authorize the actor and reject resolved tickets
    2. Resolve the (domain, scope) policy
    3. Take the first chain entry above the ticket's *current* level
    4. If the chain is exhausted, route to a super admin; from level 2 on
       that escalation is flagged urgent
    5. Apply the transition, save, and record the event in the same session
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        outbox_repository: IOutboxRepository,
        identity_provider: IIdentityProvider,
        policy_resolver: SLAPolicyResolver,
        state_machine: Optional[TicketStateMachine] = None,
        reason_max_length: int = 2000,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._ticket_repo = ticket_repository
        self._outbox_repo = outbox_repository
        self._identity_provider = identity_provider
        self._policy_resolver = policy_resolver
        self._state_machine = state_machine or TicketStateMachine(clock)
        self._reason_max_length = reason_max_length
        self._clock = clock

    def normalize_reason(self, reason: Optional[str]) -> Optional[str]:
        """
        Raises:
            ValidationException: If the reason exceeds the configured length
        """
        if reason is None:
            return None
        reason = reason.strip()
        if len(reason) > self._reason_max_length:
            raise ValidationException(
                f"Reason must be at most {self._reason_max_length} characters",
                {"length": len(reason)}
            )
        return reason or None

    @property
    def reason_max_length(self) -> int:
        return self._reason_max_length

    async def escalate(
        self,
        ticket_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        trigger: EscalationTrigger = EscalationTrigger.MANUAL,
        now: Optional[datetime] = None
    ) -> EscalationResult:
        """
        Escalate a ticket by ID.

        Raises:
            ValidationException: Reason too long
            ResourceNotFoundException: Unknown ticket
            ForbiddenException: Actor may not escalate this ticket
            InvalidStateException: Ticket is resolved
        """
        reason = self.normalize_reason(reason)
        ticket = await self._ticket_repo.get_for_update(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return await self.escalate_ticket(ticket, actor, reason=reason, trigger=trigger, now=now)

    async def escalate_ticket(
        self,
        ticket: Ticket,
        actor: Actor,
        reason: Optional[str] = None,
        trigger: EscalationTrigger = EscalationTrigger.MANUAL,
        breached_at: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> EscalationResult:
        """Escalate a ticket the caller has already loaded under lock."""
        self._state_machine.validate(Transition.ESCALATE, ticket, actor)

        now = now or self._clock()
        previous_level = ticket.escalation_level
        previous_assignee = ticket.assigned_to
        previous_status = ticket.status

        policy = await self._policy_resolver.resolve_policy(ticket.domain, ticket.scope)
        entry = policy.next_entry(ticket.escalation_level)

        rule_tat_hours = None
        if entry is not None:
            escalated_to = f"level_{entry.level}"
            assignee: Optional[UUID] = entry.party.user_id
            reassign = True
            urgent = False
            rule_tat_hours = entry.tat_hours
        else:
            urgent = previous_level + 1 >= URGENT_ESCALATION_LEVEL
            escalated_to = SUPER_ADMIN_URGENT_TIER if urgent else SUPER_ADMIN_TIER
            super_admin = await self._find_super_admin(ticket)
            assignee = super_admin.user_id if super_admin else None
            reassign = super_admin is not None

        record = self._state_machine.escalate(
            ticket,
            actor,
            escalated_to=escalated_to,
            assignee=assignee,
            reassign=reassign,
            urgent=urgent,
            reason=reason,
            now=now,
        )

        if trigger == EscalationTrigger.AUTOMATIC:
            if breached_at is not None and ticket.sla_breached_at is None:
                ticket.sla_breached_at = breached_at
            if rule_tat_hours is not None and ticket.resolution_due_at is None:
                ticket.resolution_due_at = now + timedelta(hours=rule_tat_hours)

        await self._ticket_repo.save(ticket)

        event_type = (
            EventType.ESCALATED_AUTO if trigger == EscalationTrigger.AUTOMATIC
            else EventType.ESCALATED_MANUAL
        )
        event = await self._outbox_repo.add(OutboxEvent.from_transition(
            record,
            event_type,
            trigger=trigger,
            escalated_by=actor.user_id,
            domain=ticket.domain,
            scope=ticket.scope,
        ))

        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": ticket.id,
                "trigger": trigger.value,
                "actor_id": str(actor.user_id) if actor.user_id else None,
                "previous_level": previous_level,
                "new_level": ticket.escalation_level,
                "escalated_to": escalated_to,
                "urgent": urgent,
            }
        )

        return EscalationResult(
            ticket=ticket,
            previous_level=previous_level,
            new_level=ticket.escalation_level,
            previous_assignee=previous_assignee,
            new_assignee=ticket.assigned_to,
            previous_status=previous_status,
            new_status=ticket.status,
            escalated_to=escalated_to,
            urgent=urgent,
            event=event,
        )

    async def _find_super_admin(self, ticket: Ticket) -> Optional[Identity]:
        try:
            super_admin = await self._identity_provider.find_super_admin()
        except DependencyFailureException as e:
            logger.error(
                "Super admin lookup failed",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            super_admin = None

        if super_admin is None:
            logger.critical(
                "No super admin available for exhausted escalation chain",
                extra={"ticket_id": ticket.id, "domain": ticket.domain, "scope": ticket.scope}
            )
        return super_admin


# ========== Ticket Operations ==========

class TicketService:
    """
    Public operation surface of the ticket lifecycle.

    Each mutating operation returns the updated ticket, the transition
    record and the recorded event (None for a no-op).
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        outbox_repository: IOutboxRepository,
        actor_repository: IActorRepository,
        policy_resolver: SLAPolicyResolver,
        escalation_service: EscalationService,
        state_machine: Optional[TicketStateMachine] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._ticket_repo = ticket_repository
        self._outbox_repo = outbox_repository
        self._actor_repo = actor_repository
        self._policy_resolver = policy_resolver
        self._escalation_service = escalation_service
        self._state_machine = state_machine or TicketStateMachine(clock)
        self._clock = clock

    # ========== Queries ==========

    async def get_ticket(self, ticket_id: int, actor: Actor) -> Ticket:
        """
        Raises:
            ResourceNotFoundException: Unknown ticket
            ForbiddenException: Non-admin reading another user's ticket
        """
        ticket = await self._ticket_repo.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        if not actor.is_admin and not actor.is_system and not ticket.is_created_by(actor):
            raise ForbiddenException("You can only view your own tickets", {"ticket_id": ticket_id})
        return ticket

    async def list_tickets(
        self,
        actor: Actor,
        statuses: Optional[Iterable[TicketStatus]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        creator_id = None if actor.is_admin else actor.user_id
        return await self._ticket_repo.list(
            statuses=statuses, creator_id=creator_id, limit=limit, offset=offset
        )

    async def sla_status(
        self,
        ticket_id: int,
        actor: Actor,
        warning_threshold_percent: float = 15,
        now: Optional[datetime] = None
    ) -> TicketSLAResponse:
        """SLA clocks, overdue flag and breach information for one ticket."""
        ticket = await self.get_ticket(ticket_id, actor)
        now = now or self._clock()

        def clock(due_at: Optional[datetime], met_at: Optional[datetime]) -> SLAClockResponse:
            state = TATCalculator.calculate_state(
                ticket.created_at, due_at, now, met_at=met_at,
                warning_threshold_percent=warning_threshold_percent,
            )
            remaining = None
            if due_at is not None and met_at is None and state != SLAState.NO_SLA:
                remaining = (due_at - now).total_seconds()
            return SLAClockResponse(due_at=due_at, met_at=met_at, remaining_seconds=remaining, state=state.value)

        missed = TATCalculator.missed_deadline(
            now,
            ticket.status,
            acknowledgement_due_at=ticket.acknowledgement_due_at,
            resolution_due_at=ticket.resolution_due_at,
            acknowledged_at=ticket.acknowledged_at,
        )
        return TicketSLAResponse(
            ticket_id=ticket.id,
            status=ticket.status.value,
            escalation_level=ticket.escalation_level,
            acknowledgement=clock(ticket.acknowledgement_due_at, ticket.acknowledged_at),
            resolution=clock(ticket.resolution_due_at, ticket.resolved_at),
            is_overdue=missed is not None,
            missed_deadline=missed,
            sla_breached_at=ticket.sla_breached_at,
            last_escalation_at=ticket.last_escalation_at,
        )

    # ========== Commands ==========

    async def create_ticket(
        self,
        actor: Actor,
        domain: str,
        scope: Optional[str] = None,
        description: str = "",
        category_id: Optional[int] = None,
        subcategory_id: Optional[int] = None,
        sub_subcategory_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> TicketOperationResult:
        """
        File a new ticket and stamp its SLA deadlines from the resolved policy.

        Raises:
            ForbiddenException: The system actor cannot file tickets
            ValidationException: Missing domain or reserved keys in details
        """
        if actor.is_system or actor.user_id is None:
            raise ForbiddenException("Tickets must be filed by a user")
        domain = (domain or "").strip()
        if not domain:
            raise ValidationException("Domain is required")
        reserved = TicketMetadata.reserved_keys(details or {})
        if reserved:
            raise ValidationException("Reserved metadata keys in details", {"keys": reserved})
        scope = (scope or "").strip() or None

        now = now or self._clock()
        policy = await self._policy_resolver.resolve_policy(domain, scope)

        ticket = Ticket(
            id=None,
            creator_id=actor.user_id,
            domain=domain,
            scope=scope,
            status=TicketStatus.OPEN,
            created_at=now,
            updated_at=now,
            description=description,
            category_id=category_id,
            subcategory_id=subcategory_id,
            sub_subcategory_id=sub_subcategory_id,
            acknowledgement_tat_hours=policy.acknowledgement_hours,
            resolution_tat_hours=policy.resolution_hours,
            acknowledgement_due_at=TATCalculator.compute_due_timestamp(now, policy.acknowledgement_hours),
            resolution_due_at=TATCalculator.compute_due_timestamp(now, policy.resolution_hours),
            metadata=TicketMetadata(extra=dict(details or {})),
        )
        ticket = await self._ticket_repo.add(ticket)

        event = await self._outbox_repo.add(OutboxEvent(
            event_type=EventType.TICKET_CREATED,
            payload=to_jsonable({
                "ticket_id": ticket.id,
                "creator_id": actor.user_id,
                "actor_id": actor.user_id,
                "actor_role": actor.role,
                "description": description,
                "domain": domain,
                "scope": scope,
                "new_status": TicketStatus.OPEN,
                "acknowledgement_due_at": ticket.acknowledgement_due_at,
                "resolution_due_at": ticket.resolution_due_at,
                "occurred_at": now,
            }),
            created_at=now,
        ))

        logger.info(
            "Ticket created",
            extra={"ticket_id": ticket.id, "domain": domain, "scope": scope}
        )
        return TicketOperationResult(ticket=ticket, event=event)

    async def acknowledge(
        self,
        ticket_id: int,
        actor: Actor,
        message: Optional[str] = None
    ) -> TicketOperationResult:
        return await self._apply(
            ticket_id,
            lambda ticket, now: self._state_machine.acknowledge(ticket, actor, message, now=now),
        )

    async def add_comment(
        self,
        ticket_id: int,
        actor: Actor,
        text: str,
        visibility: CommentVisibility = CommentVisibility.STUDENT_VISIBLE,
        ask_student: bool = False
    ) -> TicketOperationResult:
        return await self._apply(
            ticket_id,
            lambda ticket, now: self._state_machine.add_comment(
                ticket, actor, text, visibility=visibility, ask_student=ask_student, now=now
            ),
        )

    async def escalate(
        self,
        ticket_id: int,
        actor: Actor,
        reason: Optional[str] = None
    ) -> EscalationResult:
        return await self._escalation_service.escalate(ticket_id, actor, reason=reason)

    async def reassign(
        self,
        ticket_id: int,
        actor: Actor,
        assignee_id: Optional[UUID]
    ) -> TicketOperationResult:
        """
        Raises:
            ResourceNotFoundException: Unknown ticket or assignee
            ValidationException: Assignee is not an admin
        """
        ticket = await self._load_for_update(ticket_id)
        self._state_machine.validate(Transition.REASSIGN, ticket, actor)

        if assignee_id is not None:
            assignee = await self._actor_repo.get_actor(assignee_id)
            if assignee is None:
                raise ResourceNotFoundException("User", str(assignee_id))
            if not assignee.is_admin:
                raise ValidationException(
                    "Tickets can only be assigned to admins",
                    {"assignee_id": str(assignee_id), "role": assignee.role.value}
                )

        return await self._commit(
            ticket, self._state_machine.reassign(ticket, actor, assignee_id, now=self._clock())
        )

    async def resolve(self, ticket_id: int, actor: Actor) -> TicketOperationResult:
        return await self._apply(
            ticket_id,
            lambda ticket, now: self._state_machine.resolve(ticket, actor, now=now),
        )

    async def reopen(
        self,
        ticket_id: int,
        actor: Actor,
        reason: Optional[str] = None
    ) -> TicketOperationResult:
        reason = self._escalation_service.normalize_reason(reason)
        return await self._apply(
            ticket_id,
            lambda ticket, now: self._state_machine.reopen(ticket, actor, reason=reason, now=now),
        )

    async def rate(
        self,
        ticket_id: int,
        actor: Actor,
        rating: int,
        feedback: Optional[str] = None
    ) -> TicketOperationResult:
        return await self._apply(
            ticket_id,
            lambda ticket, now: self._state_machine.rate(ticket, actor, rating, feedback, now=now),
        )

    async def set_tat(
        self,
        ticket_id: int,
        actor: Actor,
        tat: str,
        mark_in_progress: bool = False
    ) -> TicketOperationResult:
        return await self._apply(
            ticket_id,
            lambda ticket, now: self._state_machine.set_tat(
                ticket, actor, tat, mark_in_progress=mark_in_progress, now=now
            ),
        )

    # ========== Helpers ==========

    async def _load_for_update(self, ticket_id: int) -> Ticket:
        ticket = await self._ticket_repo.get_for_update(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def _apply(
        self,
        ticket_id: int,
        operation: Callable[[Ticket, datetime], TransitionRecord]
    ) -> TicketOperationResult:
        ticket = await self._load_for_update(ticket_id)
        return await self._commit(ticket, operation(ticket, self._clock()))

    async def _commit(self, ticket: Ticket, record: TransitionRecord) -> TicketOperationResult:
        if not record.changed:
            return TicketOperationResult(ticket=ticket, record=record)

        await self._ticket_repo.save(ticket)
        event = await self._outbox_repo.add(OutboxEvent.from_transition(record))

        logger.info(
            "Ticket transition applied",
            extra={
                "ticket_id": ticket.id,
                "transition": record.transition.value,
                "actor_id": str(record.actor_id) if record.actor_id else None,
                "old_status": record.old_status.value,
                "new_status": record.new_status.value,
            }
        )
        return TicketOperationResult(ticket=ticket, record=record, event=event)


# ========== Breach Sweep ==========

class SLABreachSweepService:
    """
    Scheduled scan that stamps SLA breaches and auto-escalates tickets.

    A ticket the engine refuses (e.g. resolved between scan and lock) is
    logged and counted; storage failures abort the sweep so its
    transaction rolls back.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        escalation_service: EscalationService,
        config_provider: ISLAConfigProvider,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._ticket_repo = ticket_repository
        self._escalation_service = escalation_service
        self._config_provider = config_provider
        self._clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self._clock()
        config = self._config_provider.get_config().auto_escalation
        result = SweepResult()
        system = Actor.system()

        with log_latency(logger, "sla_breach_sweep"):
            candidates = await self._ticket_repo.list(statuses=ACTIVE_STATUSES)
            result.scanned = len(candidates)

            for candidate in candidates:
                if not check_auto_escalation(candidate, now, config).reasons:
                    continue

                ticket = await self._ticket_repo.get_for_update(candidate.id)
                if ticket is None:
                    continue
                check = check_auto_escalation(ticket, now, config)
                needs_stamp = check.breached_at is not None and ticket.sla_breached_at is None
                if needs_stamp:
                    result.breached += 1

                if not config.enabled or check.in_cooldown or not check.reasons:
                    if check.in_cooldown:
                        result.skipped_cooldown += 1
                    if needs_stamp:
                        ticket.sla_breached_at = check.breached_at
                        await self._ticket_repo.save(ticket)
                    continue

                try:
                    await self._escalation_service.escalate_ticket(
                        ticket,
                        system,
                        reason=check.reason[: self._escalation_service.reason_max_length],
                        trigger=EscalationTrigger.AUTOMATIC,
                        breached_at=check.breached_at,
                        now=now,
                    )
                except RepositoryException:
                    raise
                except ApplicationException as e:
                    result.failed += 1
                    logger.warning(
                        "Auto-escalation rejected",
                        extra={"ticket_id": ticket.id, "error": e.message}
                    )
                    continue

                result.escalated += 1
                result.escalated_ticket_ids.append(ticket.id)

        logger.info(
            "SLA breach sweep finished",
            extra={
                "scanned": result.scanned,
                "breached": result.breached,
                "escalated": result.escalated,
                "skipped_cooldown": result.skipped_cooldown,
                "failed": result.failed,
            }
        )
        return result


# ========== Reminders ==========

class SLAReminderService:
    """
    Scheduled scan that records reminder events for the notification worker.

    Each reminder is stamped on the ticket metadata in the same transaction
    as its outbox event, so overlapping runs do not send it twice. Reminders
    never change the ticket's status or ``updated_at``.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        outbox_repository: IOutboxRepository,
        config_provider: ISLAConfigProvider,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._ticket_repo = ticket_repository
        self._outbox_repo = outbox_repository
        self._config_provider = config_provider
        self._clock = clock

    async def remind(self, now: Optional[datetime] = None) -> ReminderResult:
        now = now or self._clock()
        config = self._config_provider.get_config().reminders
        result = ReminderResult()
        if not config.enabled:
            return result

        with log_latency(logger, "sla_reminder_sweep"):
            candidates = await self._ticket_repo.list(statuses=ACTIVE_STATUSES)
            result.scanned = len(candidates)

            for candidate in candidates:
                if not due_reminders(candidate, now, config).pending:
                    continue

                ticket = await self._ticket_repo.get_for_update(candidate.id)
                if ticket is None:
                    continue
                due = due_reminders(ticket, now, config)
                if not due.pending:
                    continue

                events = []
                if due.tat_due_today:
                    ticket.metadata.tat_reminded_on = due.local_date
                    events.append(self._event(
                        EventType.TAT_REMINDER, ticket, now, "Resolution deadline is due today"
                    ))
                    result.tat_reminders += 1
                if due.unacknowledged_hours is not None:
                    ticket.metadata.ack_reminded_at = now
                    events.append(self._event(
                        EventType.ACK_REMINDER, ticket, now,
                        f"Not acknowledged (created {int(due.unacknowledged_hours)} hours ago)",
                    ))
                    result.ack_reminders += 1

                await self._ticket_repo.save(ticket)
                for event in events:
                    await self._outbox_repo.add(event)
                result.reminded_ticket_ids.append(ticket.id)

        logger.info(
            "SLA reminder sweep finished",
            extra={
                "scanned": result.scanned,
                "tat_reminders": result.tat_reminders,
                "ack_reminders": result.ack_reminders,
            }
        )
        return result

    @staticmethod
    def _event(event_type: EventType, ticket: Ticket, now: datetime, reason: str) -> OutboxEvent:
        return OutboxEvent(
            event_type=event_type,
            payload=to_jsonable({
                "ticket_id": ticket.id,
                "domain": ticket.domain,
                "scope": ticket.scope,
                "new_status": ticket.status.value,
                "assigned_to": ticket.assigned_to,
                "due_at": ticket.resolution_due_at,
                "reason": reason,
                "actor_role": "system",
                "occurred_at": now,
            }),
            created_at=now,
        )
