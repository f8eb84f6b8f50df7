"""
Ticket State Machine
====================

Single source of truth for which transitions exist, who may trigger them
and from which statuses.

Every operation:
1. Authorizes the actor against ``AUTHORIZATION_TABLE`` (Forbidden)
2. Checks the current status against ``ALLOWED_SOURCE_STATUSES`` and any
   operation-specific state rule (InvalidState)
3. Validates input (Validation)
4. Only then mutates the ticket and returns a ``TransitionRecord``

Nothing here performs I/O; callers persist the ticket and record the
outbox event in the same transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional
from uuid import UUID

from sst_resolve.config import (
    ADMIN_ROLES,
    RATING_MAX,
    RATING_MIN,
    CommentVisibility,
    TicketStatus,
    UserRole,
)
from sst_resolve.core import ForbiddenException, InvalidStateException, ValidationException
from sst_resolve.sla.domain import TATCalculator
from sst_resolve.tickets.domain.entities import Actor, Comment, TATExtension, Ticket

DEFAULT_ACKNOWLEDGEMENT_MESSAGE = "Ticket acknowledged by SPOC"


class Transition(str, Enum):
    ACKNOWLEDGE = "acknowledge"
    COMMENT = "comment"
    ESCALATE = "escalate"
    RESOLVE = "resolve"
    REOPEN = "reopen"
    REASSIGN = "reassign"
    SET_TAT = "set_tat"
    RATE = "rate"


ALL_STATUSES: FrozenSet[TicketStatus] = frozenset(TicketStatus)
ACTIVE_STATUSES: FrozenSet[TicketStatus] = frozenset(s for s in TicketStatus if not s.is_terminal)

ALLOWED_SOURCE_STATUSES: Dict[Transition, FrozenSet[TicketStatus]] = {
    Transition.ACKNOWLEDGE: ACTIVE_STATUSES,
    Transition.COMMENT: ALL_STATUSES,
    Transition.ESCALATE: ACTIVE_STATUSES,
    # Resolving a resolved ticket is a no-op success
    Transition.RESOLVE: ALL_STATUSES,
    Transition.REOPEN: frozenset({TicketStatus.RESOLVED}),
    Transition.REASSIGN: ACTIVE_STATUSES,
    Transition.SET_TAT: ACTIVE_STATUSES,
    Transition.RATE: frozenset({TicketStatus.RESOLVED}),
}

_INVALID_SOURCE_MESSAGES = {
    Transition.ACKNOWLEDGE: "Cannot acknowledge a resolved ticket",
    Transition.ESCALATE: "Cannot escalate a resolved ticket",
    Transition.REOPEN: "Only resolved tickets can be reopened",
    Transition.REASSIGN: "Cannot reassign a resolved ticket",
    Transition.SET_TAT: "Cannot set TAT on a resolved ticket",
    Transition.RATE: "Only resolved tickets can be rated",
}


@dataclass(frozen=True)
class AccessRule:
    """
    Who may trigger a transition.

    ``roles`` may act on any ticket; ``creator_roles`` only on tickets they
    created; ``forbidden_roles`` are rejected outright with their own reason.
    """
    roles: FrozenSet[UserRole] = frozenset()
    creator_roles: FrozenSet[UserRole] = frozenset()
    forbidden_roles: Dict[UserRole, str] = field(default_factory=dict)
    denied_message: str = "You do not have permission to perform this action"
    ownership_message: str = "You can only act on your own tickets"


_CREATORS = frozenset({UserRole.STUDENT, UserRole.COMMITTEE})

AUTHORIZATION_TABLE: Dict[Transition, AccessRule] = {
    Transition.ACKNOWLEDGE: AccessRule(
        roles=ADMIN_ROLES,
        denied_message="Only admins can acknowledge tickets",
    ),
    Transition.COMMENT: AccessRule(
        roles=ADMIN_ROLES,
        creator_roles=_CREATORS,
        ownership_message="You can only comment on your own tickets",
    ),
    Transition.ESCALATE: AccessRule(
        roles=ADMIN_ROLES | {UserRole.SYSTEM},
        creator_roles=frozenset({UserRole.STUDENT}),
        forbidden_roles={UserRole.COMMITTEE: "Committee members cannot escalate tickets"},
        ownership_message="You can only escalate your own tickets",
    ),
    Transition.RESOLVE: AccessRule(
        roles=ADMIN_ROLES,
        denied_message="Only admins can resolve tickets",
    ),
    Transition.REOPEN: AccessRule(
        roles=ADMIN_ROLES,
        creator_roles=_CREATORS,
        ownership_message="You can only reopen your own tickets",
    ),
    Transition.REASSIGN: AccessRule(
        roles=ADMIN_ROLES,
        denied_message="Only admins can reassign tickets",
    ),
    Transition.SET_TAT: AccessRule(
        roles=ADMIN_ROLES,
        denied_message="Only admins can set TAT",
    ),
    Transition.RATE: AccessRule(
        creator_roles=_CREATORS,
        denied_message="Only the ticket creator can rate this ticket",
        ownership_message="Only the ticket creator can rate this ticket",
    ),
}


@dataclass(frozen=True)
class TransitionRecord:
    """Structured description of one applied (or no-op) transition."""
    ticket_id: Optional[int]
    transition: Transition
    actor_id: Optional[UUID]
    actor_role: UserRole
    old_status: TicketStatus
    new_status: TicketStatus
    occurred_at: datetime
    changed: bool = True
    student_visible: bool = True
    details: Dict[str, Any] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketStateMachine:
    """
    Validates and applies ticket transitions.

    Args:
        clock: Source of "now" when an operation is not given one
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    # ========== Guards ==========

    @staticmethod
    def authorize(transition: Transition, ticket: Ticket, actor: Actor) -> None:
        """
        Raises:
            ForbiddenException: If the actor may not trigger ``transition``
        """
        rule = AUTHORIZATION_TABLE[transition]
        if actor.role in rule.forbidden_roles:
            raise ForbiddenException(
                rule.forbidden_roles[actor.role],
                {"transition": transition.value, "role": actor.role.value}
            )
        if actor.role in rule.roles:
            return
        if actor.role in rule.creator_roles:
            if ticket.is_created_by(actor):
                return
            raise ForbiddenException(
                rule.ownership_message,
                {"transition": transition.value, "ticket_id": ticket.id}
            )
        raise ForbiddenException(
            rule.denied_message,
            {"transition": transition.value, "role": actor.role.value}
        )

    @staticmethod
    def check_source_status(transition: Transition, ticket: Ticket) -> None:
        """
        Raises:
            InvalidStateException: If ``transition`` is illegal from the current status
        """
        if ticket.status not in ALLOWED_SOURCE_STATUSES[transition]:
            message = _INVALID_SOURCE_MESSAGES.get(
                transition, f"Cannot {transition.value} ticket"
            )
            raise InvalidStateException(
                f"{message}. Current status: {ticket.status.value}",
                current_status=ticket.status.value,
                details={"transition": transition.value, "ticket_id": ticket.id},
            )

    def validate(self, transition: Transition, ticket: Ticket, actor: Actor) -> None:
        """Authorize, then check the source status."""
        self.authorize(transition, ticket, actor)
        self.check_source_status(transition, ticket)

    def _record(
        self,
        transition: Transition,
        ticket: Ticket,
        actor: Actor,
        old_status: TicketStatus,
        now: datetime,
        changed: bool = True,
        student_visible: bool = True,
        **details: Any
    ) -> TransitionRecord:
        if changed:
            ticket.updated_at = now
        return TransitionRecord(
            ticket_id=ticket.id,
            transition=transition,
            actor_id=actor.user_id,
            actor_role=actor.role,
            old_status=old_status,
            new_status=ticket.status,
            occurred_at=now,
            changed=changed,
            student_visible=student_visible,
            details=details,
        )

    # ========== Transitions ==========

    def acknowledge(
        self,
        ticket: Ticket,
        actor: Actor,
        message: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """
        Admin takes ownership of the ticket.

        ``acknowledged_at`` is set once and never overwritten; OPEN and
        REOPENED tickets move to IN_PROGRESS.
        """
        self.authorize(Transition.ACKNOWLEDGE, ticket, actor)
        if (
            not actor.is_super_admin
            and ticket.assigned_to is not None
            and ticket.assigned_to != actor.user_id
        ):
            raise ForbiddenException(
                "This ticket is assigned to another admin",
                {"ticket_id": ticket.id}
            )
        self.check_source_status(Transition.ACKNOWLEDGE, ticket)
        if ticket.acknowledged_at is not None:
            raise InvalidStateException(
                "Ticket already acknowledged",
                current_status=ticket.status.value,
                details={"acknowledged_at": ticket.acknowledged_at.isoformat()},
            )

        now = now or self._clock()
        old_status = ticket.status
        text = (message or "").strip() or DEFAULT_ACKNOWLEDGEMENT_MESSAGE

        ticket.acknowledged_at = now
        ticket.acknowledged_by = actor.user_id
        if ticket.assigned_to is None:
            ticket.assigned_to = actor.user_id
        if ticket.status in (TicketStatus.OPEN, TicketStatus.REOPENED):
            ticket.status = TicketStatus.IN_PROGRESS
        ticket.metadata.add_comment(Comment(
            text=text,
            author_id=actor.user_id,
            author_role=actor.role,
            created_at=now,
        ))

        return self._record(
            Transition.ACKNOWLEDGE, ticket, actor, old_status, now,
            message=text,
            assigned_to=ticket.assigned_to,
        )

    def add_comment(
        self,
        ticket: Ticket,
        actor: Actor,
        text: str,
        visibility: CommentVisibility = CommentVisibility.STUDENT_VISIBLE,
        ask_student: bool = False,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """
        Append a comment, moving status where the comment implies it.

        - Creator reply while AWAITING_STUDENT_RESPONSE -> IN_PROGRESS; the
          creator cannot comment in any other status
        - Admin question (``ask_student``) -> AWAITING_STUDENT_RESPONSE
        - Admin comment on an OPEN ticket claims it -> IN_PROGRESS
        - Any other admin comment leaves the status alone
        """
        self.authorize(Transition.COMMENT, ticket, actor)
        if visibility != CommentVisibility.STUDENT_VISIBLE and not actor.is_admin:
            raise ForbiddenException("Only admins can add internal notes")
        if visibility == CommentVisibility.SUPER_ADMIN_NOTE and not actor.is_super_admin:
            raise ForbiddenException("Only super admins can add super admin notes")
        if ask_student and not actor.is_admin:
            raise ForbiddenException("Only admins can ask the student a question")

        old_status = ticket.status
        if actor.is_admin:
            if ask_student and ticket.status.is_terminal:
                raise InvalidStateException(
                    f"Cannot ask a question on a resolved ticket. Current status: {ticket.status.value}",
                    current_status=ticket.status.value,
                )
        elif ticket.status != TicketStatus.AWAITING_STUDENT_RESPONSE:
            raise InvalidStateException(
                "You can only reply when the admin has asked a question. "
                f"Current status: {ticket.status.value}",
                current_status=ticket.status.value,
            )

        text = (text or "").strip()
        if not text:
            raise ValidationException("Comment text is required")
        if ask_student and visibility != CommentVisibility.STUDENT_VISIBLE:
            raise ValidationException("A question to the student must be student-visible")

        now = now or self._clock()
        if actor.is_admin:
            if ask_student:
                ticket.status = TicketStatus.AWAITING_STUDENT_RESPONSE
            elif ticket.status == TicketStatus.OPEN:
                ticket.status = TicketStatus.IN_PROGRESS
            if ticket.assigned_to is None and not ticket.status.is_terminal:
                ticket.assigned_to = actor.user_id
        else:
            ticket.status = TicketStatus.IN_PROGRESS

        ticket.metadata.add_comment(Comment(
            text=text,
            author_id=actor.user_id,
            author_role=actor.role,
            created_at=now,
            visibility=visibility,
        ))

        return self._record(
            Transition.COMMENT, ticket, actor, old_status, now,
            student_visible=visibility == CommentVisibility.STUDENT_VISIBLE,
            comment=text,
            visibility=visibility.value,
            ask_student=ask_student,
        )

    def escalate(
        self,
        ticket: Ticket,
        actor: Actor,
        escalated_to: str,
        assignee: Optional[UUID] = None,
        reassign: bool = False,
        urgent: bool = False,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """
        Move the ticket one escalation level up and into ESCALATED.

        The target (``escalated_to``/``assignee``) is chosen by the
        escalation engine; this only validates and applies it.
        """
        self.validate(Transition.ESCALATE, ticket, actor)

        now = now or self._clock()
        old_status = ticket.status
        old_level = ticket.escalation_level
        old_assignee = ticket.assigned_to

        ticket.escalation_level = old_level + 1
        ticket.status = TicketStatus.ESCALATED
        ticket.last_escalation_at = now
        if reassign:
            ticket.assigned_to = assignee

        return self._record(
            Transition.ESCALATE, ticket, actor, old_status, now,
            old_level=old_level,
            new_level=ticket.escalation_level,
            old_assignee=old_assignee,
            new_assignee=ticket.assigned_to,
            escalated_to=escalated_to,
            urgent=urgent,
            reason=reason,
        )

    def resolve(
        self,
        ticket: Ticket,
        actor: Actor,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """Mark resolved; resolving an already resolved ticket changes nothing."""
        self.validate(Transition.RESOLVE, ticket, actor)

        now = now or self._clock()
        old_status = ticket.status
        if ticket.status == TicketStatus.RESOLVED:
            return self._record(Transition.RESOLVE, ticket, actor, old_status, now, changed=False)

        ticket.status = TicketStatus.RESOLVED
        if ticket.resolved_at is None:
            ticket.resolved_at = now
        if ticket.assigned_to is None:
            ticket.assigned_to = actor.user_id

        return self._record(Transition.RESOLVE, ticket, actor, old_status, now)

    def reopen(
        self,
        ticket: Ticket,
        actor: Actor,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """
        RESOLVED -> REOPENED.

        Clears ``resolved_at`` and any TAT commitment, and restarts the
        resolution clock from the ticket's resolution budget.
        """
        self.validate(Transition.REOPEN, ticket, actor)

        now = now or self._clock()
        old_status = ticket.status

        ticket.status = TicketStatus.REOPENED
        ticket.reopen_count += 1
        ticket.resolved_at = None
        ticket.reopened_at = now
        ticket.metadata.clear_tat()
        ticket.resolution_due_at = TATCalculator.compute_due_timestamp(
            now, ticket.resolution_tat_hours
        )

        return self._record(
            Transition.REOPEN, ticket, actor, old_status, now,
            reopen_count=ticket.reopen_count,
            reason=reason,
        )

    def reassign(
        self,
        ticket: Ticket,
        actor: Actor,
        assignee: Optional[UUID],
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """Hand the ticket to ``assignee`` (None unassigns). Status is unchanged."""
        self.validate(Transition.REASSIGN, ticket, actor)

        now = now or self._clock()
        old_status = ticket.status
        old_assignee = ticket.assigned_to
        if old_assignee == assignee:
            return self._record(
                Transition.REASSIGN, ticket, actor, old_status, now,
                changed=False, student_visible=False,
                old_assignee=old_assignee, new_assignee=assignee,
            )

        ticket.assigned_to = assignee
        if old_assignee is not None:
            ticket.metadata.forward_count += 1

        return self._record(
            Transition.REASSIGN, ticket, actor, old_status, now,
            student_visible=False,
            old_assignee=old_assignee,
            new_assignee=assignee,
            forward_count=ticket.metadata.forward_count,
        )

    def set_tat(
        self,
        ticket: Ticket,
        actor: Actor,
        tat: str,
        mark_in_progress: bool = False,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """
        Commit to a turnaround time such as "2 days".

        A second commitment is an extension: it is counted and audited.
        The acting admin becomes the assignee.
        """
        self.validate(Transition.SET_TAT, ticket, actor)
        tat = (tat or "").strip()
        if not tat:
            raise ValidationException("TAT is required")

        now = now or self._clock()
        old_status = ticket.status
        duration: timedelta = TATCalculator.parse_duration(tat)
        new_due_at = now + duration
        previous_tat = ticket.metadata.tat
        previous_due_at = ticket.resolution_due_at
        is_extension = previous_tat is not None

        if is_extension:
            ticket.tat_extended_count += 1
            ticket.metadata.tat_extensions.append(TATExtension(
                previous_tat=previous_tat,
                new_tat=tat,
                previous_due_at=previous_due_at,
                new_due_at=new_due_at,
                extended_at=now,
                extended_by=actor.user_id,
            ))

        ticket.metadata.tat = tat
        ticket.metadata.tat_date = new_due_at
        ticket.metadata.tat_set_at = now
        ticket.metadata.tat_set_by = actor.user_id
        ticket.resolution_due_at = new_due_at
        ticket.assigned_to = actor.user_id
        if mark_in_progress and ticket.status != TicketStatus.IN_PROGRESS:
            ticket.status = TicketStatus.IN_PROGRESS

        return self._record(
            Transition.SET_TAT, ticket, actor, old_status, now,
            tat=tat,
            resolution_due_at=new_due_at,
            previous_due_at=previous_due_at,
            is_extension=is_extension,
            tat_extended_count=ticket.tat_extended_count,
        )

    def rate(
        self,
        ticket: Ticket,
        actor: Actor,
        rating: int,
        feedback: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TransitionRecord:
        """Creator rates a resolved ticket once, 1 to 5."""
        self.authorize(Transition.RATE, ticket, actor)
        if isinstance(rating, bool) or not isinstance(rating, int) or not RATING_MIN <= rating <= RATING_MAX:
            raise ValidationException(
                f"Rating must be an integer between {RATING_MIN} and {RATING_MAX}",
                {"rating": rating}
            )
        self.check_source_status(Transition.RATE, ticket)
        if ticket.rating is not None:
            raise InvalidStateException(
                "Ticket has already been rated",
                current_status=ticket.status.value,
            )

        now = now or self._clock()
        old_status = ticket.status
        ticket.rating = rating
        ticket.feedback = (feedback or "").strip() or None
        ticket.rating_submitted_at = now

        return self._record(
            Transition.RATE, ticket, actor, old_status, now,
            student_visible=False,
            rating=rating,
            feedback=ticket.feedback,
        )
