"""
Auto-Escalation Triggers
========================

Pure predicates deciding whether the breach sweep should escalate a ticket
and whether the reminder sweep should nudge its assignee.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sst_resolve.config import TicketStatus
from sst_resolve.sla.domain import AutoEscalationConfig, ReminderConfig, TATCalculator
from sst_resolve.tickets.domain.entities import Ticket


@dataclass
class AutoEscalationCheck:
    """Why (if at all) a ticket should be auto-escalated."""
    reasons: List[str] = field(default_factory=list)
    breached_at: Optional[datetime] = None
    in_cooldown: bool = False

    @property
    def should_escalate(self) -> bool:
        return bool(self.reasons) and not self.in_cooldown

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


def check_auto_escalation(
    ticket: Ticket,
    now: datetime,
    config: AutoEscalationConfig
) -> AutoEscalationCheck:
    """
    Evaluate every auto-escalation trigger for ``ticket`` at ``now``.

    Triggers:
    - a deadline has passed (SLA breach)
    - TAT extended ``tat_extension_limit`` times or more
    - reopened ``reopen_limit`` times or more
    - rated at or below ``low_rating_threshold``
    - reassigned more than ``forward_limit`` times
    - IN_PROGRESS with no activity for ``stalled_hours``
    - no activity at all for ``inactive_days``

    Tickets escalated within ``cooldown_days`` are reported but flagged
    ``in_cooldown``. Terminal tickets never trigger.
    """
    check = AutoEscalationCheck()
    if ticket.status.is_terminal:
        return check

    check.breached_at = TATCalculator.missed_deadline(
        now,
        ticket.status,
        acknowledgement_due_at=ticket.acknowledgement_due_at,
        resolution_due_at=ticket.resolution_due_at,
        acknowledged_at=ticket.acknowledged_at,
    )
    if check.breached_at is not None:
        check.reasons.append("SLA breach (deadline passed)")

    if ticket.tat_extended_count >= config.tat_extension_limit:
        check.reasons.append(f"TAT extension limit ({ticket.tat_extended_count} extensions)")

    if ticket.reopen_count >= config.reopen_limit:
        check.reasons.append(f"repeated reopening ({ticket.reopen_count} times)")

    if ticket.rating is not None and ticket.rating <= config.low_rating_threshold:
        check.reasons.append(f"negative feedback ({ticket.rating} star rating)")

    if ticket.metadata.forward_count > config.forward_limit:
        check.reasons.append(f"ping-pong forwarding ({ticket.metadata.forward_count} forwards)")

    idle = now - ticket.last_activity_at
    if ticket.status == TicketStatus.IN_PROGRESS and idle >= timedelta(hours=config.stalled_hours):
        check.reasons.append(f"stalled in progress (no activity for {config.stalled_hours:g} hours)")
    elif idle >= timedelta(days=config.inactive_days):
        check.reasons.append(f"inactive for {config.inactive_days:g} days")

    if ticket.last_escalation_at is not None:
        check.in_cooldown = now - ticket.last_escalation_at < timedelta(days=config.cooldown_days)

    return check


@dataclass
class DueReminders:
    """Reminders owed for one ticket; ``local_date`` is today in campus time."""
    local_date: str
    tat_due_today: bool = False
    unacknowledged_hours: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self.tat_due_today or self.unacknowledged_hours is not None


def due_reminders(ticket: Ticket, now: datetime, config: ReminderConfig) -> DueReminders:
    """
    Work out which reminders ``ticket`` is owed at ``now``.

    - TAT: the resolution deadline falls on today's local date, sent once
      per date and never on Saturday or Sunday when ``skip_weekends`` is set
    - acknowledgement: still unacknowledged ``unacknowledged_hours`` after
      creation, repeated at most every ``repeat_hours``
    """
    today = now.astimezone(config.tzinfo).date()
    due = DueReminders(local_date=today.isoformat())
    if not config.enabled or ticket.status.is_terminal:
        return due

    weekend = config.skip_weekends and today.weekday() >= 5
    if (
        not weekend
        and ticket.resolution_due_at is not None
        and ticket.resolution_due_at.astimezone(config.tzinfo).date() == today
        and ticket.metadata.tat_reminded_on != due.local_date
    ):
        due.tat_due_today = True

    if ticket.acknowledged_at is None:
        waiting = now - ticket.created_at
        last = ticket.metadata.ack_reminded_at
        if waiting >= timedelta(hours=config.unacknowledged_hours) and (
            last is None or now - last >= timedelta(hours=config.repeat_hours)
        ):
            due.unacknowledged_hours = waiting.total_seconds() / 3600

    return due
