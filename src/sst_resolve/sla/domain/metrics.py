"""
SLA Metrics
===========

Read-only analytics over historical tickets.

Every function here is pure. Elapsed time uses the same definition as
``TATCalculator.hours_between`` so dashboards and deadlines agree.
Tickets are duck-typed: anything exposing the attributes read below works.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from sst_resolve.config import TicketStatus, canonical_status
from sst_resolve.sla.domain.value_objects import TATCalculator

hours_between = TATCalculator.hours_between


def average_hours_between(
    tickets: Iterable[Any],
    start_attr: str,
    end_attr: str,
    where: Optional[Callable[[Any], bool]] = None
) -> Optional[float]:
    """
    Mean hours from ``start_attr`` to ``end_attr`` over tickets that have both.

    Returns None when no ticket qualifies.
    """
    total = 0.0
    count = 0
    for ticket in tickets:
        if where is not None and not where(ticket):
            continue
        start = getattr(ticket, start_attr, None)
        end = getattr(ticket, end_attr, None)
        if start is None or end is None:
            continue
        total += hours_between(start, end)
        count += 1
    return total / count if count else None


def percentage(part: int, total: int) -> float:
    """``part`` as a percentage of ``total``; 0.0 for an empty total."""
    if total <= 0:
        return 0.0
    return part / total * 100


def count_in_window(
    timestamps: Iterable[Optional[datetime]],
    now: datetime,
    days: int
) -> int:
    """Count timestamps in the rolling window ``(now - days, now]``."""
    window_start = now - timedelta(days=days)
    return sum(1 for ts in timestamps if ts is not None and window_start < ts <= now)


@dataclass
class TicketMetrics:
    """Summary statistics for a ticket collection."""
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    active: int = 0
    resolved: int = 0
    escalated: int = 0
    reopened: int = 0
    overdue: int = 0
    breached: int = 0
    average_acknowledgement_hours: Optional[float] = None
    average_resolution_hours: Optional[float] = None
    resolution_rate: float = 0.0
    sla_compliance_rate: float = 0.0
    average_rating: Optional[float] = None
    created_last_7_days: int = 0
    created_last_30_days: int = 0
    resolved_last_7_days: int = 0
    resolved_last_30_days: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _status_of(ticket: Any) -> Optional[TicketStatus]:
    status = getattr(ticket, "status", None)
    if isinstance(status, TicketStatus):
        return status
    return canonical_status(status)


def summarize_tickets(tickets: Iterable[Any], now: datetime) -> TicketMetrics:
    """
    Aggregate a ticket collection.

    SLA compliance counts resolved tickets that carried a resolution
    deadline and were resolved on or before it.
    """
    tickets = list(tickets)
    metrics = TicketMetrics(total=len(tickets))
    for status in TicketStatus:
        metrics.by_status[status.value] = 0

    with_deadline = 0
    on_time = 0
    ratings = []

    for ticket in tickets:
        status = _status_of(ticket)
        if status is not None:
            metrics.by_status[status.value] += 1
            if status.is_terminal:
                metrics.resolved += 1
            else:
                metrics.active += 1
                if TATCalculator.is_overdue(
                    now,
                    status,
                    acknowledgement_due_at=getattr(ticket, "acknowledgement_due_at", None),
                    resolution_due_at=getattr(ticket, "resolution_due_at", None),
                    acknowledged_at=getattr(ticket, "acknowledged_at", None),
                ):
                    metrics.overdue += 1

        if (getattr(ticket, "escalation_level", 0) or 0) > 0:
            metrics.escalated += 1
        if (getattr(ticket, "reopen_count", 0) or 0) > 0:
            metrics.reopened += 1
        if getattr(ticket, "sla_breached_at", None) is not None:
            metrics.breached += 1

        due = getattr(ticket, "resolution_due_at", None)
        resolved_at = getattr(ticket, "resolved_at", None)
        if due is not None and resolved_at is not None:
            with_deadline += 1
            if resolved_at <= due:
                on_time += 1

        rating = getattr(ticket, "rating", None)
        if rating is not None:
            ratings.append(rating)

    metrics.average_acknowledgement_hours = average_hours_between(
        tickets, "created_at", "acknowledged_at"
    )
    metrics.average_resolution_hours = average_hours_between(
        tickets, "created_at", "resolved_at"
    )
    metrics.resolution_rate = percentage(metrics.resolved, metrics.total)
    metrics.sla_compliance_rate = percentage(on_time, with_deadline)
    metrics.average_rating = sum(ratings) / len(ratings) if ratings else None

    created = [getattr(t, "created_at", None) for t in tickets]
    resolved = [getattr(t, "resolved_at", None) for t in tickets]
    metrics.created_last_7_days = count_in_window(created, now, 7)
    metrics.created_last_30_days = count_in_window(created, now, 30)
    metrics.resolved_last_7_days = count_in_window(resolved, now, 7)
    metrics.resolved_last_30_days = count_in_window(resolved, now, 30)

    return metrics
