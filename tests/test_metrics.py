from datetime import timedelta

from conftest import NOW
from sst_resolve.config import TicketStatus
from sst_resolve.sla.domain import count_in_window, percentage, summarize_tickets


def test_percentage_handles_empty_total():
    assert percentage(0, 0) == 0.0
    assert percentage(1, 4) == 25.0


def test_count_in_window_excludes_boundary_and_future():
    stamps = [
        NOW,
        NOW - timedelta(days=7),
        NOW - timedelta(days=6, hours=23),
        NOW + timedelta(minutes=1),
        None,
    ]
    assert count_in_window(stamps, NOW, 7) == 2


def test_empty_collection():
    metrics = summarize_tickets([], NOW)
    assert metrics.total == 0
    assert metrics.resolution_rate == 0.0
    assert metrics.average_resolution_hours is None
    assert metrics.average_rating is None


def test_summary(make_ticket):
    created = NOW - timedelta(days=2)
    tickets = [
        make_ticket(
            status=TicketStatus.RESOLVED,
            created_at=created,
            acknowledged_at=created + timedelta(hours=2),
            resolved_at=created + timedelta(hours=10),
            resolution_due_at=created + timedelta(hours=48),
            rating=4,
        ),
        make_ticket(
            status=TicketStatus.RESOLVED,
            created_at=created,
            acknowledged_at=created + timedelta(hours=4),
            resolved_at=created + timedelta(hours=30),
            resolution_due_at=created + timedelta(hours=24),
            reopen_count=1,
            rating=2,
        ),
        make_ticket(
            status=TicketStatus.ESCALATED,
            created_at=NOW - timedelta(days=20),
            resolution_due_at=NOW - timedelta(hours=1),
            escalation_level=1,
            sla_breached_at=NOW - timedelta(hours=1),
        ),
        make_ticket(status=TicketStatus.OPEN, created_at=NOW - timedelta(hours=1)),
    ]

    metrics = summarize_tickets(tickets, NOW)

    assert metrics.total == 4
    assert metrics.by_status["resolved"] == 2
    assert metrics.by_status["escalated"] == 1
    assert metrics.by_status["awaiting_student"] == 0
    assert (metrics.active, metrics.resolved) == (2, 2)
    assert metrics.overdue == 1
    assert metrics.breached == 1
    assert metrics.escalated == 1
    assert metrics.reopened == 1
    assert metrics.average_acknowledgement_hours == 3.0
    assert metrics.average_resolution_hours == 20.0
    assert metrics.resolution_rate == 50.0
    assert metrics.sla_compliance_rate == 50.0
    assert metrics.average_rating == 3.0
    assert metrics.created_last_7_days == 3
    assert metrics.created_last_30_days == 4
    assert metrics.resolved_last_7_days == 2


def test_summary_accepts_raw_status_strings():
    class Row:
        status = "Closed"
        created_at = NOW
        escalation_level = 0

    metrics = summarize_tickets([Row()], NOW)
    assert metrics.by_status["resolved"] == 1
    assert metrics.resolution_rate == 100.0
