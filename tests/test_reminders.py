from datetime import timedelta

import pytest

from conftest import NOW
from sst_resolve.config import EventType, TicketStatus
from sst_resolve.notifications.infrastructure import SlackClient
from sst_resolve.sla.domain import ReminderConfig
from sst_resolve.tickets.application import SLAReminderService
from sst_resolve.tickets.domain import OutboxEvent, due_reminders

# NOW is Monday 2025-03-10 09:00 UTC
SATURDAY = NOW + timedelta(days=5)


@pytest.fixture
def reminder_config():
    return ReminderConfig()


@pytest.fixture
def reminder_service(ticket_repo, outbox_repo, config_provider, clock) -> SLAReminderService:
    return SLAReminderService(ticket_repo, outbox_repo, config_provider, clock=clock)


# ========== Reminder predicate ==========

def test_deadline_later_today_is_due(make_ticket, reminder_config):
    due = due_reminders(make_ticket(resolution_due_at=NOW + timedelta(hours=3)), NOW, reminder_config)
    assert due.tat_due_today
    assert due.local_date == "2025-03-10"


def test_deadline_tomorrow_is_not_due(make_ticket, reminder_config):
    due = due_reminders(make_ticket(resolution_due_at=NOW + timedelta(days=1)), NOW, reminder_config)
    assert not due.pending


def test_today_follows_campus_time(make_ticket, reminder_config):
    # 20:00 UTC is already tomorrow in IST
    ticket = make_ticket(resolution_due_at=NOW.replace(hour=20))
    assert due_reminders(ticket, NOW, reminder_config).tat_due_today

    reminder_config.utc_offset_hours = 5.5
    assert not due_reminders(ticket, NOW, reminder_config).tat_due_today


def test_weekends_are_skipped(make_ticket, reminder_config):
    ticket = make_ticket(
        created_at=SATURDAY - timedelta(hours=1),
        updated_at=SATURDAY - timedelta(hours=1),
        resolution_due_at=SATURDAY + timedelta(hours=3),
    )
    assert not due_reminders(ticket, SATURDAY, reminder_config).tat_due_today

    reminder_config.skip_weekends = False
    assert due_reminders(ticket, SATURDAY, reminder_config).tat_due_today


def test_tat_reminder_sent_once_per_day(make_ticket, reminder_config):
    ticket = make_ticket(resolution_due_at=NOW + timedelta(hours=3))
    ticket.metadata.tat_reminded_on = "2025-03-10"
    assert not due_reminders(ticket, NOW, reminder_config).tat_due_today


def test_unacknowledged_ticket_is_nudged_then_repeated(make_ticket, reminder_config):
    ticket = make_ticket(created_at=NOW - timedelta(hours=3), updated_at=NOW - timedelta(hours=3))
    assert due_reminders(ticket, NOW, reminder_config).unacknowledged_hours == 3

    ticket.metadata.ack_reminded_at = NOW - timedelta(hours=1)
    assert not due_reminders(ticket, NOW, reminder_config).pending

    ticket.metadata.ack_reminded_at = NOW - timedelta(hours=6)
    assert due_reminders(ticket, NOW, reminder_config).pending


def test_young_or_acknowledged_tickets_are_not_nudged(make_ticket, reminder_config):
    assert not due_reminders(make_ticket(), NOW, reminder_config).pending

    ticket = make_ticket(
        status=TicketStatus.IN_PROGRESS,
        created_at=NOW - timedelta(hours=5),
        updated_at=NOW - timedelta(hours=4),
        acknowledged_at=NOW - timedelta(hours=4),
    )
    assert not due_reminders(ticket, NOW, reminder_config).pending


def test_resolved_tickets_get_no_reminders(make_ticket, reminder_config):
    ticket = make_ticket(
        status=TicketStatus.RESOLVED,
        created_at=NOW - timedelta(hours=5),
        resolved_at=NOW - timedelta(hours=1),
        resolution_due_at=NOW + timedelta(hours=3),
    )
    assert not due_reminders(ticket, NOW, reminder_config).pending


# ========== Sweep ==========

async def test_reminders_record_events_and_stamp_ticket(reminder_service, store_ticket, ticket_repo,
                                                        outbox_repo):
    ticket_id = await store_ticket(
        created_at=NOW - timedelta(hours=3),
        updated_at=NOW - timedelta(hours=3),
        resolution_due_at=NOW + timedelta(hours=3),
    )

    result = await reminder_service.remind()

    assert (result.scanned, result.tat_reminders, result.ack_reminders) == (1, 1, 1)
    assert result.reminded_ticket_ids == [ticket_id]
    tat, ack = outbox_repo.events
    assert tat.event_type == EventType.TAT_REMINDER
    assert tat.payload["due_at"] == (NOW + timedelta(hours=3)).isoformat()
    assert ack.event_type == EventType.ACK_REMINDER
    assert ack.payload["reason"] == "Not acknowledged (created 3 hours ago)"

    stored = ticket_repo.stored(ticket_id)
    assert stored.metadata.tat_reminded_on == "2025-03-10"
    assert stored.metadata.ack_reminded_at == NOW
    assert stored.status == TicketStatus.OPEN
    assert stored.updated_at == NOW - timedelta(hours=3)


async def test_rerun_does_not_repeat_reminders(reminder_service, store_ticket, outbox_repo, clock):
    await store_ticket(
        created_at=NOW - timedelta(hours=3),
        updated_at=NOW - timedelta(hours=3),
        resolution_due_at=NOW + timedelta(hours=3),
    )
    await reminder_service.remind()

    clock.now = NOW + timedelta(hours=1)
    second = await reminder_service.remind()

    assert second.reminded_ticket_ids == []
    assert len(outbox_repo.events) == 2


async def test_disabled_reminders_scan_nothing(reminder_service, store_ticket, outbox_repo, config_provider):
    config_provider.config.reminders.enabled = False
    await store_ticket(created_at=NOW - timedelta(hours=3), resolution_due_at=NOW + timedelta(hours=3))

    result = await reminder_service.remind()

    assert result.scanned == 0
    assert outbox_repo.events == []


# ========== Slack ==========

def test_reminder_message_shows_deadline():
    event = OutboxEvent(
        event_type=EventType.TAT_REMINDER,
        payload={"ticket_id": 7, "new_status": "open", "due_at": "2025-03-10T12:00:00+00:00",
                 "reason": "Resolution deadline is due today", "actor_role": "system"},
    )
    client = SlackClient(webhook_url=None)

    message = client.build_message(event)

    assert client.supports(EventType.ACK_REMINDER)
    assert message["blocks"][0]["text"]["text"] == ":alarm_clock: Reminder: TAT Due Today"
    assert "*Due:*\n2025-03-10T12:00:00+00:00" in [f["text"] for f in message["blocks"][1]["fields"]]
