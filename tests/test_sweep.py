from datetime import timedelta

import pytest

from conftest import NOW
from sst_resolve.config import EventType, TicketStatus
from sst_resolve.sla.domain import AutoEscalationConfig
from sst_resolve.tickets.domain import check_auto_escalation


@pytest.fixture
def auto_config():
    return AutoEscalationConfig()


@pytest.fixture
def fresh(make_ticket):
    """A ticket updated just now, with no deadline."""

    def _fresh(**overrides):
        values = dict(created_at=NOW - timedelta(minutes=5), updated_at=NOW - timedelta(minutes=5))
        values.update(overrides)
        return make_ticket(**values)

    return _fresh


# ========== Trigger predicate ==========

def test_fresh_ticket_has_no_triggers(fresh, auto_config):
    assert not check_auto_escalation(fresh(), NOW, auto_config).reasons


def test_breach_trigger(fresh, auto_config):
    check = check_auto_escalation(fresh(resolution_due_at=NOW - timedelta(hours=1)), NOW, auto_config)
    assert check.should_escalate
    assert check.breached_at == NOW - timedelta(hours=1)


@pytest.mark.parametrize("overrides, fragment", [
    ({"tat_extended_count": 3}, "TAT extension limit"),
    ({"reopen_count": 3}, "repeated reopening"),
    ({"rating": 2}, "negative feedback"),
])
def test_counter_triggers(fresh, auto_config, overrides, fragment):
    check = check_auto_escalation(fresh(**overrides), NOW, auto_config)
    assert fragment in check.reason


def test_forwarding_trigger_needs_more_than_limit(fresh, auto_config):
    ticket = fresh()
    ticket.metadata.forward_count = 3
    assert not check_auto_escalation(ticket, NOW, auto_config).reasons

    ticket.metadata.forward_count = 4
    assert "ping-pong" in check_auto_escalation(ticket, NOW, auto_config).reason


def test_stalled_in_progress(fresh, auto_config):
    ticket = fresh(
        status=TicketStatus.IN_PROGRESS,
        created_at=NOW - timedelta(hours=60),
        updated_at=NOW - timedelta(hours=49),
    )
    assert "stalled" in check_auto_escalation(ticket, NOW, auto_config).reason


def test_inactive_ticket(fresh, auto_config):
    ticket = fresh(created_at=NOW - timedelta(days=8), updated_at=NOW - timedelta(days=7))
    assert "inactive" in check_auto_escalation(ticket, NOW, auto_config).reason


def test_recent_escalation_is_in_cooldown(fresh, auto_config):
    ticket = fresh(
        status=TicketStatus.ESCALATED,
        escalation_level=1,
        last_escalation_at=NOW - timedelta(days=1),
        resolution_due_at=NOW - timedelta(hours=1),
    )
    check = check_auto_escalation(ticket, NOW, auto_config)
    assert check.reasons
    assert check.in_cooldown
    assert not check.should_escalate


def test_resolved_tickets_never_trigger(fresh, auto_config):
    ticket = fresh(status=TicketStatus.RESOLVED, resolution_due_at=NOW - timedelta(days=3), reopen_count=5)
    assert not check_auto_escalation(ticket, NOW, auto_config).reasons


# ========== Sweep ==========

async def test_sweep_escalates_breached_tickets(sweep_service, store_ticket, ticket_repo, outbox_repo,
                                                rules, admin):
    rules.add("Hostel", 1, admin.user_id)
    breached_id = await store_ticket(resolution_due_at=NOW - timedelta(hours=2))
    healthy_id = await store_ticket(
        created_at=NOW - timedelta(minutes=1),
        updated_at=NOW - timedelta(minutes=1),
        resolution_due_at=NOW + timedelta(hours=20),
    )

    result = await sweep_service.sweep()

    assert result.scanned == 2
    assert result.breached == 1
    assert result.escalated == 1
    assert result.escalated_ticket_ids == [breached_id]

    breached = ticket_repo.stored(breached_id)
    assert breached.status == TicketStatus.ESCALATED
    assert breached.assigned_to == admin.user_id
    assert breached.sla_breached_at == NOW - timedelta(hours=2)
    assert ticket_repo.stored(healthy_id).escalation_level == 0

    [event] = outbox_repo.of_type(EventType.ESCALATED_AUTO)
    assert event.payload["ticket_id"] == breached_id
    assert "SLA breach" in event.payload["reason"]


async def test_sweep_respects_cooldown_but_stamps_breach(sweep_service, store_ticket, ticket_repo, outbox_repo):
    ticket_id = await store_ticket(
        status=TicketStatus.ESCALATED,
        escalation_level=1,
        last_escalation_at=NOW - timedelta(hours=12),
        resolution_due_at=NOW - timedelta(hours=1),
    )

    result = await sweep_service.sweep()

    assert result.escalated == 0
    assert result.skipped_cooldown == 1
    assert ticket_repo.stored(ticket_id).sla_breached_at == NOW - timedelta(hours=1)
    assert ticket_repo.stored(ticket_id).escalation_level == 1
    assert outbox_repo.events == []


async def test_breach_is_stamped_once(sweep_service, store_ticket, ticket_repo, clock, super_admin):
    ticket_id = await store_ticket(resolution_due_at=NOW - timedelta(hours=1))

    await sweep_service.sweep()
    clock.advance(days=3)
    second = await sweep_service.sweep()

    assert second.breached == 0
    assert ticket_repo.stored(ticket_id).sla_breached_at == NOW - timedelta(hours=1)
    assert ticket_repo.stored(ticket_id).escalation_level == 2


async def test_disabled_auto_escalation_only_stamps(sweep_service, store_ticket, ticket_repo, config_provider):
    config_provider.config.auto_escalation.enabled = False
    ticket_id = await store_ticket(resolution_due_at=NOW - timedelta(hours=1))

    result = await sweep_service.sweep()

    assert result.escalated == 0
    assert result.breached == 1
    assert ticket_repo.stored(ticket_id).sla_breached_at is not None
    assert ticket_repo.stored(ticket_id).status == TicketStatus.OPEN


async def test_resolved_tickets_are_not_scanned(sweep_service, store_ticket):
    await store_ticket(status=TicketStatus.RESOLVED, resolution_due_at=NOW - timedelta(days=1))
    result = await sweep_service.sweep()
    assert result.scanned == 0
