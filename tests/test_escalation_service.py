from datetime import timedelta

import pytest

from conftest import NOW
from sst_resolve.config import EscalationTrigger, EventType, TicketStatus
from sst_resolve.core import (
    ForbiddenException,
    InvalidStateException,
    ResourceNotFoundException,
    ValidationException,
)
from sst_resolve.tickets.domain import Actor


@pytest.fixture
def chain(rules, admin, other_admin):
    rules.add("Hostel", 1, admin.user_id, tat_hours=24)
    rules.add("Hostel", 2, other_admin.user_id, tat_hours=12)


async def test_manual_escalation_walks_to_next_level(escalation_service, store_ticket, ticket_repo,
                                                     outbox_repo, student, admin, chain):
    ticket_id = await store_ticket(status=TicketStatus.IN_PROGRESS)

    result = await escalation_service.escalate(ticket_id, student, reason="No water for 2 days")

    assert result.previous_level == 0
    assert result.new_level == 1
    assert result.escalated_to == "level_1"
    assert result.new_assignee == admin.user_id
    assert not result.urgent

    stored = ticket_repo.stored(ticket_id)
    assert stored.status == TicketStatus.ESCALATED
    assert stored.escalation_level == 1
    assert stored.assigned_to == admin.user_id

    [event] = outbox_repo.of_type(EventType.ESCALATED_MANUAL)
    assert event.payload["ticket_id"] == ticket_id
    assert event.payload["reason"] == "No water for 2 days"
    assert event.payload["trigger"] == "manual"
    assert event.payload["new_level"] == 1


async def test_next_level_is_chosen_from_current_level(escalation_service, store_ticket, other_admin, chain,
                                                       student):
    ticket_id = await store_ticket(status=TicketStatus.ESCALATED, escalation_level=1)

    result = await escalation_service.escalate(ticket_id, student)

    assert result.escalated_to == "level_2"
    assert result.new_assignee == other_admin.user_id


async def test_skipped_levels_are_jumped_over(escalation_service, store_ticket, rules, directory,
                                              admin, other_admin, student):
    rules.add("Hostel", 1, admin.user_id)
    rules.add("Hostel", 3, other_admin.user_id)
    directory.remove(admin.user_id)
    ticket_id = await store_ticket()

    result = await escalation_service.escalate(ticket_id, student)

    assert result.escalated_to == "level_3"
    assert result.new_level == 1


async def test_exhausted_chain_goes_to_super_admin(escalation_service, store_ticket, super_admin, student):
    ticket_id = await store_ticket()

    result = await escalation_service.escalate(ticket_id, student)

    assert result.escalated_to == "super_admin"
    assert result.new_assignee == super_admin.user_id
    assert not result.urgent


async def test_exhausted_chain_after_first_escalation_is_urgent(escalation_service, store_ticket,
                                                                  super_admin, chain, student):
    ticket_id = await store_ticket(status=TicketStatus.ESCALATED, escalation_level=2)

    result = await escalation_service.escalate(ticket_id, student)

    assert result.escalated_to == "super_admin_urgent"
    assert result.urgent
    assert result.new_level == 3
    assert result.event.payload["urgent"] is True


async def test_no_super_admin_keeps_assignee_and_still_escalates(escalation_service, store_ticket,
                                                                 admin, student, caplog):
    ticket_id = await store_ticket(assigned_to=admin.user_id)

    result = await escalation_service.escalate(ticket_id, student)

    assert result.new_level == 1
    assert result.new_assignee == admin.user_id
    assert "No super admin available" in caplog.text


async def test_resolved_ticket_is_rejected_and_nothing_is_written(escalation_service, store_ticket,
                                                                  ticket_repo, outbox_repo, admin, chain):
    ticket_id = await store_ticket(status=TicketStatus.RESOLVED)

    with pytest.raises(InvalidStateException):
        await escalation_service.escalate(ticket_id, admin)

    assert ticket_repo.stored(ticket_id).escalation_level == 0
    assert ticket_repo.saves == 0
    assert outbox_repo.events == []


async def test_committee_member_cannot_escalate(escalation_service, store_ticket, committee, outbox_repo):
    ticket_id = await store_ticket(creator_id=committee.user_id)

    with pytest.raises(ForbiddenException):
        await escalation_service.escalate(ticket_id, committee)
    assert outbox_repo.events == []


async def test_unknown_ticket(escalation_service, admin):
    with pytest.raises(ResourceNotFoundException):
        await escalation_service.escalate(999, admin)


async def test_overlong_reason_is_rejected(escalation_service, store_ticket, student, ticket_repo):
    ticket_id = await store_ticket()

    with pytest.raises(ValidationException):
        await escalation_service.escalate(ticket_id, student, reason="x" * 201)
    assert ticket_repo.saves == 0


async def test_automatic_escalation_stamps_breach_and_rule_deadline(escalation_service, ticket_repo,
                                                                    store_ticket, outbox_repo, chain):
    ticket_id = await store_ticket(resolution_due_at=None)
    ticket = await ticket_repo.get_for_update(ticket_id)
    breached_at = NOW - timedelta(hours=2)

    result = await escalation_service.escalate_ticket(
        ticket,
        Actor.system(),
        reason="SLA breach",
        trigger=EscalationTrigger.AUTOMATIC,
        breached_at=breached_at,
        now=NOW,
    )

    stored = ticket_repo.stored(ticket_id)
    assert stored.sla_breached_at == breached_at
    assert stored.resolution_due_at == NOW + timedelta(hours=24)
    assert result.event.event_type == EventType.ESCALATED_AUTO
    assert result.event.payload["actor_role"] == "system"


async def test_automatic_escalation_keeps_existing_deadline(escalation_service, ticket_repo,
                                                            store_ticket, chain):
    due = NOW + timedelta(hours=5)
    ticket_id = await store_ticket(resolution_due_at=due)
    ticket = await ticket_repo.get_for_update(ticket_id)

    await escalation_service.escalate_ticket(
        ticket, Actor.system(), trigger=EscalationTrigger.AUTOMATIC, now=NOW
    )

    assert ticket_repo.stored(ticket_id).resolution_due_at == due
