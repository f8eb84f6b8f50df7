from datetime import timedelta

import pytest

from conftest import NOW
from sst_resolve.config import CommentVisibility, EventType, TicketStatus
from sst_resolve.core import (
    ForbiddenException,
    InvalidStateException,
    ResourceNotFoundException,
    ValidationException,
)
from sst_resolve.tickets.domain import Actor


async def test_create_ticket_stamps_deadlines_from_policy(ticket_service, ticket_repo, outbox_repo, student):
    result = await ticket_service.create_ticket(
        student, domain=" Hostel ", scope="Velankani", description="Leaking tap",
        details={"room": "204"},
    )

    ticket = ticket_repo.stored(result.ticket.id)
    assert ticket.status == TicketStatus.OPEN
    assert ticket.acknowledgement_due_at == NOW + timedelta(hours=12)
    assert ticket.resolution_due_at == NOW + timedelta(hours=48)
    assert ticket.resolution_tat_hours == 48
    assert ticket.metadata.extra == {"room": "204"}

    [event] = outbox_repo.events
    assert event.event_type == EventType.TICKET_CREATED
    assert event.payload["domain"] == "Hostel"
    assert event.payload["creator_id"] == str(student.user_id)


async def test_create_ticket_without_sla(ticket_service, student):
    result = await ticket_service.create_ticket(student, domain="College")
    assert result.ticket.acknowledgement_due_at is None
    assert result.ticket.resolution_due_at is None


async def test_create_ticket_requires_domain(ticket_service, student):
    with pytest.raises(ValidationException):
        await ticket_service.create_ticket(student, domain="  ")


async def test_create_ticket_rejects_reserved_detail_keys(ticket_service, outbox_repo, student):
    with pytest.raises(ValidationException) as info:
        await ticket_service.create_ticket(
            student, domain="Hostel", details={"room": "204", "tat": "1 hour", "comments": []},
        )

    assert info.value.details == {"keys": ["comments", "tat"]}
    assert outbox_repo.events == []


async def test_system_cannot_file_tickets(ticket_service):
    with pytest.raises(ForbiddenException):
        await ticket_service.create_ticket(Actor.system(), domain="Hostel")


async def test_students_only_read_their_own_tickets(ticket_service, store_ticket, student, other_student, admin):
    ticket_id = await store_ticket()

    assert (await ticket_service.get_ticket(ticket_id, student)).id == ticket_id
    assert (await ticket_service.get_ticket(ticket_id, admin)).id == ticket_id
    with pytest.raises(ForbiddenException):
        await ticket_service.get_ticket(ticket_id, other_student)


async def test_list_tickets_scopes_students_to_their_own(ticket_service, store_ticket, student,
                                                          other_student, admin):
    await store_ticket()
    await store_ticket(creator_id=other_student.user_id)

    assert len(await ticket_service.list_tickets(student)) == 1
    assert len(await ticket_service.list_tickets(admin)) == 2
    assert await ticket_service.list_tickets(admin, statuses=[TicketStatus.RESOLVED]) == []


async def test_missing_ticket(ticket_service, admin):
    with pytest.raises(ResourceNotFoundException):
        await ticket_service.acknowledge(404, admin)


async def test_acknowledge_persists_and_records_event(ticket_service, store_ticket, ticket_repo,
                                                      outbox_repo, admin):
    ticket_id = await store_ticket()

    result = await ticket_service.acknowledge(ticket_id, admin)

    assert ticket_repo.stored(ticket_id).status == TicketStatus.IN_PROGRESS
    assert result.event.event_type == EventType.ACKNOWLEDGED
    assert result.event.payload["previous_status"] == "open"
    assert outbox_repo.events == [result.event]


async def test_rejected_operation_writes_nothing(ticket_service, store_ticket, ticket_repo,
                                                 outbox_repo, student):
    ticket_id = await store_ticket()

    with pytest.raises(ForbiddenException):
        await ticket_service.resolve(ticket_id, student)

    assert ticket_repo.saves == 0
    assert outbox_repo.events == []


async def test_no_op_resolve_records_no_event(ticket_service, store_ticket, outbox_repo, admin):
    ticket_id = await store_ticket(status=TicketStatus.RESOLVED, resolved_at=NOW)

    result = await ticket_service.resolve(ticket_id, admin)

    assert not result.record.changed
    assert result.event is None
    assert outbox_repo.events == []


async def test_comment_round_trip(ticket_service, store_ticket, ticket_repo, admin, student):
    ticket_id = await store_ticket(status=TicketStatus.IN_PROGRESS, assigned_to=admin.user_id)

    await ticket_service.add_comment(ticket_id, admin, "Which floor?", ask_student=True)
    await ticket_service.add_comment(ticket_id, student, "Second floor")
    await ticket_service.add_comment(ticket_id, admin, "Plumber booked", visibility=CommentVisibility.INTERNAL_NOTE)

    ticket = ticket_repo.stored(ticket_id)
    assert ticket.status == TicketStatus.IN_PROGRESS
    assert [c.text for c in ticket.metadata.comments] == ["Which floor?", "Second floor", "Plumber booked"]


async def test_reassign_requires_existing_admin(ticket_service, store_ticket, directory, admin,
                                                other_admin, student):
    ticket_id = await store_ticket(status=TicketStatus.IN_PROGRESS, assigned_to=admin.user_id)

    with pytest.raises(ValidationException):
        await ticket_service.reassign(ticket_id, admin, student.user_id)

    result = await ticket_service.reassign(ticket_id, admin, other_admin.user_id)
    assert result.ticket.assigned_to == other_admin.user_id
    assert result.event.event_type == EventType.REASSIGNED
    assert not result.event.payload["student_visible"]

    result = await ticket_service.reassign(ticket_id, admin, None)
    assert result.ticket.assigned_to is None


async def test_reassign_to_unknown_user(ticket_service, store_ticket, admin):
    from uuid import uuid4

    ticket_id = await store_ticket(status=TicketStatus.IN_PROGRESS)
    with pytest.raises(ResourceNotFoundException):
        await ticket_service.reassign(ticket_id, admin, uuid4())


async def test_resolve_reopen_rate(ticket_service, store_ticket, ticket_repo, clock, admin, student):
    ticket_id = await store_ticket(status=TicketStatus.IN_PROGRESS)

    await ticket_service.resolve(ticket_id, admin)
    clock.advance(hours=1)
    await ticket_service.reopen(ticket_id, student, reason="Still leaking")
    assert ticket_repo.stored(ticket_id).reopen_count == 1

    await ticket_service.resolve(ticket_id, admin)
    result = await ticket_service.rate(ticket_id, student, 5, "Thanks")
    assert result.event.event_type == EventType.RATED
    assert ticket_repo.stored(ticket_id).rating == 5

    with pytest.raises(InvalidStateException):
        await ticket_service.rate(ticket_id, student, 4)


async def test_set_tat_records_event(ticket_service, store_ticket, ticket_repo, admin):
    ticket_id = await store_ticket()

    result = await ticket_service.set_tat(ticket_id, admin, "3 days", mark_in_progress=True)

    assert result.event.event_type == EventType.TAT_SET
    stored = ticket_repo.stored(ticket_id)
    assert stored.resolution_due_at == NOW + timedelta(days=3)
    assert stored.metadata.tat == "3 days"


async def test_escalate_delegates_to_engine(ticket_service, store_ticket, super_admin, student):
    ticket_id = await store_ticket()
    result = await ticket_service.escalate(ticket_id, student, reason="Urgent")
    assert result.new_assignee == super_admin.user_id


async def test_sla_status_reports_clocks(ticket_service, store_ticket, student):
    ticket_id = await store_ticket(
        created_at=NOW - timedelta(hours=30),
        updated_at=NOW - timedelta(hours=30),
        acknowledgement_due_at=NOW - timedelta(hours=6),
        resolution_due_at=NOW + timedelta(hours=42),
    )

    status = await ticket_service.sla_status(ticket_id, student)

    assert status.is_overdue
    assert status.missed_deadline == NOW - timedelta(hours=6)
    assert status.acknowledgement.state == "breached"
    assert status.resolution.state == "on_track"
    assert status.resolution.remaining_seconds == 42 * 3600
