"""
Ticket Controllers (API Routes)
================================

FastAPI routes for the ticket lifecycle.

Controllers are thin - they resolve the caller, delegate to the
application services and shape the response. Failures propagate as
``ApplicationException`` subclasses and are mapped to HTTP statuses by
the application's exception handlers.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from sst_resolve.config import CommentVisibility, canonical_status
from sst_resolve.core import ValidationException
from sst_resolve.sla.application import ISLAConfigProvider, TicketSLAResponse
from sst_resolve.tickets.application import (
    AcknowledgeRequest,
    CommentRequest,
    EscalateRequest,
    EscalationResponse,
    RateRequest,
    ReassignRequest,
    ReopenRequest,
    TATRequest,
    TicketCreateRequest,
    TicketOperationResult,
    TicketResponse,
    TicketService,
    TransitionResponse,
)
from sst_resolve.tickets.application.dto import event_type_of
from sst_resolve.tickets.domain import Actor
from sst_resolve.tickets.interfaces.dependencies import (
    get_config_provider,
    get_current_actor,
    get_ticket_service,
)

router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "domain": "Hostel",
    "scope": "Velankani",
    "description": "Water leakage in room 204 since yesterday evening",
    "details": {"room_number": "204"}
}

ESCALATION_RESPONSE_EXAMPLE = {
    "ticket_id": 42,
    "previous_level": 0,
    "new_level": 1,
    "previous_assignee": "8c1d4e1e-6a43-4c63-9a0e-2b7f3c0f1a11",
    "new_assignee": "1f9e8d7c-2b3a-4c5d-8e9f-0a1b2c3d4e5f",
    "previous_status": "in_progress",
    "new_status": "escalated",
    "escalated_to": "level_1",
    "urgent": False,
    "event_type": "ticket.escalated.manual"
}


def _transition_response(result: TicketOperationResult, actor: Actor) -> TransitionResponse:
    record = result.record
    return TransitionResponse(
        ticket=TicketResponse.from_ticket(result.ticket, include_internal=actor.is_admin),
        changed=record.changed if record is not None else True,
        previous_status=record.old_status.value if record is not None else None,
        new_status=result.ticket.status.value,
        event_type=event_type_of(result.event),
    )


def _parse_user_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise ValidationException("Invalid user id", {"assignee_id": value})


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TransitionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File a ticket",
    description="""
    File a new ticket. Acknowledgement and resolution deadlines are stamped
    from the SLA policy of the ticket's domain and scope; a null budget
    means the ticket carries no deadline for that clock.
    """
)
async def create_ticket(
    request: TicketCreateRequest = Body(..., examples=[TICKET_CREATE_EXAMPLE]),
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    result = await service.create_ticket(
        actor,
        domain=request.domain,
        scope=request.scope,
        description=request.description,
        category_id=request.category_id,
        subcategory_id=request.subcategory_id,
        sub_subcategory_id=request.sub_subcategory_id,
        details=request.details,
    )
    return _transition_response(result, actor)


@router.get(
    "",
    response_model=List[TicketResponse],
    summary="List tickets",
    description="Admins see every ticket; students and committee members see their own."
)
async def list_tickets(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    statuses = None
    if status_filter:
        parsed = canonical_status(status_filter)
        if parsed is None:
            raise ValidationException(f"Unknown status: {status_filter}")
        statuses = [parsed]

    tickets = await service.list_tickets(actor, statuses=statuses, limit=limit, offset=offset)
    return [TicketResponse.from_ticket(t, include_internal=actor.is_admin) for t in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: int,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.get_ticket(ticket_id, actor)
    return TicketResponse.from_ticket(ticket, include_internal=actor.is_admin)


@router.get(
    "/{ticket_id}/sla",
    response_model=TicketSLAResponse,
    summary="Get ticket SLA status",
    description="""
    Acknowledgement and resolution clocks for one ticket.

    States: `no_sla`, `on_track`, `at_risk`, `breached`, `met`.
    """
)
async def get_ticket_sla(
    ticket_id: int,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service),
    config_provider: ISLAConfigProvider = Depends(get_config_provider)
):
    return await service.sla_status(
        ticket_id,
        actor,
        warning_threshold_percent=config_provider.get_config().warning_threshold_percent,
    )


@router.post("/{ticket_id}/acknowledge", response_model=TransitionResponse, summary="Acknowledge a ticket")
async def acknowledge_ticket(
    ticket_id: int,
    request: Optional[AcknowledgeRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    message = request.message if request else None
    result = await service.acknowledge(ticket_id, actor, message=message)
    return _transition_response(result, actor)


@router.post(
    "/{ticket_id}/comments",
    response_model=TransitionResponse,
    summary="Comment on a ticket",
    description="""
    Add a comment. Visibility is `student_visible`, `internal_note`
    (admins only) or `super_admin_note` (super admins only).
    `ask_student` moves the ticket to awaiting the student's reply.
    """
)
async def add_comment(
    ticket_id: int,
    request: CommentRequest,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    result = await service.add_comment(
        ticket_id,
        actor,
        request.text,
        visibility=CommentVisibility(request.visibility),
        ask_student=request.ask_student,
    )
    return _transition_response(result, actor)


@router.post(
    "/{ticket_id}/escalate",
    response_model=EscalationResponse,
    summary="Escalate a ticket",
    description="""
    Route the ticket to the next level of its escalation chain. Once the
    chain is exhausted the ticket goes to a super admin; from level 2 on
    that escalation is flagged urgent.
    """,
    responses={200: {"content": {"application/json": {"example": ESCALATION_RESPONSE_EXAMPLE}}}}
)
async def escalate_ticket(
    ticket_id: int,
    request: Optional[EscalateRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    reason = request.reason if request else None
    result = await service.escalate(ticket_id, actor, reason=reason)
    return EscalationResponse(
        ticket_id=result.ticket.id,
        previous_level=result.previous_level,
        new_level=result.new_level,
        previous_assignee=str(result.previous_assignee) if result.previous_assignee else None,
        new_assignee=str(result.new_assignee) if result.new_assignee else None,
        previous_status=result.previous_status.value,
        new_status=result.new_status.value,
        escalated_to=result.escalated_to,
        urgent=result.urgent,
        event_type=result.event.event_type.value,
    )


@router.post("/{ticket_id}/reassign", response_model=TransitionResponse, summary="Reassign a ticket")
async def reassign_ticket(
    ticket_id: int,
    request: ReassignRequest,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    assignee_id = _parse_user_id(request.assignee_id) if request.assignee_id else None
    result = await service.reassign(ticket_id, actor, assignee_id)
    return _transition_response(result, actor)


@router.post("/{ticket_id}/resolve", response_model=TransitionResponse, summary="Resolve a ticket")
async def resolve_ticket(
    ticket_id: int,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    result = await service.resolve(ticket_id, actor)
    return _transition_response(result, actor)


@router.post("/{ticket_id}/reopen", response_model=TransitionResponse, summary="Reopen a resolved ticket")
async def reopen_ticket(
    ticket_id: int,
    request: Optional[ReopenRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    reason = request.reason if request else None
    result = await service.reopen(ticket_id, actor, reason=reason)
    return _transition_response(result, actor)


@router.post("/{ticket_id}/rate", response_model=TransitionResponse, summary="Rate a resolved ticket")
async def rate_ticket(
    ticket_id: int,
    request: RateRequest,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    result = await service.rate(ticket_id, actor, request.rating, request.feedback)
    return _transition_response(result, actor)


@router.post(
    "/{ticket_id}/tat",
    response_model=TransitionResponse,
    summary="Set or extend the turnaround time",
    description='TAT text such as "2 days" or "1 week"; unparseable text means one day.'
)
async def set_ticket_tat(
    ticket_id: int,
    request: TATRequest,
    actor: Actor = Depends(get_current_actor),
    service: TicketService = Depends(get_ticket_service)
):
    result = await service.set_tat(ticket_id, actor, request.tat, mark_in_progress=request.mark_in_progress)
    return _transition_response(result, actor)
