"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA policies, ticket analytics and the breach sweep.

Controllers are thin - they delegate to application services.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from sst_resolve.core import ForbiddenException
from sst_resolve.shared.infrastructure.logging import get_logger
from sst_resolve.sla.application import (
    MetricsResponse,
    SLAPolicyResolver,
    SLAPolicyResponse,
    SweepResponse,
)
from sst_resolve.sla.domain import summarize_tickets
from sst_resolve.tickets.application import ITicketRepository, SLABreachSweepService
from sst_resolve.tickets.domain import Actor
from sst_resolve.tickets.interfaces.dependencies import (
    get_current_actor,
    get_policy_resolver,
    get_sweep_service,
    get_ticket_repository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Example payloads for Swagger ==========

POLICY_RESPONSE_EXAMPLE = {
    "domain": "Hostel",
    "scope": "Velankani",
    "acknowledgement_hours": 24,
    "resolution_hours": 72,
    "chain": [
        {
            "level": 1,
            "user_id": "1f9e8d7c-2b3a-4c5d-8e9f-0a1b2c3d4e5f",
            "name": "Warden",
            "email": "warden@example.edu",
            "tat_hours": 48
        }
    ]
}


# ========== Dependencies ==========

async def get_admin_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Caller must be an admin (or super admin)."""
    if not actor.is_admin:
        raise ForbiddenException("Admin access required")
    return actor


# ========== Route Handlers ==========

@router.get(
    "/policy",
    response_model=SLAPolicyResponse,
    summary="Get the effective SLA policy",
    description="""
    Acknowledgement/resolution budgets and the reachable escalation chain
    for a domain and optional scope.

    **Precedence**: scope overrides domain overrides defaults, per field.
    Chain rules defined for the scope replace the domain-wide rule of the
    same level. Unreachable escalation targets are left out.
    """,
    responses={200: {"content": {"application/json": {"example": POLICY_RESPONSE_EXAMPLE}}}}
)
async def get_policy(
    domain: str = Query(..., min_length=1, max_length=100),
    scope: Optional[str] = Query(None, max_length=100),
    actor: Actor = Depends(get_admin_actor),
    resolver: SLAPolicyResolver = Depends(get_policy_resolver)
):
    policy = await resolver.resolve_policy(domain.strip(), (scope or "").strip() or None)
    return SLAPolicyResponse.from_policy(policy)


@router.get(
    "/metrics",
    response_model=MetricsResponse,
    summary="Ticket analytics",
    description="""
    Aggregate counts and rates over all tickets: status breakdown,
    average acknowledgement/resolution hours, SLA compliance, overdue,
    reopened and escalated counts, tickets created/resolved in the last
    7 and 30 days.
    """
)
async def get_metrics(
    actor: Actor = Depends(get_admin_actor),
    tickets: ITicketRepository = Depends(get_ticket_repository)
):
    now = datetime.now(timezone.utc)
    metrics = summarize_tickets(await tickets.list(), now)
    return MetricsResponse.from_metrics(metrics)


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Run the breach sweep now",
    description="""
    Stamp SLA breaches and auto-escalate tickets that meet an escalation
    trigger. The same sweep runs on the background scheduler.
    """
)
async def run_sweep(
    actor: Actor = Depends(get_admin_actor),
    service: SLABreachSweepService = Depends(get_sweep_service)
):
    result = await service.sweep()
    logger.info(
        "Manual breach sweep",
        extra={"actor_id": str(actor.user_id), "escalated": result.escalated}
    )
    return SweepResponse(**asdict(result))
