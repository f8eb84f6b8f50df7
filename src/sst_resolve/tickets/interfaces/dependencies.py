"""
Ticket API Dependencies
========================

FastAPI dependency providers wiring request-scoped repositories into the
application services. Every repository shares the request session, so a
ticket update and its outbox row commit together.

Tests replace the repository providers through ``app.dependency_overrides``.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sst_resolve.config import get_settings
from sst_resolve.core import ConfigurationException, UnauthenticatedException
from sst_resolve.infrastructure.database import get_session
from sst_resolve.shared.infrastructure.cache import TTLCache
from sst_resolve.sla.application import (
    IEscalationRuleRepository,
    IIdentityProvider,
    ISLAConfigProvider,
    SLAPolicyResolver,
)
from sst_resolve.sla.infrastructure import SQLAlchemyEscalationRuleRepository
from sst_resolve.tickets.application import (
    EscalationService,
    IActorRepository,
    IOutboxRepository,
    ITicketRepository,
    SLABreachSweepService,
    TicketService,
)
from sst_resolve.tickets.domain import Actor
from sst_resolve.tickets.infrastructure import (
    SQLAlchemyOutboxRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyUserRepository,
)


# ========== Repositories ==========

async def get_ticket_repository(session: AsyncSession = Depends(get_session)) -> ITicketRepository:
    return SQLAlchemyTicketRepository(session)


async def get_outbox_repository(session: AsyncSession = Depends(get_session)) -> IOutboxRepository:
    return SQLAlchemyOutboxRepository(session)


async def get_actor_repository(session: AsyncSession = Depends(get_session)) -> IActorRepository:
    return SQLAlchemyUserRepository(session)


async def get_identity_provider(session: AsyncSession = Depends(get_session)) -> IIdentityProvider:
    return SQLAlchemyUserRepository(session)


async def get_rule_repository(session: AsyncSession = Depends(get_session)) -> IEscalationRuleRepository:
    return SQLAlchemyEscalationRuleRepository(session)


async def get_config_provider(request: Request) -> ISLAConfigProvider:
    provider = getattr(request.app.state, "sla_config_manager", None)
    if provider is None:
        raise ConfigurationException("SLA configuration not loaded")
    return provider


def get_policy_cache(request: Request) -> Optional[TTLCache]:
    return getattr(request.app.state, "policy_cache", None)


# ========== Caller ==========

async def get_current_actor(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    actors: IActorRepository = Depends(get_actor_repository)
) -> Actor:
    """
    Resolve the caller from the gateway-provided user ID.

    Raises:
        UnauthenticatedException: Header missing, malformed or unknown user
    """
    if not x_user_id:
        raise UnauthenticatedException()
    try:
        user_id = UUID(x_user_id.strip())
    except ValueError:
        raise UnauthenticatedException()

    actor = await actors.get_actor(user_id)
    if actor is None:
        raise UnauthenticatedException()
    return actor


# ========== Services ==========

async def get_policy_resolver(
    rules: IEscalationRuleRepository = Depends(get_rule_repository),
    identities: IIdentityProvider = Depends(get_identity_provider),
    config_provider: ISLAConfigProvider = Depends(get_config_provider),
    cache: Optional[TTLCache] = Depends(get_policy_cache)
) -> SLAPolicyResolver:
    return SLAPolicyResolver(rules, identities, config_provider, cache=cache)


async def get_escalation_service(
    tickets: ITicketRepository = Depends(get_ticket_repository),
    outbox: IOutboxRepository = Depends(get_outbox_repository),
    identities: IIdentityProvider = Depends(get_identity_provider),
    resolver: SLAPolicyResolver = Depends(get_policy_resolver)
) -> EscalationService:
    return EscalationService(
        tickets,
        outbox,
        identities,
        resolver,
        reason_max_length=get_settings().escalation_reason_max_length,
    )


async def get_ticket_service(
    tickets: ITicketRepository = Depends(get_ticket_repository),
    outbox: IOutboxRepository = Depends(get_outbox_repository),
    actors: IActorRepository = Depends(get_actor_repository),
    resolver: SLAPolicyResolver = Depends(get_policy_resolver),
    escalation_service: EscalationService = Depends(get_escalation_service)
) -> TicketService:
    return TicketService(tickets, outbox, actors, resolver, escalation_service)


async def get_sweep_service(
    tickets: ITicketRepository = Depends(get_ticket_repository),
    escalation_service: EscalationService = Depends(get_escalation_service),
    config_provider: ISLAConfigProvider = Depends(get_config_provider)
) -> SLABreachSweepService:
    return SLABreachSweepService(tickets, escalation_service, config_provider)
