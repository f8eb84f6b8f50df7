"""
SLA Application Layer
======================

Application layer for the SLA module.

Contains:
- Services: SLAPolicyResolver
- DTOs: Data transfer objects for API serialization
- Repository interfaces the infrastructure layer implements

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from sst_resolve.sla.application.dto import (
    ChainEntryResponse,
    SLAPolicyResponse,
    SLAClockResponse,
    TicketSLAResponse,
    MetricsResponse,
    SweepResponse,
)
from sst_resolve.sla.application.services import (
    SLAPolicyResolver,
    IEscalationRuleRepository,
    IIdentityProvider,
    ISLAConfigProvider,
)

__all__ = [
    # DTOs
    "ChainEntryResponse",
    "SLAPolicyResponse",
    "SLAClockResponse",
    "TicketSLAResponse",
    "MetricsResponse",
    "SweepResponse",
    # Services
    "SLAPolicyResolver",
    # Repository Interfaces
    "IEscalationRuleRepository",
    "IIdentityProvider",
    "ISLAConfigProvider",
]
