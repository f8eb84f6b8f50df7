"""
SLA Application Services
=========================

Resolution of the effective SLA policy for a ticket's (domain, scope).

Following SOLID principles:
- Single Responsibility: the resolver only answers "what budgets and who is next"
- Dependency Inversion: rules, identities and config come in through interfaces
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sst_resolve.core import DependencyFailureException
from sst_resolve.sla.domain import (
    ChainEntry,
    EscalationRule,
    Identity,
    SLAConfig,
    SLAPolicy,
    merge_escalation_rules,
)
from sst_resolve.shared.infrastructure.cache import TTLCache
from sst_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IEscalationRuleRepository(ABC):
    """Interface for escalation rule data access."""

    @abstractmethod
    async def list_for(self, domain: str, scope: Optional[str]) -> List[EscalationRule]:
        """
        All rules for ``domain`` whose scope is ``scope`` or null, in one query.
        """


class IIdentityProvider(ABC):
    """Interface for resolving user references to contactable identities."""

    @abstractmethod
    async def get_identities(self, user_ids: Iterable[UUID]) -> Dict[UUID, Identity]:
        """Batch lookup; unknown ids are simply absent from the result."""

    @abstractmethod
    async def find_super_admin(self) -> Optional[Identity]:
        """Any super admin, used when the escalation chain is exhausted."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


# ========== Application Services ==========

class SLAPolicyResolver:
    """
    Resolves hour budgets and the ordered escalation chain for a ticket.

    The cache, when given, is owned by the caller and shared across
    resolver instances; entries are keyed by (domain, scope).
    """

    def __init__(
        self,
        rule_repository: IEscalationRuleRepository,
        identity_provider: IIdentityProvider,
        config_provider: ISLAConfigProvider,
        cache: Optional[TTLCache] = None
    ):
        self._rule_repo = rule_repository
        self._identity_provider = identity_provider
        self._config_provider = config_provider
        self._cache = cache

    async def resolve_policy(self, domain: str, scope: Optional[str] = None) -> SLAPolicy:
        """
        Effective policy for (domain, scope).

        Algorithm:
        1. Fetch scope-specific and domain-wide rules together
        2. Per level, the scope-specific rule wins over the domain-wide one
        3. Sort by level ascending (the chain walk order)
        4. Resolve responsible users in one batch; unreachable users are
           skipped and logged

        A domain without rules yields an empty chain.
        """
        cache_key: Tuple[str, Optional[str]] = (domain, scope)
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        ack_hours, resolution_hours = self._config_provider.get_config().get_targets(domain, scope)

        rules = merge_escalation_rules(await self._rule_repo.list_for(domain, scope), scope)
        chain, complete = await self._build_chain(domain, scope, rules)

        policy = SLAPolicy(
            domain=domain,
            scope=scope,
            acknowledgement_hours=ack_hours,
            resolution_hours=resolution_hours,
            chain=tuple(chain),
        )

        # A chain degraded by an identity outage is not worth remembering
        if self._cache is not None and complete:
            self._cache.set(cache_key, policy)

        return policy

    async def _build_chain(
        self,
        domain: str,
        scope: Optional[str],
        rules: List[EscalationRule]
    ) -> Tuple[List[ChainEntry], bool]:
        user_ids = {rule.user_id for rule in rules if rule.user_id is not None}
        if not user_ids:
            identities: Dict[UUID, Identity] = {}
            complete = True
        else:
            try:
                identities = await self._identity_provider.get_identities(user_ids)
                complete = True
            except DependencyFailureException as e:
                logger.warning(
                    "Identity lookup failed, escalation targets unavailable",
                    extra={"domain": domain, "scope": scope, "error": str(e)}
                )
                identities = {}
                complete = False

        chain = []
        for rule in rules:
            identity = identities.get(rule.user_id) if rule.user_id is not None else None
            if identity is None:
                logger.warning(
                    "Skipping unreachable escalation target",
                    extra={
                        "domain": domain,
                        "scope": rule.scope,
                        "level": rule.level,
                        "user_id": str(rule.user_id) if rule.user_id else None,
                    }
                )
                continue
            chain.append(ChainEntry(level=rule.level, party=identity, rule=rule))

        return chain, complete
