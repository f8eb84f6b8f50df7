"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared (resolved policies are cached
across requests).
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import BaseModel, Field

from sst_resolve.config import SLAState, TicketStatus


_DURATION_PATTERN = re.compile(r"(\d+)\s*(hour|day|week|month)s?", re.IGNORECASE)

_UNIT_DELTAS = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    # Calendar-approximate: callers needing real month arithmetic must not use this
    "month": timedelta(days=30),
}

DEFAULT_DURATION = timedelta(days=1)


class TATCalculator:
    """
    Pure functions for turnaround-time calculations.

    All arithmetic is elapsed wall-clock time: no business hours, no
    calendar adjustment, no rounding.
    """

    @staticmethod
    def compute_due_timestamp(
        created_at: datetime,
        hour_budget: Optional[float]
    ) -> Optional[datetime]:
        """
        Deadline for a clock that starts at ``created_at``.

        Returns None when ``hour_budget`` is None (no SLA).
        """
        if hour_budget is None:
            return None
        if hour_budget < 0:
            raise ValueError("hour_budget cannot be negative")
        return created_at + timedelta(hours=hour_budget)

    @staticmethod
    def parse_duration(text: Optional[str]) -> timedelta:
        """
        Parse ``"<integer> <unit>"`` (hour, day, week, month; plural and
        case-insensitive). The first match in the text wins; anything
        unparseable is one day.

        Example:
            parse_duration("2 days")  -> timedelta(days=2)
            parse_duration("soon")    -> timedelta(days=1)
        """
        if not text:
            return DEFAULT_DURATION
        match = _DURATION_PATTERN.search(text)
        if match is None:
            return DEFAULT_DURATION
        amount = int(match.group(1))
        return _UNIT_DELTAS[match.group(2).lower()] * amount

    @staticmethod
    def parse_duration_ms(text: Optional[str]) -> int:
        """``parse_duration`` expressed in whole milliseconds."""
        return TATCalculator.parse_duration(text) // timedelta(milliseconds=1)

    @staticmethod
    def hours_between(start: datetime, end: datetime) -> float:
        """Elapsed hours from ``start`` to ``end`` (negative if ``end`` is earlier)."""
        return (end - start).total_seconds() / 3600

    @staticmethod
    def missed_deadline(
        now: datetime,
        status: TicketStatus,
        acknowledgement_due_at: Optional[datetime] = None,
        resolution_due_at: Optional[datetime] = None,
        acknowledged_at: Optional[datetime] = None
    ) -> Optional[datetime]:
        """
        Earliest deadline the ticket has missed, or None.

        The acknowledgement deadline only counts while the ticket is
        unacknowledged. Terminal tickets have no missed deadlines.
        """
        if status.is_terminal:
            return None

        missed = []
        if resolution_due_at is not None and resolution_due_at < now:
            missed.append(resolution_due_at)
        if (
            acknowledgement_due_at is not None
            and acknowledged_at is None
            and acknowledgement_due_at < now
        ):
            missed.append(acknowledgement_due_at)

        return min(missed) if missed else None

    @staticmethod
    def is_overdue(
        now: datetime,
        status: TicketStatus,
        acknowledgement_due_at: Optional[datetime] = None,
        resolution_due_at: Optional[datetime] = None,
        acknowledged_at: Optional[datetime] = None
    ) -> bool:
        """True when a deadline exists, has passed, and the ticket is still active."""
        return TATCalculator.missed_deadline(
            now,
            status,
            acknowledgement_due_at=acknowledgement_due_at,
            resolution_due_at=resolution_due_at,
            acknowledged_at=acknowledged_at,
        ) is not None

    @staticmethod
    def calculate_state(
        started_at: datetime,
        due_at: Optional[datetime],
        now: datetime,
        met_at: Optional[datetime] = None,
        warning_threshold_percent: float = 15
    ) -> SLAState:
        """
        Current state of one SLA clock.

        Args:
            started_at: When the clock started (ticket creation)
            due_at: The deadline, None for no SLA
            now: Evaluation time
            met_at: When the clock was satisfied (acknowledgement/resolution)
            warning_threshold_percent: Remaining-time percentage for AT_RISK
        """
        if due_at is None:
            return SLAState.NO_SLA

        if met_at is not None:
            return SLAState.MET if met_at <= due_at else SLAState.BREACHED

        remaining = (due_at - now).total_seconds()
        if remaining <= 0:
            return SLAState.BREACHED

        total = (due_at - started_at).total_seconds()
        percentage = (remaining / total) * 100 if total > 0 else 0
        if percentage <= warning_threshold_percent:
            return SLAState.AT_RISK
        return SLAState.ON_TRACK


# ========== Escalation Chain ==========

@dataclass(frozen=True)
class Identity:
    """A contactable person the chain can route to."""
    user_id: UUID
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class EscalationRule:
    """
    One (domain, optional scope, level) binding to a responsible user.

    A rule with ``scope=None`` is the domain-wide fallback for its level.
    """
    domain: str
    level: int
    user_id: Optional[UUID]
    scope: Optional[str] = None
    tat_hours: Optional[float] = 48
    notify_channel: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.level < 1:
            raise ValueError("Escalation level must be >= 1")


def merge_escalation_rules(
    rules: Sequence[EscalationRule],
    scope: Optional[str]
) -> List[EscalationRule]:
    """
    Merge scope-specific and domain-wide rules into one chain ordered by level.

    At any level a rule for ``scope`` wins over the domain-wide rule; rules
    for other scopes are ignored.
    """
    by_level: Dict[int, EscalationRule] = {}
    for rule in rules:
        if rule.scope is not None and rule.scope != scope:
            continue
        current = by_level.get(rule.level)
        if current is None:
            by_level[rule.level] = rule
        elif current.scope is None and rule.scope is not None:
            by_level[rule.level] = rule
    return [by_level[level] for level in sorted(by_level)]


@dataclass(frozen=True)
class ChainEntry:
    """A chain level whose responsible party resolved to an identity."""
    level: int
    party: Identity
    rule: EscalationRule

    @property
    def tat_hours(self) -> Optional[float]:
        return self.rule.tat_hours


@dataclass(frozen=True)
class SLAPolicy:
    """
    Effective policy for a (domain, scope) pair.

    ``chain`` is sorted by level and holds only reachable parties.
    """
    domain: str
    scope: Optional[str]
    acknowledgement_hours: Optional[float]
    resolution_hours: Optional[float]
    chain: Tuple[ChainEntry, ...] = field(default_factory=tuple)

    def next_entry(self, current_level: int) -> Optional[ChainEntry]:
        """First chain entry strictly above ``current_level``."""
        for entry in self.chain:
            if entry.level > current_level:
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "scope": self.scope,
            "acknowledgement_hours": self.acknowledgement_hours,
            "resolution_hours": self.resolution_hours,
            "chain": [
                {
                    "level": entry.level,
                    "user_id": str(entry.party.user_id),
                    "name": entry.party.name,
                    "email": entry.party.email,
                    "tat_hours": entry.tat_hours,
                }
                for entry in self.chain
            ],
        }


# ========== Configuration ==========

class SLATargets(BaseModel):
    """
    Hour budgets at one level of the config tree.

    A field left out inherits from the parent level; an explicit null
    means "no SLA" and stops inheritance.
    """
    acknowledgement_hours: Optional[float] = Field(default=None, ge=0)
    resolution_hours: Optional[float] = Field(default=None, ge=0)

    def overrides(self, name: str) -> bool:
        return name in self.model_fields_set


class DomainTargets(SLATargets):
    """Domain-level budgets plus per-scope overrides."""
    scopes: Dict[str, SLATargets] = Field(default_factory=dict)


class AutoEscalationConfig(BaseModel):
    """Thresholds for the scheduled breach sweep."""
    enabled: bool = True
    inactive_days: float = Field(default=7, gt=0)
    cooldown_days: float = Field(default=2, ge=0)
    tat_extension_limit: int = Field(default=3, ge=1)
    reopen_limit: int = Field(default=3, ge=1)
    low_rating_threshold: int = Field(default=2, ge=0, le=5)
    forward_limit: int = Field(default=3, ge=0)
    stalled_hours: float = Field(default=48, gt=0)


class ReminderConfig(BaseModel):
    """Due-today and unacknowledged reminders sent by the reminder sweep."""
    enabled: bool = True
    unacknowledged_hours: float = Field(default=2, gt=0)
    repeat_hours: float = Field(default=6, gt=0)
    skip_weekends: bool = True
    utc_offset_hours: float = Field(default=0, ge=-12, le=14, description="Campus local time")

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))


class EscalationLevelConfig(BaseModel):
    """Configuration for a single escalation level."""
    level: int = Field(ge=1, description="Escalation level (1-based)")
    notify: List[str] = Field(default_factory=list, description="Slack channels")


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    Effective budget for a field = scope override, else domain override,
    else default.
    """
    default_targets: SLATargets = Field(
        default_factory=lambda: SLATargets(acknowledgement_hours=24, resolution_hours=72)
    )
    domain_targets: Dict[str, DomainTargets] = Field(default_factory=dict)
    auto_escalation: AutoEscalationConfig = Field(default_factory=AutoEscalationConfig)
    reminders: ReminderConfig = Field(default_factory=ReminderConfig)
    warning_threshold_percent: float = Field(default=15, ge=0, le=100)
    escalation_levels: List[EscalationLevelConfig] = Field(
        default_factory=lambda: [EscalationLevelConfig(level=1, notify=["#ticket-escalations"])],
        description="Notification config per escalation level"
    )

    def get_targets(
        self,
        domain: str,
        scope: Optional[str] = None
    ) -> Tuple[Optional[float], Optional[float]]:
        """Returns (acknowledgement_hours, resolution_hours) for a domain/scope."""
        layers: List[SLATargets] = [self.default_targets]
        domain_targets = self.domain_targets.get(domain)
        if domain_targets is not None:
            layers.append(domain_targets)
            if scope is not None and scope in domain_targets.scopes:
                layers.append(domain_targets.scopes[scope])

        return (
            self._most_specific(layers, "acknowledgement_hours"),
            self._most_specific(layers, "resolution_hours"),
        )

    @staticmethod
    def _most_specific(layers: List[SLATargets], name: str) -> Optional[float]:
        for layer in reversed(layers):
            if layer.overrides(name):
                return getattr(layer, name)
        return None

    def get_channels_for_level(self, level: int) -> List[str]:
        """Get Slack channels to notify for given escalation level."""
        for esc in self.escalation_levels:
            if esc.level == level:
                return esc.notify
        return []
