from datetime import datetime, timedelta, timezone

import pytest

from sst_resolve.config import SLAState, TicketStatus
from sst_resolve.sla.domain import SLAConfig, TATCalculator

T0 = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


def test_due_timestamp_adds_exact_hours():
    assert TATCalculator.compute_due_timestamp(T0, 24) == T0 + timedelta(milliseconds=86_400_000)
    assert TATCalculator.compute_due_timestamp(T0, 1.5) == T0 + timedelta(minutes=90)


def test_no_budget_means_no_deadline():
    assert TATCalculator.compute_due_timestamp(T0, None) is None


def test_negative_budget_is_rejected():
    with pytest.raises(ValueError):
        TATCalculator.compute_due_timestamp(T0, -1)


@pytest.mark.parametrize("text, expected_ms", [
    ("2 days", 172_800_000),
    ("1 week", 604_800_000),
    ("3 Hours", 10_800_000),
    ("1 month", 2_592_000_000),
    ("within 2 weeks please", 1_209_600_000),
    ("garbage", 86_400_000),
    ("", 86_400_000),
    (None, 86_400_000),
])
def test_parse_duration(text, expected_ms):
    assert TATCalculator.parse_duration_ms(text) == expected_ms


def test_first_duration_in_text_wins():
    assert TATCalculator.parse_duration("2 days or 1 week") == timedelta(days=2)


def test_hours_between_can_be_negative():
    assert TATCalculator.hours_between(T0, T0 + timedelta(hours=6)) == 6
    assert TATCalculator.hours_between(T0 + timedelta(hours=6), T0) == -6


def test_missed_deadline_picks_earliest():
    now = T0 + timedelta(hours=30)
    missed = TATCalculator.missed_deadline(
        now,
        TicketStatus.OPEN,
        acknowledgement_due_at=T0 + timedelta(hours=24),
        resolution_due_at=T0 + timedelta(hours=28),
    )
    assert missed == T0 + timedelta(hours=24)


def test_acknowledgement_deadline_ignored_once_acknowledged():
    now = T0 + timedelta(hours=30)
    assert TATCalculator.missed_deadline(
        now,
        TicketStatus.IN_PROGRESS,
        acknowledgement_due_at=T0 + timedelta(hours=24),
        resolution_due_at=T0 + timedelta(hours=72),
        acknowledged_at=T0 + timedelta(hours=25),
    ) is None


def test_resolved_tickets_are_never_overdue():
    assert not TATCalculator.is_overdue(
        T0 + timedelta(days=10), TicketStatus.RESOLVED, resolution_due_at=T0
    )


def test_deadline_exactly_now_is_not_yet_overdue():
    assert not TATCalculator.is_overdue(T0, TicketStatus.OPEN, resolution_due_at=T0)


@pytest.mark.parametrize("hours_elapsed, expected", [
    (10, SLAState.ON_TRACK),
    (90, SLAState.AT_RISK),
    (100, SLAState.BREACHED),
    (120, SLAState.BREACHED),
])
def test_calculate_state(hours_elapsed, expected):
    due = T0 + timedelta(hours=100)
    now = T0 + timedelta(hours=hours_elapsed)
    assert TATCalculator.calculate_state(T0, due, now, warning_threshold_percent=15) == expected


def test_calculate_state_met_and_no_sla():
    due = T0 + timedelta(hours=10)
    assert TATCalculator.calculate_state(T0, due, T0, met_at=T0 + timedelta(hours=9)) == SLAState.MET
    assert TATCalculator.calculate_state(T0, due, T0, met_at=T0 + timedelta(hours=11)) == SLAState.BREACHED
    assert TATCalculator.calculate_state(T0, None, T0) == SLAState.NO_SLA


# ========== Target precedence ==========

def test_scope_overrides_domain_overrides_default(sla_config):
    assert sla_config.get_targets("Hostel", "Velankani") == (12, 48)
    assert sla_config.get_targets("Hostel", "Neeladri") == (24, 48)
    assert sla_config.get_targets("Hostel") == (24, 48)
    assert sla_config.get_targets("Mess") == (24, 72)


def test_explicit_null_means_no_sla(sla_config):
    assert sla_config.get_targets("College") == (None, None)


def test_yaml_shaped_config_parses():
    config = SLAConfig(**{
        "default_targets": {"acknowledgement_hours": 8},
        "auto_escalation": {"cooldown_days": 1},
        "escalation_levels": [{"level": 2, "notify": ["#wardens"]}],
    })
    assert config.get_targets("Any") == (8, None)
    assert config.auto_escalation.cooldown_days == 1
    assert config.auto_escalation.reopen_limit == 3
    assert config.get_channels_for_level(2) == ["#wardens"]
    assert config.get_channels_for_level(3) == []
