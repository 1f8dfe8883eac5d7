from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.enums import SessionStatusEnum
from app.modules.sessions.lifecycle import can_transition, ensure_transition
from app.modules.sessions.policy import (
    calculate_refund,
    join_link_send_at,
    join_telemetry,
    join_window,
    refund_percentage,
)
from app.shared.exceptions import InvalidStateTransition

START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("hours_before", "expected"),
    [
        (72, 100),
        (48, 100),
        (47.99, 50),
        (24, 50),
        (23.99, 0),
        (1, 0),
        (-1, 0),
    ],
)
def test_refund_percentage_tiers_are_inclusive_on_the_generous_side(hours_before, expected) -> None:
    now = START - timedelta(hours=hours_before)
    assert refund_percentage(now, START) == expected


def test_calculate_refund_rounds_to_cents() -> None:
    decision = calculate_refund(Decimal("33.33"), START - timedelta(hours=30), START)

    assert decision.percentage == 50
    assert decision.amount == Decimal("16.67")


def test_calculate_refund_full_amount_outside_48_hours() -> None:
    decision = calculate_refund(Decimal("50.00"), START - timedelta(hours=48), START)

    assert decision.amount == Decimal("50.00")
    assert decision.percentage == 100


def test_join_window_bounds_are_inclusive() -> None:
    window = join_window(START, START + timedelta(minutes=60))

    assert window.opens_at == START - timedelta(minutes=15)
    assert window.closes_at == START + timedelta(minutes=75)
    assert window.is_open(window.opens_at)
    assert window.is_open(window.closes_at)
    assert window.not_yet_open(window.opens_at - timedelta(seconds=1))
    assert window.has_closed(window.closes_at + timedelta(seconds=1))


def test_join_telemetry_counts_minutes() -> None:
    telemetry = join_telemetry(START - timedelta(minutes=10), START, START + timedelta(minutes=30))

    assert telemetry.can_join_now is True
    assert telemetry.minutes_until_start == 10
    assert telemetry.minutes_remaining == 30


def test_join_link_is_sent_immediately_inside_lead_time() -> None:
    assert join_link_send_at(START - timedelta(days=2), START) == START - timedelta(minutes=15)
    late_now = START - timedelta(minutes=5)
    assert join_link_send_at(late_now, START) == late_now


def test_terminal_states_reject_every_transition() -> None:
    for status in (SessionStatusEnum.COMPLETED, SessionStatusEnum.CANCELLED, SessionStatusEnum.NO_SHOW):
        for target in SessionStatusEnum:
            assert can_transition(status, target) is False

    with pytest.raises(InvalidStateTransition):
        ensure_transition(SessionStatusEnum.COMPLETED, SessionStatusEnum.CANCELLED, "cancel")


def test_in_progress_session_can_only_complete() -> None:
    assert can_transition(SessionStatusEnum.IN_PROGRESS, SessionStatusEnum.COMPLETED)
    assert not can_transition(SessionStatusEnum.IN_PROGRESS, SessionStatusEnum.CANCELLED)
