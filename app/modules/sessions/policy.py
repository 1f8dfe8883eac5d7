"""Time-based session policies: refund tiers and the join window.

All functions here are pure. Callers pass the current instant explicitly so
that every threshold is evaluated against the clock at request time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from app.core.config import get_settings
from app.shared.utils import minutes_between, quantize_money

settings = get_settings()


@dataclass(frozen=True, slots=True)
class RefundDecision:
    amount: Decimal
    percentage: int


def refund_percentage(now: datetime, scheduled_start: datetime) -> int:
    """Refund tier for a cancellation at ``now``.

    Each threshold is inclusive on the side granting the larger refund:
    exactly 48h before start is a full refund, exactly 24h is a partial one.
    """
    remaining = scheduled_start - now
    if remaining >= timedelta(hours=settings.full_refund_hours):
        return 100
    if remaining >= timedelta(hours=settings.partial_refund_hours):
        return settings.partial_refund_percentage
    return 0


def calculate_refund(captured_amount: Decimal, now: datetime, scheduled_start: datetime) -> RefundDecision:
    """Refund amount and percentage for a captured payment."""
    percentage = refund_percentage(now, scheduled_start)
    amount = quantize_money(Decimal(captured_amount) * Decimal(percentage) / Decimal(100))
    return RefundDecision(amount=amount, percentage=percentage)


@dataclass(frozen=True, slots=True)
class JoinWindow:
    opens_at: datetime
    closes_at: datetime

    def is_open(self, now: datetime) -> bool:
        return self.opens_at <= now <= self.closes_at

    def not_yet_open(self, now: datetime) -> bool:
        return now < self.opens_at

    def has_closed(self, now: datetime) -> bool:
        return now > self.closes_at


def join_window(scheduled_start: datetime, scheduled_end: datetime) -> JoinWindow:
    return JoinWindow(
        opens_at=scheduled_start - timedelta(minutes=settings.join_early_minutes),
        closes_at=scheduled_end + timedelta(minutes=settings.join_late_minutes),
    )


@dataclass(frozen=True, slots=True)
class JoinTelemetry:
    can_join_now: bool
    minutes_until_start: int
    minutes_remaining: int


def join_telemetry(now: datetime, scheduled_start: datetime, scheduled_end: datetime) -> JoinTelemetry:
    window = join_window(scheduled_start, scheduled_end)
    return JoinTelemetry(
        can_join_now=window.is_open(now),
        minutes_until_start=minutes_between(now, scheduled_start),
        minutes_remaining=minutes_between(max(now, scheduled_start), scheduled_end),
    )


def join_link_send_at(now: datetime, scheduled_start: datetime) -> datetime:
    """When to deliver the join link: lead time before start, or now if already inside it."""
    return max(now, scheduled_start - timedelta(minutes=settings.join_link_lead_minutes))
