"""Shared utility functions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def quantize_money(value: Decimal) -> Decimal:
    """Round a money amount to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def intervals_overlap(
    first_start: datetime,
    first_end: datetime,
    second_start: datetime,
    second_end: datetime,
) -> bool:
    """Return True when two half-open intervals intersect."""
    return first_start < second_end and second_start < first_end


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, never negative."""
    delta = end - start
    if delta <= timedelta(0):
        return 0
    return int(delta.total_seconds() // 60)
