"""Scheduling repository layer."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.modules.scheduling.models import TimeSlot
from app.shared.utils import intervals_overlap

settings = get_settings()


def earliest_overlapping_start(start_at: datetime) -> datetime:
    """Slots starting at or before this instant end before ``start_at``."""
    return start_at - timedelta(minutes=max(settings.session_durations))


class SchedulingRepository:
    """DB access for time slots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_slot(self, mentor_id: UUID, start_at: datetime, duration_minutes: int) -> TimeSlot:
        slot = TimeSlot(
            mentor_id=mentor_id,
            start_at=start_at,
            duration_minutes=duration_minutes,
            is_booked=False,
        )
        self.session.add(slot)
        await self.session.flush()
        return slot

    async def get_slot_by_id(self, slot_id: UUID) -> TimeSlot | None:
        stmt = select(TimeSlot).where(TimeSlot.id == slot_id)
        return await self.session.scalar(stmt)

    async def list_available_slots(
        self,
        mentor_id: UUID | None,
        not_before: datetime,
        limit: int,
        offset: int,
    ) -> tuple[list[TimeSlot], int]:
        base_stmt: Select[tuple[TimeSlot]] = select(TimeSlot).where(
            TimeSlot.is_booked.is_(False),
            TimeSlot.start_at >= not_before,
        )
        if mentor_id is not None:
            base_stmt = base_stmt.where(TimeSlot.mentor_id == mentor_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(TimeSlot.start_at.asc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def has_overlapping_slot(
        self,
        mentor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_slot_id: UUID | None = None,
    ) -> bool:
        stmt = select(TimeSlot).where(
            TimeSlot.mentor_id == mentor_id,
            TimeSlot.start_at > earliest_overlapping_start(start_at),
            TimeSlot.start_at < end_at,
        )
        if exclude_slot_id is not None:
            stmt = stmt.where(TimeSlot.id != exclude_slot_id)
        candidates = (await self.session.scalars(stmt)).all()
        return any(intervals_overlap(start_at, end_at, slot.start_at, slot.end_at) for slot in candidates)

    async def claim_slot(self, slot_id: UUID) -> bool:
        """Flip an unbooked slot to booked in one conditional UPDATE.

        Returns False when another transaction already holds the slot.
        """
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot_id, TimeSlot.is_booked.is_(False))
            .values(is_booked=True)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def attach_session(self, slot: TimeSlot, session_id: UUID) -> TimeSlot:
        slot.session_id = session_id
        await self.session.flush()
        return slot

    async def release_slot(self, slot_id: UUID) -> None:
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot_id)
            .values(is_booked=False, session_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def move_slot(self, slot_id: UUID, start_at: datetime) -> None:
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot_id)
            .values(start_at=start_at)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def delete_slot(self, slot: TimeSlot) -> None:
        await self.session.delete(slot)
        await self.session.flush()
