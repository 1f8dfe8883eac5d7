"""Scheduling business logic layer."""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.modules.identity.models import User
from app.modules.mentors.repository import MentorsRepository
from app.modules.scheduling.models import TimeSlot
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.schemas import SlotCreate
from app.shared.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    SlotNotFound,
    UnauthorizedException,
)
from app.shared.utils import ensure_utc, utc_now

settings = get_settings()


class SchedulingService:
    """Time slot publishing and browsing."""

    def __init__(
        self,
        repository: SchedulingRepository,
        mentors_repository: MentorsRepository,
        *,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.mentors_repository = mentors_repository
        self.now_provider = now_provider

    def _resolve_mentor_id(self, payload: SlotCreate, actor: User) -> UUID:
        if actor.role.name == RoleEnum.MENTOR:
            if payload.mentor_id is not None and payload.mentor_id != actor.id:
                raise UnauthorizedException("Mentors can publish slots only for themselves")
            return actor.id
        if actor.role.name == RoleEnum.ADMIN:
            if payload.mentor_id is None:
                raise BusinessRuleException("mentor_id is required when an admin creates a slot")
            return payload.mentor_id
        raise UnauthorizedException("Only mentors and admins can create slots")

    async def create_slot(self, payload: SlotCreate, actor: User) -> TimeSlot:
        """Publish a slot after duration, future-start and overlap checks."""
        mentor_id = self._resolve_mentor_id(payload, actor)

        profile = await self.mentors_repository.get_profile_by_user_id(mentor_id)
        if profile is None:
            raise NotFoundException("Mentor profile not found")

        if payload.duration_minutes not in settings.session_durations:
            allowed = ", ".join(str(value) for value in settings.session_durations)
            raise BusinessRuleException(f"Slot duration must be one of: {allowed} minutes")

        start_at = ensure_utc(payload.start_at)
        if start_at <= self.now_provider():
            raise BusinessRuleException("Slot start_at must be in the future")

        end_at = start_at + timedelta(minutes=payload.duration_minutes)
        if await self.repository.has_overlapping_slot(mentor_id, start_at, end_at):
            raise ConflictException("Slot overlaps another slot of this mentor")

        return await self.repository.create_slot(mentor_id, start_at, payload.duration_minutes)

    async def list_available_slots(
        self,
        mentor_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TimeSlot], int]:
        """List unbooked future slots with pagination."""
        return await self.repository.list_available_slots(
            mentor_id=mentor_id,
            not_before=self.now_provider(),
            limit=limit,
            offset=offset,
        )

    async def delete_slot(self, slot_id: UUID, actor: User) -> None:
        """Remove an unbooked slot."""
        slot = await self.repository.get_slot_by_id(slot_id)
        if slot is None:
            raise SlotNotFound("Slot not found")
        if actor.role.name != RoleEnum.ADMIN and slot.mentor_id != actor.id:
            raise UnauthorizedException("You cannot manage this slot")
        if slot.is_booked:
            raise ConflictException("Booked slots cannot be deleted")
        await self.repository.delete_slot(slot)


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(SchedulingRepository(session), MentorsRepository(session))
