"""Mentors repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.mentors.models import MentorProfile


class MentorsRepository:
    """Read access to mentor profiles for pricing and ownership checks."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_profile_by_user_id(self, user_id: UUID) -> MentorProfile | None:
        stmt = select(MentorProfile).where(MentorProfile.user_id == user_id)
        return await self.session.scalar(stmt)
