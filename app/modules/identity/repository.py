"""Identity repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import RoleEnum
from app.modules.identity.models import Role, User


class IdentityRepository:
    """Users and roles; accounts themselves are provisioned upstream."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_role_names(self) -> set[RoleEnum]:
        return set((await self.session.scalars(select(Role.name))).all())

    async def create_role(self, role_name: RoleEnum) -> Role:
        role = Role(name=role_name)
        self.session.add(role)
        await self.session.flush()
        return role

    async def get_user_with_profile(self, user_id: UUID) -> User | None:
        stmt = (
            select(User)
            .options(selectinload(User.role), selectinload(User.mentor_profile))
            .where(User.id == user_id)
        )
        return await self.session.scalar(stmt)
