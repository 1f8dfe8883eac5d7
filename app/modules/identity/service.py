"""Current-user resolution and role guards."""

from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.core.security import bearer_scheme, decode_access_token
from app.modules.identity.models import User
from app.modules.identity.repository import IdentityRepository
from app.shared.exceptions import AuthenticationFailed, NotAuthorized


class IdentityService:
    def __init__(self, repository: IdentityRepository) -> None:
        self.repository = repository

    async def ensure_default_roles(self) -> None:
        existing = await self.repository.list_role_names()
        for role_name in RoleEnum:
            if role_name not in existing:
                await self.repository.create_role(role_name)

    async def authenticate(self, token: str) -> User:
        """Resolve the active user behind a bearer token."""
        claims = decode_access_token(token)
        user = await self.repository.get_user_with_profile(claims.user_id)
        if user is None or not user.is_active:
            raise AuthenticationFailed("User is unknown or deactivated")
        return user


async def get_identity_service(session: AsyncSession = Depends(get_db_session)) -> IdentityService:
    return IdentityService(IdentityRepository(session))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: IdentityService = Depends(get_identity_service),
) -> User:
    if credentials is None:
        raise AuthenticationFailed("Bearer token is required")
    return await service.authenticate(credentials.credentials)


def require_roles(*roles: RoleEnum):
    """Dependency factory rejecting users outside ``roles``."""

    async def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role.name not in roles:
            raise NotAuthorized("Operation not permitted for your role")
        return current_user

    return _checker
