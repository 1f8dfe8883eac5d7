"""Identity API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.modules.identity.models import User
from app.modules.identity.schemas import CurrentUserRead, MentorProfileRead
from app.modules.identity.service import get_current_user

router = APIRouter(prefix="/identity", tags=["identity"])


@router.get("/users/me", response_model=CurrentUserRead)
async def get_me(current_user: User = Depends(get_current_user)) -> CurrentUserRead:
    profile = current_user.mentor_profile
    return CurrentUserRead(
        id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name,
        timezone=current_user.timezone,
        role=current_user.role.name,
        mentor_profile=MentorProfileRead.model_validate(profile) if profile is not None else None,
    )
