"""Identity schemas."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.core.enums import RoleEnum


class MentorProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    display_name: str
    rate_30_min: Decimal
    rate_60_min: Decimal
    is_approved: bool


class CurrentUserRead(BaseModel):
    """The authenticated user, with the mentor profile when there is one."""

    id: UUID
    email: str
    full_name: str
    timezone: str
    role: RoleEnum
    mentor_profile: MentorProfileRead | None = None
