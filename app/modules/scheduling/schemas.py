"""Scheduling schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SlotCreate(BaseModel):
    """Create time slot request.

    ``mentor_id`` is required only when an admin publishes on a mentor's behalf.
    """

    mentor_id: UUID | None = None
    start_at: datetime
    duration_minutes: int = Field(ge=1)


class SlotRead(BaseModel):
    """Time slot response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    mentor_id: UUID
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    is_booked: bool
    session_id: UUID | None
    created_at: datetime
