"""Scheduling ORM models."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin


class TimeSlot(BaseModelMixin, Base):
    """Bookable interval published by a mentor."""

    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("duration_minutes in (30, 60)", name="duration_minutes_allowed"),
        CheckConstraint(
            "(is_booked = false and session_id is null) or is_booked = true",
            name="unbooked_without_session",
        ),
    )

    mentor_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    session_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sessions.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)
