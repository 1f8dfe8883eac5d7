"""Scheduled job ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import JobKindEnum, JobStatusEnum


class ScheduledJob(BaseModelMixin, Base):
    """Deferred action for a session, unique per (session, kind)."""

    __tablename__ = "scheduled_jobs"
    __table_args__ = (UniqueConstraint("session_id", "kind", name="uq_scheduled_jobs_session_id_kind"),)

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[JobKindEnum] = mapped_column(
        SAEnum(JobKindEnum, name="job_kind_enum", native_enum=False),
        nullable=False,
    )
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[JobStatusEnum] = mapped_column(
        SAEnum(JobStatusEnum, name="job_status_enum", native_enum=False),
        default=JobStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
