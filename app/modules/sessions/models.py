"""Mentorship session ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import (
    MeetingStatusEnum,
    RecordingStatusEnum,
    RescheduleStatusEnum,
    SessionStatusEnum,
)


class MentorshipSession(BaseModelMixin, Base):
    """One scheduled, paid meeting between a mentee and a mentor."""

    __tablename__ = "sessions"
    __table_args__ = (
        Index(
            "uq_sessions_live_time_slot_id",
            "time_slot_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
        ),
    )

    mentee_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    mentor_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    time_slot_id: Mapped[UUID] = mapped_column(
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    topic: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    scheduled_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    scheduled_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[SessionStatusEnum] = mapped_column(
        SAEnum(SessionStatusEnum, name="session_status_enum", native_enum=False),
        default=SessionStatusEnum.PENDING,
        nullable=False,
        index=True,
    )

    meeting_id: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    join_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    host_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    meeting_password: Mapped[str | None] = mapped_column(String(64), nullable=True)
    meeting_status: Mapped[MeetingStatusEnum] = mapped_column(
        SAEnum(MeetingStatusEnum, name="meeting_status_enum", native_enum=False),
        default=MeetingStatusEnum.PENDING,
        nullable=False,
    )

    recording_status: Mapped[RecordingStatusEnum] = mapped_column(
        SAEnum(RecordingStatusEnum, name="recording_status_enum", native_enum=False),
        default=RecordingStatusEnum.NOT_READY,
        nullable=False,
    )
    recording_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    join_link_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Written by the review service through POST /sessions/{id}/review-submitted.
    review_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def is_participant(self, user_id: UUID) -> bool:
        return user_id in (self.mentee_id, self.mentor_id)

    def counterpart_of(self, user_id: UUID) -> UUID:
        return self.mentor_id if user_id == self.mentee_id else self.mentee_id


class RescheduleRequest(BaseModelMixin, Base):
    """Proposal to move a confirmed session to a new start time."""

    __tablename__ = "reschedule_requests"
    __table_args__ = (
        Index(
            "uq_reschedule_requests_pending_session_id",
            "session_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    session_id: Mapped[UUID] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_by_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    original_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    proposed_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[RescheduleStatusEnum] = mapped_column(
        SAEnum(RescheduleStatusEnum, name="reschedule_status_enum", native_enum=False),
        default=RescheduleStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_by_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(String(255), nullable=True)
