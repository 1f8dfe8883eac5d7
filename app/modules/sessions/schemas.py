"""Session schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import (
    MeetingStatusEnum,
    RecordingAvailabilityEnum,
    RecordingStatusEnum,
    RefundStatusEnum,
    RescheduleStatusEnum,
    SessionStatusEnum,
)
from app.modules.billing.schemas import PaymentRead


class SessionBookRequest(BaseModel):
    """Book a published time slot."""

    time_slot_id: UUID
    topic: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)


class SessionCancelRequest(BaseModel):
    reason: str = Field(min_length=10, max_length=1000)


class RescheduleProposeRequest(BaseModel):
    new_start_at: datetime
    reason: str = Field(min_length=10, max_length=1000)


class RescheduleResolveRequest(BaseModel):
    approve: bool
    note: str | None = Field(default=None, max_length=255)


class SessionRead(BaseModel):
    """Session response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    mentee_id: UUID
    mentor_id: UUID
    time_slot_id: UUID
    topic: str | None
    notes: str | None
    duration_minutes: int
    price: Decimal
    currency: str
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    status: SessionStatusEnum
    join_url: str | None
    meeting_status: MeetingStatusEnum
    recording_status: RecordingStatusEnum
    cancellation_reason: str | None
    confirmed_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RescheduleRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    requested_by_id: UUID
    original_start_at: datetime
    proposed_start_at: datetime
    reason: str
    status: RescheduleStatusEnum
    expires_at: datetime
    resolved_by_id: UUID | None
    resolved_at: datetime | None
    resolution_note: str | None
    created_at: datetime


class SessionDetailsRead(BaseModel):
    """Session with its payment and reschedule history."""

    session: SessionRead
    payment: PaymentRead | None
    reschedule_requests: list[RescheduleRequestRead]


class SessionCancelResponse(BaseModel):
    session: SessionRead
    refund_amount: Decimal
    refund_percentage: int
    refund_status: RefundStatusEnum


class SessionJoinResponse(BaseModel):
    session_id: UUID
    status: SessionStatusEnum
    join_url: str | None
    meeting_status: MeetingStatusEnum
    can_join_now: bool
    minutes_until_start: int
    minutes_remaining: int


class SessionCompleteResponse(BaseModel):
    session: SessionRead
    completed_at: datetime
    payment_release_at: datetime


class RecordingRead(BaseModel):
    """Recording availability; never an error while processing."""

    session_id: UUID
    status: RecordingAvailabilityEnum
    url: str | None = None


class TranscriptRead(BaseModel):
    session_id: UUID
    status: RecordingAvailabilityEnum
    transcript: str | None = None


class PaymentConfirmResponse(BaseModel):
    """Outcome of a client-driven payment confirmation."""

    session: SessionRead
    payment: PaymentRead


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None
    action: str
    entity_type: str
    entity_id: str | None
    payload: dict
    created_at: datetime
