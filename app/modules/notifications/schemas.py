"""Notifications schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.core.enums import NotificationStatusEnum


class NotificationRead(BaseModel):
    """Notification response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID | None
    event_type: str
    channel: str
    title: str
    body: str
    status: NotificationStatusEnum
    sent_at: datetime | None
    created_at: datetime


class DeliveryMetricsRead(BaseModel):
    """Outbox backlog and notification delivery counters."""

    notifications_sent: int
    notifications_failed: int
    outbox_pending: int
    outbox_processed: int
    outbox_retryable_failed: int
    outbox_dead_letter: int
    max_retries: int
