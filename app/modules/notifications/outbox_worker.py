"""Outbox consumer that materializes session events into notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from app.core.enums import NotificationStatusEnum
from app.modules.audit.models import OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.modules.notifications.repository import NotificationsRepository
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

# event type -> (title, body template over the event payload)
SESSION_TEMPLATES: dict[str, tuple[str, str]] = {
    "session.booked": (
        "Session booked",
        "Session {session_id} on {scheduled_start_at} is reserved until payment completes.",
    ),
    "session.confirmed": (
        "Session confirmed",
        "Payment of {amount} {currency} received. Session {session_id} on {scheduled_start_at} is confirmed.",
    ),
    "payment.failed": (
        "Payment failed",
        "Payment for session {session_id} failed: {reason}.",
    ),
    "session.cancelled": (
        "Session cancelled",
        "Session {session_id} was cancelled: {reason}. "
        "Refund {refund_amount} ({refund_percentage}%), status {refund_status}.",
    ),
    "session.late_payment_refunded": (
        "Payment refunded",
        "Payment for cancelled session {session_id} was refunded in full ({refund_amount}).",
    ),
    "reschedule.requested": (
        "Reschedule requested",
        "A new start time {proposed_start_at} was proposed for session {session_id}: {reason}",
    ),
    "reschedule.approved": (
        "Reschedule approved",
        "Session {session_id} now starts at {scheduled_start_at}.",
    ),
    "reschedule.rejected": (
        "Reschedule rejected",
        "Session {session_id} keeps its start time {scheduled_start_at}.",
    ),
    "reschedule.expired": (
        "Reschedule expired",
        "The proposal for session {session_id} expired without a response. "
        "The session still starts at {scheduled_start_at}.",
    ),
    "session.join_link": (
        "Your session starts soon",
        "Session {session_id} starts at {scheduled_start_at}. Join at {join_url}",
    ),
    "meeting.unavailable": (
        "Meeting unavailable",
        "The video meeting for session {session_id} could not be created.",
    ),
    "session.completed": (
        "Session completed",
        "Session {session_id} is complete.",
    ),
    "session.no_show": (
        "Session missed",
        "Session {session_id} was recorded as a no-show.",
    ),
    "session.review_requested": (
        "How was your session?",
        "Leave a review for session {session_id}.",
    ),
    "recording.ready": (
        "Recording ready",
        "The recording and transcript of session {session_id} are available.",
    ),
    "recording.failed": (
        "Recording unavailable",
        "The recording of session {session_id} could not be processed.",
    ),
    "payout.released": (
        "Payout released",
        "{payout_amount} {currency} for session {session_id} was released.",
    ),
}
MENTEE_ONLY_EVENTS = frozenset({"payment.failed", "session.late_payment_refunded", "session.review_requested"})
MENTOR_ONLY_EVENTS = frozenset({"payout.released"})


class _PayloadValues(dict):
    def __missing__(self, key: str) -> str:
        return "n/a"


@dataclass(slots=True)
class NotificationMessage:
    user_id: UUID
    session_id: UUID
    title: str
    body: str
    channel: str = "email"


class NotificationsOutboxWorker:
    """Turn outbox events into per-participant notifications."""

    def __init__(
        self,
        audit_repository: AuditRepository,
        notifications_repository: NotificationsRepository,
        *,
        batch_size: int = 100,
        max_retries: int = 5,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        now_provider=utc_now,
    ) -> None:
        self.audit_repository = audit_repository
        self.notifications_repository = notifications_repository
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider

    async def run_once(self) -> dict[str, int]:
        """Requeue due failures, then deliver one batch of pending events."""
        now = self.now_provider()
        stats = {"requeued": 0, "processed": 0, "failed": 0, "dispatched": 0}
        stats["requeued"] = await self.audit_repository.requeue_due_failed_outbox(now, self.max_retries)

        events = await self.audit_repository.claim_pending_outbox(limit=self.batch_size, now=now)
        for event in events:
            try:
                messages = self._build_messages(event)
                for message in messages:
                    notification = await self.notifications_repository.create_notification(
                        user_id=message.user_id,
                        session_id=message.session_id,
                        event_type=event.event_type,
                        channel=message.channel,
                        title=message.title,
                        body=message.body,
                    )
                    await self.notifications_repository.set_status(
                        notification,
                        NotificationStatusEnum.SENT,
                        self.now_provider(),
                    )
                    stats["dispatched"] += 1

                await self.audit_repository.mark_outbox_processed(event, self.now_provider())
                stats["processed"] += 1
            except Exception as exc:
                retry_at = now + timedelta(seconds=self._backoff_seconds(event.retries + 1))
                logger.warning(
                    "Outbox event %s (%s) failed, retry at %s: %s",
                    event.id,
                    event.event_type,
                    retry_at.isoformat(),
                    exc,
                )
                await self.audit_repository.mark_outbox_failed(event, str(exc), retry_at)
                stats["failed"] += 1
        return stats

    def _backoff_seconds(self, attempt: int) -> int:
        return min(self.max_backoff_seconds, self.base_backoff_seconds * (2 ** (max(attempt, 1) - 1)))

    def _build_messages(self, event: OutboxEvent) -> list[NotificationMessage]:
        template = SESSION_TEMPLATES.get(event.event_type)
        if template is None:
            return []

        payload = event.payload or {}
        mentee_id = self._required_uuid(payload, "mentee_id")
        mentor_id = self._required_uuid(payload, "mentor_id")
        if event.event_type in MENTEE_ONLY_EVENTS:
            recipients = [mentee_id]
        elif event.event_type in MENTOR_ONLY_EVENTS:
            recipients = [mentor_id]
        else:
            recipients = [mentee_id] if mentee_id == mentor_id else [mentee_id, mentor_id]

        session_id = self._required_uuid(payload, "session_id")
        title, body_template = template
        body = body_template.format_map(_PayloadValues(payload))
        return [
            NotificationMessage(user_id=user_id, session_id=session_id, title=title, body=body)
            for user_id in recipients
        ]

    @staticmethod
    def _required_uuid(payload: dict, key: str) -> UUID:
        value = payload.get(key)
        if value is None:
            raise ValueError(f"Missing required key: {key}")
        return UUID(str(value))
