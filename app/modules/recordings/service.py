"""Zoom webhook ingestion: signature checks, meeting state, recording hand-off."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from typing import Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import JobKindEnum, RecordingStatusEnum, SessionStatusEnum
from app.modules.audit.repository import AuditRepository
from app.modules.jobs.repository import JobsRepository
from app.modules.jobs.scheduler import JobScheduler
from app.modules.recordings.repository import RecordingsRepository
from app.modules.sessions.events import publish_session_event
from app.modules.sessions.repository import SessionsRepository
from app.shared.exceptions import BusinessRuleException, InvalidWebhookSignature
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

SIGNATURE_HEADER = "x-zm-signature"
TIMESTAMP_HEADER = "x-zm-request-timestamp"


def compute_zoom_signature(secret: str, timestamp: str, body: bytes) -> str:
    message = b"v0:" + timestamp.encode("utf-8") + b":" + body
    return "v0=" + hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_zoom_signature(secret: str | None, headers: Mapping[str, str], body: bytes) -> None:
    """Reject a delivery whose signature does not match the shared secret."""
    if not secret:
        raise InvalidWebhookSignature("Zoom webhook secret is not configured")
    signature = headers.get(SIGNATURE_HEADER)
    timestamp = headers.get(TIMESTAMP_HEADER)
    if not signature or not timestamp:
        raise InvalidWebhookSignature("Missing Zoom signature headers")
    expected = compute_zoom_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise InvalidWebhookSignature("Invalid Zoom webhook signature")


def url_validation_response(secret: str, plain_token: str) -> dict[str, str]:
    encrypted = hmac.new(secret.encode("utf-8"), plain_token.encode("utf-8"), hashlib.sha256).hexdigest()
    return {"plainToken": plain_token, "encryptedToken": encrypted}


def pick_recording_file(files: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Prefer a finished MP4 with the combined speaker and screen view."""
    candidates = [
        item
        for item in files
        if str(item.get("file_type", "")).upper() == "MP4" and item.get("download_url")
    ]
    if not candidates:
        return None
    for item in candidates:
        if item.get("recording_type") == "shared_screen_with_speaker_view":
            return item
    return candidates[0]


class ZoomWebhookService:
    """Apply verified Zoom events to sessions and queue recording ingestion."""

    def __init__(
        self,
        sessions_repository: SessionsRepository,
        recordings_repository: RecordingsRepository,
        job_scheduler: JobScheduler,
        audit_repository: AuditRepository,
        *,
        webhook_secret: str | None,
        now_provider=utc_now,
    ) -> None:
        self.sessions_repository = sessions_repository
        self.recordings_repository = recordings_repository
        self.job_scheduler = job_scheduler
        self.audit_repository = audit_repository
        self.webhook_secret = webhook_secret
        self.now_provider = now_provider

    async def handle(self, headers: Mapping[str, str], body: bytes) -> dict[str, Any]:
        verify_zoom_signature(self.webhook_secret, headers, body)
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise BusinessRuleException("Invalid webhook payload") from exc

        event = payload.get("event")
        data = payload.get("payload") or {}
        logger.info("Zoom webhook received: %s", event)

        if event == "endpoint.url_validation":
            plain_token = data.get("plainToken")
            if not plain_token:
                raise BusinessRuleException("plainToken is missing")
            return url_validation_response(self.webhook_secret, plain_token)

        meeting = data.get("object") or {}
        meeting_id = str(meeting.get("id")) if meeting.get("id") is not None else None
        applied = False
        if event == "meeting.started" and meeting_id:
            applied = await self.meeting_started(meeting_id)
        elif event == "recording.completed" and meeting_id:
            download_token = payload.get("download_token") or meeting.get("download_access_token")
            applied = await self.recording_completed(
                meeting_id,
                meeting.get("recording_files") or [],
                download_token,
                event_id=meeting.get("uuid"),
            )
        elif event == "meeting.ended":
            logger.info("Zoom meeting %s ended after %s minutes", meeting_id, meeting.get("duration"))
        return {"received": True, "event": event, "applied": applied}

    async def meeting_started(self, meeting_id: str) -> bool:
        mentorship_session = await self.sessions_repository.get_session_by_meeting_id(meeting_id)
        if mentorship_session is None:
            logger.warning("meeting.started for unknown meeting %s", meeting_id)
            return False
        mentorship_session = await self.sessions_repository.get_session_for_update(mentorship_session.id)
        if mentorship_session.status != SessionStatusEnum.CONFIRMED:
            return False

        mentorship_session.status = SessionStatusEnum.IN_PROGRESS
        mentorship_session.started_at = self.now_provider()
        await self.sessions_repository.save(mentorship_session)
        await publish_session_event(self.audit_repository, mentorship_session, "session.started")
        return True

    async def recording_completed(
        self,
        meeting_id: str,
        files: list[dict[str, Any]],
        download_token: str | None,
        *,
        event_id: str | None = None,
    ) -> bool:
        """Record the ingestion once per meeting and hand it to the job runner."""
        mentorship_session = await self.sessions_repository.get_session_by_meeting_id(meeting_id)
        if mentorship_session is None:
            logger.warning("recording.completed for unknown meeting %s", meeting_id)
            return False
        # The session lock serializes duplicate deliveries for the same meeting.
        mentorship_session = await self.sessions_repository.get_session_for_update(mentorship_session.id)

        existing = await self.recordings_repository.get_by_meeting_id(meeting_id)
        if existing is not None:
            logger.info("Duplicate recording.completed for meeting %s ignored", meeting_id)
            return False

        recording_file = pick_recording_file(files)
        if recording_file is None:
            logger.warning("recording.completed for meeting %s has no MP4 file", meeting_id)
            if mentorship_session.recording_status != RecordingStatusEnum.NOT_READY:
                return False
            mentorship_session.recording_status = RecordingStatusEnum.FAILED
            await self.sessions_repository.save(mentorship_session)
            await publish_session_event(self.audit_repository, mentorship_session, "recording.failed")
            return True

        ingestion = await self.recordings_repository.create_ingestion(
            session_id=mentorship_session.id,
            meeting_id=meeting_id,
            event_id=event_id,
            download_url=recording_file["download_url"],
            download_token=download_token,
            file_type=str(recording_file.get("file_type", "MP4")).upper(),
        )
        await self.job_scheduler.schedule(
            mentorship_session.id,
            JobKindEnum.RECORDING_INGESTION,
            self.now_provider(),
        )
        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=None,
            action="recording.received",
            entity_type="recording_ingestion",
            entity_id=str(ingestion.id),
            payload={"session_id": str(mentorship_session.id), "meeting_id": meeting_id},
        )
        return True


async def get_zoom_webhook_service(session: AsyncSession = Depends(get_db_session)) -> ZoomWebhookService:
    """Dependency provider for the Zoom webhook service."""
    return ZoomWebhookService(
        SessionsRepository(session),
        RecordingsRepository(session),
        JobScheduler(JobsRepository(session)),
        AuditRepository(session),
        webhook_secret=settings.zoom_webhook_secret_token,
    )
