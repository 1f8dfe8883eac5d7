"""Resumable recording ingestion: download, store, transcribe, publish.

Each stage runs in its own savepoint and persists the stage it reached, so a
retried job continues from the last finished stage instead of downloading or
transcribing again.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.enums import JobKindEnum, RecordingStageEnum, RecordingStatusEnum
from app.integrations.contracts import MeetingProvider, RecordingStore, Transcriber
from app.integrations.deepgram import build_transcriber
from app.integrations.storage import build_recording_store
from app.integrations.zoom import build_zoom_client
from app.modules.audit.repository import AuditRepository
from app.modules.jobs.models import ScheduledJob
from app.modules.jobs.runner import JobSpec
from app.modules.recordings.models import RecordingIngestion
from app.modules.recordings.repository import RecordingsRepository
from app.modules.sessions.events import publish_session_event
from app.modules.sessions.repository import SessionsRepository

logger = logging.getLogger(__name__)
settings = get_settings()

CONTENT_TYPES = {"MP4": "video/mp4", "M4A": "audio/mp4"}


def recording_key(session_id: UUID, file_type: str = "MP4") -> str:
    return f"recordings/{session_id}.{file_type.lower()}"


class RecordingPipeline:
    """Drive one ingestion row through its stages."""

    def __init__(
        self,
        recordings_repository: RecordingsRepository,
        sessions_repository: SessionsRepository,
        audit_repository: AuditRepository,
        meeting_provider: MeetingProvider,
        store: RecordingStore,
        transcriber: Transcriber,
    ) -> None:
        self.recordings_repository = recordings_repository
        self.sessions_repository = sessions_repository
        self.audit_repository = audit_repository
        self.meeting_provider = meeting_provider
        self.store = store
        self.transcriber = transcriber

    async def run(self, job: ScheduledJob) -> None:
        ingestion = await self.recordings_repository.get_by_session_id(job.session_id)
        if ingestion is None:
            logger.warning("No recording ingestion for session %s", job.session_id)
            return

        while ingestion.stage not in (RecordingStageEnum.COMPLETED, RecordingStageEnum.FAILED):
            try:
                async with self.recordings_repository.savepoint():
                    await self._advance(ingestion)
            except Exception as exc:
                ingestion.last_error = f"{type(exc).__name__}: {exc}"
                await self.recordings_repository.save(ingestion)
                raise

    async def _advance(self, ingestion: RecordingIngestion) -> None:
        if ingestion.stage == RecordingStageEnum.RECEIVED:
            key = recording_key(ingestion.session_id, ingestion.file_type)
            # An upload that finished before a crash is not repeated.
            if not await self.store.exists(key):
                data = await self.meeting_provider.download_recording(
                    ingestion.download_url,
                    ingestion.download_token,
                )
                await self.store.upload(key, data, CONTENT_TYPES.get(ingestion.file_type, "application/octet-stream"))
            ingestion.storage_key = key
            ingestion.stage = RecordingStageEnum.STORED
        elif ingestion.stage == RecordingStageEnum.STORED:
            media_url = self.store.presigned_get_url(ingestion.storage_key)
            ingestion.transcript = await self.transcriber.transcribe_url(media_url)
            ingestion.stage = RecordingStageEnum.TRANSCRIBED
        elif ingestion.stage == RecordingStageEnum.TRANSCRIBED:
            await self._publish(ingestion)
            ingestion.stage = RecordingStageEnum.COMPLETED
        ingestion.last_error = None
        await self.recordings_repository.save(ingestion)

    async def _publish(self, ingestion: RecordingIngestion) -> None:
        mentorship_session = await self.sessions_repository.get_session_for_update(ingestion.session_id)
        mentorship_session.recording_storage_key = ingestion.storage_key
        mentorship_session.transcript = ingestion.transcript
        mentorship_session.recording_status = RecordingStatusEnum.READY
        await self.sessions_repository.save(mentorship_session)
        logger.info("Recording for session %s is ready", mentorship_session.id)
        await publish_session_event(self.audit_repository, mentorship_session, "recording.ready")

    async def mark_failed(self, job: ScheduledJob, error_message: str) -> None:
        """Recording failure is terminal and shown to both participants."""
        ingestion = await self.recordings_repository.get_by_session_id(job.session_id)
        if ingestion is not None and ingestion.stage != RecordingStageEnum.COMPLETED:
            ingestion.stage = RecordingStageEnum.FAILED
            ingestion.last_error = error_message
            await self.recordings_repository.save(ingestion)

        mentorship_session = await self.sessions_repository.get_session_for_update(job.session_id)
        if mentorship_session is None or mentorship_session.recording_status == RecordingStatusEnum.READY:
            return
        mentorship_session.recording_status = RecordingStatusEnum.FAILED
        await self.sessions_repository.save(mentorship_session)
        logger.warning("Recording for session %s failed: %s", mentorship_session.id, error_message)
        await publish_session_event(self.audit_repository, mentorship_session, "recording.failed")

    def specs(self) -> dict[JobKindEnum, JobSpec]:
        return {
            JobKindEnum.RECORDING_INGESTION: JobSpec(
                handler=self.run,
                max_attempts=settings.job_max_attempts,
                on_exhausted=self.mark_failed,
                atomic=False,
            ),
        }


def build_recording_pipeline(
    session: AsyncSession,
    *,
    meeting_provider: MeetingProvider | None = None,
    store: RecordingStore | None = None,
    transcriber: Transcriber | None = None,
) -> RecordingPipeline:
    return RecordingPipeline(
        RecordingsRepository(session),
        SessionsRepository(session),
        AuditRepository(session),
        meeting_provider or build_zoom_client(),
        store or build_recording_store(),
        transcriber or build_transcriber(),
    )
