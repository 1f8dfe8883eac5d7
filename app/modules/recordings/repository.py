"""Recording ingestion repository layer."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import RecordingStageEnum
from app.modules.recordings.models import RecordingIngestion


class RecordingsRepository:
    """DB operations for recording ingestions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self):
        return self.session.begin_nested()

    async def create_ingestion(
        self,
        session_id: UUID,
        meeting_id: str,
        event_id: str | None,
        download_url: str,
        download_token: str | None,
        file_type: str,
    ) -> RecordingIngestion:
        ingestion = RecordingIngestion(
            session_id=session_id,
            meeting_id=meeting_id,
            event_id=event_id,
            download_url=download_url,
            download_token=download_token,
            file_type=file_type,
            stage=RecordingStageEnum.RECEIVED,
        )
        self.session.add(ingestion)
        await self.session.flush()
        return ingestion

    async def get_by_meeting_id(self, meeting_id: str) -> RecordingIngestion | None:
        stmt = select(RecordingIngestion).where(RecordingIngestion.meeting_id == meeting_id)
        return await self.session.scalar(stmt)

    async def get_by_session_id(self, session_id: UUID) -> RecordingIngestion | None:
        stmt = select(RecordingIngestion).where(RecordingIngestion.session_id == session_id)
        return await self.session.scalar(stmt)

    async def save(self, ingestion: RecordingIngestion) -> RecordingIngestion:
        await self.session.flush()
        return ingestion
