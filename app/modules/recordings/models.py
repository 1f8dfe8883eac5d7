"""Recording ingestion ORM models."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import RecordingStageEnum


class RecordingIngestion(BaseModelMixin, Base):
    """Resumable recording pipeline state, one row per provider meeting."""

    __tablename__ = "recording_ingestions"

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    meeting_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    event_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    download_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    download_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_type: Mapped[str] = mapped_column(String(16), default="MP4", nullable=False)
    stage: Mapped[RecordingStageEnum] = mapped_column(
        SAEnum(RecordingStageEnum, name="recording_stage_enum", native_enum=False),
        default=RecordingStageEnum.RECEIVED,
        nullable=False,
    )
    storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
