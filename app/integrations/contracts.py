"""Interfaces of the external collaborators the orchestrator drives."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True, slots=True)
class MeetingDetails:
    meeting_id: str
    join_url: str
    host_url: str | None = None
    password: str | None = None


class MeetingProvider(Protocol):
    async def create_meeting(
        self,
        *,
        topic: str,
        start_at: datetime,
        duration_minutes: int,
        reference: str,
    ) -> MeetingDetails: ...

    async def update_meeting(self, meeting_id: str, *, start_at: datetime, duration_minutes: int) -> None: ...

    async def end_meeting(self, meeting_id: str) -> None: ...

    async def download_recording(self, download_url: str, download_token: str | None) -> bytes: ...


class RecordingStore(Protocol):
    async def upload(self, key: str, data: bytes, content_type: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    def presigned_get_url(self, key: str) -> str: ...


class Transcriber(Protocol):
    async def transcribe_url(self, media_url: str) -> str: ...
