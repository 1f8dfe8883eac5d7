"""Deepgram pre-recorded transcription client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.shared.exceptions import TranscriptionError

logger = logging.getLogger(__name__)


def format_timestamp(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def render_transcript(body: dict[str, Any]) -> str:
    """Render a Deepgram response as time-coded lines.

    Utterances are preferred; a response without them falls back to the
    plain transcript of the first channel under a zero timestamp.
    """
    results = body.get("results") or {}
    utterances = results.get("utterances") or []
    lines = []
    for utterance in utterances:
        text = (utterance.get("transcript") or "").strip()
        if not text:
            continue
        speaker = utterance.get("speaker")
        prefix = f"Speaker {speaker}: " if speaker is not None else ""
        lines.append(f"[{format_timestamp(float(utterance.get('start', 0)))}] {prefix}{text}")
    if lines:
        return "\n".join(lines)

    channels = results.get("channels") or []
    alternatives = channels[0].get("alternatives") if channels else None
    text = (alternatives[0].get("transcript") or "").strip() if alternatives else ""
    return f"[{format_timestamp(0)}] {text}" if text else ""


class DeepgramTranscriber:
    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.deepgram.com/v1",
        model: str = "nova-2",
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._transport = transport

    async def transcribe_url(self, media_url: str) -> str:
        if not self._api_key:
            raise TranscriptionError("Deepgram API key is not configured")
        params = {
            "model": self._model,
            "smart_format": "true",
            "diarize": "true",
            "punctuate": "true",
            "utterances": "true",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/listen",
                    params=params,
                    headers={"Authorization": f"Token {self._api_key}"},
                    json={"url": media_url},
                )
        except httpx.TransportError as exc:
            logger.error("Deepgram unreachable: %s", exc)
            raise TranscriptionError(f"Deepgram unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error("Deepgram returned %s: %s", response.status_code, response.text[:500])
            raise TranscriptionError(f"Deepgram returned status {response.status_code}")
        return render_transcript(response.json())


def build_transcriber(settings: Settings | None = None) -> DeepgramTranscriber:
    settings = settings or get_settings()
    return DeepgramTranscriber(
        api_key=settings.deepgram_api_key,
        base_url=settings.deepgram_base_url,
        model=settings.deepgram_model,
    )
