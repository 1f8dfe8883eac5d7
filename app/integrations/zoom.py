"""Zoom meetings client using server-to-server OAuth."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

import httpx

from app.core.config import Settings, get_settings
from app.integrations.contracts import MeetingDetails
from app.shared.exceptions import MeetingProviderError

logger = logging.getLogger(__name__)

# Refresh the cached access token this many seconds before Zoom expires it.
TOKEN_REFRESH_MARGIN_SECONDS = 300


class ZoomClient:
    """HTTP client for the Zoom REST API."""

    def __init__(
        self,
        *,
        account_id: str | None,
        client_id: str | None,
        client_secret: str | None,
        api_base_url: str = "https://api.zoom.us/v2",
        oauth_url: str = "https://zoom.us/oauth/token",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._account_id = account_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_base_url = api_base_url.rstrip("/")
        self._oauth_url = oauth_url
        self._timeout = timeout
        self._transport = transport
        self._access_token: str | None = None
        self._token_refresh_at: float = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _get_access_token(self) -> str:
        now = time.monotonic()
        if self._access_token is not None and now < self._token_refresh_at:
            return self._access_token
        if not (self._account_id and self._client_id and self._client_secret):
            raise MeetingProviderError("Zoom credentials are not configured")

        try:
            async with self._client() as client:
                response = await client.post(
                    self._oauth_url,
                    params={"grant_type": "account_credentials", "account_id": self._account_id},
                    auth=(self._client_id, self._client_secret),
                )
        except httpx.TransportError as exc:
            raise MeetingProviderError(f"Zoom OAuth endpoint unreachable: {exc}") from exc
        if response.status_code >= 400:
            logger.error("Zoom OAuth failed with %s: %s", response.status_code, response.text[:500])
            raise MeetingProviderError(f"Zoom OAuth failed with status {response.status_code}")

        body = response.json()
        self._access_token = body["access_token"]
        expires_in = int(body.get("expires_in", 3600))
        self._token_refresh_at = now + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 60)
        return self._access_token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        url = f"{self._api_base_url}/{path.lstrip('/')}"
        token = await self._get_access_token()
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    json=json_body,
                    params=params,
                )
        except httpx.TransportError as exc:
            logger.error("Zoom API unreachable for %s %s: %s", method, path, exc)
            raise MeetingProviderError(f"Zoom API unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.error(
                "Zoom API error %s for %s %s: %s",
                response.status_code,
                method,
                path,
                response.text[:500],
            )
            raise MeetingProviderError(f"Zoom API returned {response.status_code} for {method} {path}")
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def create_meeting(
        self,
        *,
        topic: str,
        start_at: datetime,
        duration_minutes: int,
        reference: str,
    ) -> MeetingDetails:
        body = await self._request(
            "POST",
            "users/me/meetings",
            json_body={
                "topic": topic[:200],
                "type": 2,
                "start_time": _zoom_time(start_at),
                "duration": duration_minutes,
                "timezone": "UTC",
                "agenda": reference,
                "settings": {
                    "host_video": True,
                    "participant_video": True,
                    "join_before_host": True,
                    "waiting_room": False,
                    "auto_recording": "cloud",
                },
            },
        )
        if not body or "id" not in body:
            raise MeetingProviderError("Zoom returned no meeting id")
        return MeetingDetails(
            meeting_id=str(body["id"]),
            join_url=body["join_url"],
            host_url=body.get("start_url"),
            password=body.get("password"),
        )

    async def update_meeting(self, meeting_id: str, *, start_at: datetime, duration_minutes: int) -> None:
        await self._request(
            "PATCH",
            f"meetings/{meeting_id}",
            json_body={"start_time": _zoom_time(start_at), "duration": duration_minutes},
        )

    async def end_meeting(self, meeting_id: str) -> None:
        try:
            await self._request("PUT", f"meetings/{meeting_id}/status", json_body={"action": "end"})
        except MeetingProviderError as exc:
            # Zoom answers 400 when the meeting is not running; nothing to end.
            logger.info("Zoom meeting %s was not ended: %s", meeting_id, exc.message)

    async def download_recording(self, download_url: str, download_token: str | None) -> bytes:
        token = download_token or await self._get_access_token()
        try:
            async with self._client() as client:
                response = await client.get(
                    download_url,
                    headers={"Authorization": f"Bearer {token}"},
                    follow_redirects=True,
                )
        except httpx.TransportError as exc:
            raise MeetingProviderError(f"Recording download failed: {exc}") from exc
        if response.status_code >= 400:
            raise MeetingProviderError(f"Recording download returned {response.status_code}")
        return response.content


def _zoom_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_zoom_client(settings: Settings | None = None) -> ZoomClient:
    settings = settings or get_settings()
    return ZoomClient(
        account_id=settings.zoom_account_id,
        client_id=settings.zoom_client_id,
        client_secret=settings.zoom_client_secret,
        api_base_url=settings.zoom_api_base_url,
        oauth_url=settings.zoom_oauth_url,
        timeout=settings.external_http_timeout_seconds,
    )
