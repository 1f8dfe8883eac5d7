"""S3-compatible object storage with SigV4 query-string signing."""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from app.core.config import Settings, get_settings
from app.shared.exceptions import RecordingStorageError

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"


def _hmac(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def _canonical_query(params: dict[str, str]) -> str:
    return "&".join(
        f"{quote(key, safe='-_.~')}={quote(str(params[key]), safe='-_.~')}" for key in sorted(params)
    )


class S3RecordingStore:
    """Path-style bucket access without an SDK; every request is presigned."""

    def __init__(
        self,
        *,
        endpoint_host: str | None,
        bucket_name: str | None,
        access_key_id: str | None,
        secret_access_key: str | None,
        region: str = "auto",
        presign_expires_seconds: int = 3600,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        now_provider=None,
    ) -> None:
        self.endpoint_host = endpoint_host
        self.bucket_name = bucket_name
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.presign_expires_seconds = presign_expires_seconds
        self._timeout = timeout
        self._transport = transport
        self._now_provider = now_provider or (lambda: datetime.now(timezone.utc))

    def _require_config(self) -> None:
        if not (self.endpoint_host and self.bucket_name and self.access_key_id and self.secret_access_key):
            raise RecordingStorageError("Recording storage is not configured")

    def presign(self, method: str, key: str, expires_seconds: int | None = None) -> str:
        self._require_config()
        now = self._now_provider()
        amz_date = now.strftime("%Y%m%dT%H%M%SZ")
        datestamp = now.strftime("%Y%m%d")

        canonical_uri = f"/{self.bucket_name}/{quote(key, safe='/-_.~')}"
        credential_scope = f"{datestamp}/{self.region}/{SERVICE}/aws4_request"
        params = {
            "X-Amz-Algorithm": ALGORITHM,
            "X-Amz-Credential": f"{self.access_key_id}/{credential_scope}",
            "X-Amz-Date": amz_date,
            "X-Amz-Expires": str(expires_seconds or self.presign_expires_seconds),
            "X-Amz-SignedHeaders": "host",
        }
        canonical_query = _canonical_query(params)
        canonical_request = "\n".join(
            [
                method.upper(),
                canonical_uri,
                canonical_query,
                f"host:{self.endpoint_host}\n",
                "host",
                UNSIGNED_PAYLOAD,
            ],
        )
        string_to_sign = "\n".join(
            [
                ALGORITHM,
                amz_date,
                credential_scope,
                hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
            ],
        )

        signing_key = _hmac(("AWS4" + self.secret_access_key).encode("utf-8"), datestamp)
        for part in (self.region, SERVICE, "aws4_request"):
            signing_key = _hmac(signing_key, part)
        signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
        return f"https://{self.endpoint_host}{canonical_uri}?{canonical_query}&X-Amz-Signature={signature}"

    def presigned_get_url(self, key: str) -> str:
        return self.presign("GET", key)

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        url = self.presign("PUT", key, expires_seconds=300)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.put(url, content=data, headers={"Content-Type": content_type})
        except httpx.TransportError as exc:
            logger.error("Upload of %s failed: %s", key, exc)
            raise RecordingStorageError(f"Upload of {key} failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            logger.error("Upload of %s returned %s: %s", key, response.status_code, response.text[:500])
            raise RecordingStorageError(f"Upload of {key} returned status {response.status_code}")

    async def exists(self, key: str) -> bool:
        url = self.presign("HEAD", key, expires_seconds=300)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.head(url)
        except httpx.TransportError as exc:
            raise RecordingStorageError(f"Lookup of {key} failed: {exc}") from exc
        if response.status_code == 404:
            return False
        if not 200 <= response.status_code < 300:
            raise RecordingStorageError(f"Lookup of {key} returned status {response.status_code}")
        return True


def build_recording_store(settings: Settings | None = None) -> S3RecordingStore:
    settings = settings or get_settings()
    return S3RecordingStore(
        endpoint_host=settings.storage_endpoint_host,
        bucket_name=settings.storage_bucket_name,
        access_key_id=settings.storage_access_key_id,
        secret_access_key=settings.storage_secret_access_key,
        region=settings.storage_region,
        presign_expires_seconds=settings.storage_presign_expires_seconds,
        timeout=settings.external_http_timeout_seconds,
    )
