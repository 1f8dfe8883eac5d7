"""Zoom webhook router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from app.core.metrics import record_webhook
from app.modules.recordings.service import ZoomWebhookService, get_zoom_webhook_service
from app.shared.exceptions import AppException

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/zoom")
async def zoom_webhook(
    request: Request,
    service: ZoomWebhookService = Depends(get_zoom_webhook_service),
) -> dict[str, Any]:
    """Acknowledge a Zoom event; recording work continues in the jobs worker."""
    body = await request.body()
    headers = {key.lower(): value for key, value in request.headers.items()}
    try:
        result = await service.handle(headers, body)
    except AppException:
        record_webhook("zoom", "rejected")
        raise
    record_webhook("zoom", "applied" if result.get("applied") else "ignored")
    return result
