"""Notifications API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.config import get_settings
from app.modules.identity.service import get_current_user
from app.modules.notifications.schemas import DeliveryMetricsRead, NotificationRead
from app.modules.notifications.service import NotificationsService, get_notifications_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/notifications", tags=["notifications"])
settings = get_settings()


@router.get("/my", response_model=Page[NotificationRead])
async def list_my_notifications(
    session_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: NotificationsService = Depends(get_notifications_service),
    current_user=Depends(get_current_user),
) -> Page[NotificationRead]:
    """List notifications for current user, optionally for one session."""
    items, total = await service.list_my_notifications(
        current_user,
        pagination.limit,
        pagination.offset,
        session_id=session_id,
    )
    return build_page([NotificationRead.model_validate(item) for item in items], total, pagination)


@router.get("/delivery/metrics", response_model=DeliveryMetricsRead)
async def get_delivery_metrics(
    service: NotificationsService = Depends(get_notifications_service),
    current_user=Depends(get_current_user),
) -> DeliveryMetricsRead:
    """Outbox backlog and notification delivery counters (admin only)."""
    return await service.get_delivery_metrics(current_user, max_retries=settings.outbox_max_retries)
