"""Notifications read side."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import NotificationStatusEnum, RoleEnum
from app.modules.audit.repository import AuditRepository
from app.modules.identity.models import User
from app.modules.notifications.models import Notification
from app.modules.notifications.repository import NotificationsRepository
from app.modules.notifications.schemas import DeliveryMetricsRead
from app.shared.exceptions import NotAuthorized


class NotificationsService:
    """Lists a participant's notifications and reports delivery health."""

    def __init__(
        self,
        repository: NotificationsRepository,
        audit_repository: AuditRepository,
    ) -> None:
        self.repository = repository
        self.audit_repository = audit_repository

    async def list_my_notifications(
        self,
        actor: User,
        limit: int,
        offset: int,
        session_id: UUID | None = None,
    ) -> tuple[list[Notification], int]:
        return await self.repository.list_for_user(actor.id, limit, offset, session_id=session_id)

    async def get_delivery_metrics(self, actor: User, max_retries: int) -> DeliveryMetricsRead:
        if actor.role.name != RoleEnum.ADMIN:
            raise NotAuthorized("Only administrators can view delivery metrics")

        notification_counts = await self.repository.count_by_status()
        outbox = await self.audit_repository.count_outbox(max_retries)
        return DeliveryMetricsRead(
            notifications_sent=notification_counts.get(NotificationStatusEnum.SENT, 0),
            notifications_failed=notification_counts.get(NotificationStatusEnum.FAILED, 0),
            outbox_pending=outbox.pending,
            outbox_processed=outbox.processed,
            outbox_retryable_failed=outbox.retryable_failed,
            outbox_dead_letter=outbox.dead_letter,
            max_retries=max_retries,
        )


async def get_notifications_service(session: AsyncSession = Depends(get_db_session)) -> NotificationsService:
    return NotificationsService(
        repository=NotificationsRepository(session),
        audit_repository=AuditRepository(session),
    )
