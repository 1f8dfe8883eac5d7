"""Notifications repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import NotificationStatusEnum
from app.modules.notifications.models import Notification


class NotificationsRepository:
    """Per-user session notifications."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_notification(
        self,
        user_id: UUID,
        session_id: UUID | None,
        event_type: str,
        channel: str,
        title: str,
        body: str,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            session_id=session_id,
            event_type=event_type,
            channel=channel,
            title=title,
            body=body,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def list_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
        session_id: UUID | None = None,
    ) -> tuple[list[Notification], int]:
        conditions = [Notification.user_id == user_id]
        if session_id is not None:
            conditions.append(Notification.session_id == session_id)

        total = int((await self.session.scalar(select(func.count(Notification.id)).where(*conditions))) or 0)
        stmt = (
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list((await self.session.scalars(stmt)).all()), total

    async def set_status(
        self,
        notification: Notification,
        status: NotificationStatusEnum,
        sent_at: datetime | None,
    ) -> Notification:
        notification.status = status
        notification.sent_at = sent_at
        await self.session.flush()
        return notification

    async def count_by_status(self) -> dict[NotificationStatusEnum, int]:
        stmt = select(Notification.status, func.count()).group_by(Notification.status)
        rows = (await self.session.execute(stmt)).all()
        return {status: int(count) for status, count in rows}
