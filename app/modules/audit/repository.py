"""Audit trail and outbox repository."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import OutboxStatusEnum
from app.modules.audit.models import AuditLog, OutboxEvent


@dataclass(frozen=True, slots=True)
class OutboxCounts:
    pending: int = 0
    processed: int = 0
    retryable_failed: int = 0
    dead_letter: int = 0


class AuditRepository:
    """Writes the session audit trail and owns the outbox queue."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_audit_log(
        self,
        actor_id: UUID | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict,
        session_id: UUID | None = None,
    ) -> AuditLog:
        log = AuditLog(
            session_id=session_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def list_session_trail(self, session_id: UUID) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.session_id == session_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def create_outbox_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
    ) -> OutboxEvent:
        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            status=OutboxStatusEnum.PENDING,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def claim_pending_outbox(self, limit: int, now: datetime) -> list[OutboxEvent]:
        """Lock a batch of deliverable events; concurrent workers skip each other's rows."""
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusEnum.PENDING,
                OutboxEvent.available_at <= now,
            )
            .order_by(OutboxEvent.occurred_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def requeue_due_failed_outbox(self, now: datetime, max_retries: int) -> int:
        stmt = (
            update(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusEnum.FAILED,
                OutboxEvent.retries < max_retries,
                OutboxEvent.available_at <= now,
            )
            .values(status=OutboxStatusEnum.PENDING, error_message=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def mark_outbox_processed(self, event: OutboxEvent, processed_at: datetime) -> OutboxEvent:
        event.status = OutboxStatusEnum.PROCESSED
        event.processed_at = processed_at
        event.error_message = None
        await self.session.flush()
        return event

    async def mark_outbox_failed(self, event: OutboxEvent, error_message: str, retry_at: datetime) -> OutboxEvent:
        event.status = OutboxStatusEnum.FAILED
        event.retries += 1
        event.error_message = error_message
        event.available_at = retry_at
        await self.session.flush()
        return event

    async def count_outbox(self, max_retries: int) -> OutboxCounts:
        """Delivery backlog split into retryable failures and dead letters."""
        failed = OutboxEvent.status == OutboxStatusEnum.FAILED
        stmt = select(
            func.count().filter(OutboxEvent.status == OutboxStatusEnum.PENDING),
            func.count().filter(OutboxEvent.status == OutboxStatusEnum.PROCESSED),
            func.count().filter(and_(failed, OutboxEvent.retries < max_retries)),
            func.count().filter(and_(failed, OutboxEvent.retries >= max_retries)),
        ).select_from(OutboxEvent)
        pending, processed, retryable, dead = (await self.session.execute(stmt)).one()
        return OutboxCounts(
            pending=int(pending or 0),
            processed=int(processed or 0),
            retryable_failed=int(retryable or 0),
            dead_letter=int(dead or 0),
        )
