"""Deliver outbox session events as participant notifications.

Set ``OUTBOX_WORKER_MODE=poll`` to keep running; the default processes one batch.
"""

from __future__ import annotations

import asyncio

from app.core.config import get_settings
from app.core.database import session_scope
from app.modules.audit.repository import AuditRepository
from app.modules.notifications.outbox_worker import NotificationsOutboxWorker
from app.modules.notifications.repository import NotificationsRepository
from app.workers.runtime import run_worker

settings = get_settings()


async def run_cycle() -> dict[str, int]:
    async with session_scope() as session:
        worker = NotificationsOutboxWorker(
            audit_repository=AuditRepository(session),
            notifications_repository=NotificationsRepository(session),
            batch_size=settings.outbox_batch_size,
            max_retries=settings.outbox_max_retries,
            base_backoff_seconds=settings.outbox_base_backoff_seconds,
            max_backoff_seconds=settings.outbox_max_backoff_seconds,
        )
        return await worker.run_once()


if __name__ == "__main__":
    asyncio.run(
        run_worker(
            "Outbox notifications worker",
            run_cycle,
            mode_env="OUTBOX_WORKER_MODE",
            poll_seconds=settings.outbox_poll_seconds,
        ),
    )
