"""Run-this-at-time-T facility backed by the scheduled_jobs table."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from app.core.enums import JobKindEnum, JobStatusEnum
from app.modules.jobs.models import ScheduledJob
from app.modules.jobs.repository import JobsRepository

logger = logging.getLogger(__name__)


class JobScheduler:
    """Upsert deferred actions keyed by (session_id, kind)."""

    def __init__(self, repository: JobsRepository) -> None:
        self.repository = repository

    async def schedule(
        self,
        session_id: UUID,
        kind: JobKindEnum,
        run_at: datetime,
        *,
        rearm: bool = False,
    ) -> ScheduledJob:
        """Schedule or move a job.

        A job that already completed for the key is left untouched unless
        ``rearm`` is set, so repeated confirmations never run an action twice.
        """
        job = await self.repository.get_job(session_id, kind)
        if job is None:
            return await self.repository.create_job(session_id, kind, run_at)

        if job.status == JobStatusEnum.DONE and not rearm:
            logger.debug("Job %s for session %s already done; not rescheduling", kind, session_id)
            return job

        return await self.repository.reset_job(job, run_at)

    async def ensure(self, session_id: UUID, kind: JobKindEnum, run_at: datetime) -> ScheduledJob:
        """Create the job only if the key has none; an existing job keeps its attempts and backoff."""
        job = await self.repository.get_job(session_id, kind)
        if job is not None:
            return job
        return await self.repository.create_job(session_id, kind, run_at)

    async def cancel(self, session_id: UUID, kinds: Iterable[JobKindEnum]) -> int:
        return await self.repository.cancel_pending(session_id, kinds)
