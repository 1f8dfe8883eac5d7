"""Scheduled job repository layer."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import JobKindEnum, JobStatusEnum
from app.modules.jobs.models import ScheduledJob


class JobsRepository:
    """DB operations for scheduled jobs."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def savepoint(self):
        return self.session.begin_nested()

    async def get_job(self, session_id: UUID, kind: JobKindEnum) -> ScheduledJob | None:
        stmt = select(ScheduledJob).where(
            ScheduledJob.session_id == session_id,
            ScheduledJob.kind == kind,
        )
        return await self.session.scalar(stmt)

    async def create_job(self, session_id: UUID, kind: JobKindEnum, run_at: datetime) -> ScheduledJob:
        job = ScheduledJob(
            session_id=session_id,
            kind=kind,
            run_at=run_at,
            status=JobStatusEnum.PENDING,
            attempts=0,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def reset_job(self, job: ScheduledJob, run_at: datetime) -> ScheduledJob:
        job.run_at = run_at
        job.status = JobStatusEnum.PENDING
        job.attempts = 0
        job.last_error = None
        job.completed_at = None
        await self.session.flush()
        return job

    async def list_due_jobs(self, now: datetime, limit: int) -> list[ScheduledJob]:
        stmt = (
            select(ScheduledJob)
            .where(
                ScheduledJob.status == JobStatusEnum.PENDING,
                ScheduledJob.run_at <= now,
            )
            .order_by(ScheduledJob.run_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def mark_done(self, job: ScheduledJob, completed_at: datetime) -> ScheduledJob:
        job.status = JobStatusEnum.DONE
        job.completed_at = completed_at
        job.last_error = None
        await self.session.flush()
        return job

    async def mark_retry(self, job: ScheduledJob, error_message: str, next_run_at: datetime) -> ScheduledJob:
        job.attempts += 1
        job.last_error = error_message
        job.run_at = next_run_at
        await self.session.flush()
        return job

    async def mark_failed(self, job: ScheduledJob, error_message: str) -> ScheduledJob:
        job.status = JobStatusEnum.FAILED
        job.attempts += 1
        job.last_error = error_message
        await self.session.flush()
        return job

    async def cancel_pending(self, session_id: UUID, kinds: Iterable[JobKindEnum]) -> int:
        stmt = (
            update(ScheduledJob)
            .where(
                ScheduledJob.session_id == session_id,
                ScheduledJob.kind.in_(list(kinds)),
                ScheduledJob.status == JobStatusEnum.PENDING,
            )
            .values(status=JobStatusEnum.CANCELLED)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def count_by_status(self) -> dict[JobStatusEnum, int]:
        stmt = select(ScheduledJob.status, func.count()).group_by(ScheduledJob.status)
        rows = (await self.session.execute(stmt)).all()
        return {status: int(count) for status, count in rows}
