"""Executor for due scheduled jobs."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.core.enums import JobKindEnum
from app.core.metrics import record_job_outcome
from app.modules.jobs.models import ScheduledJob
from app.modules.jobs.repository import JobsRepository
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)

JobHandler = Callable[[ScheduledJob], Awaitable[None]]
ExhaustionHook = Callable[[ScheduledJob, str], Awaitable[None]]


@dataclass(slots=True)
class JobSpec:
    handler: JobHandler
    max_attempts: int = 5
    on_exhausted: ExhaustionHook | None = None
    # Handlers that persist their own progress open savepoints themselves.
    atomic: bool = True


class ScheduledJobRunner:
    """Pick due jobs, dispatch them by kind, and apply retry policy."""

    def __init__(
        self,
        repository: JobsRepository,
        specs: dict[JobKindEnum, JobSpec],
        *,
        batch_size: int = 50,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 900,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.specs = specs
        self.batch_size = batch_size
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider

    async def run_once(self) -> dict[str, int]:
        """Run one processing cycle."""
        stats = {"picked": 0, "done": 0, "retried": 0, "failed": 0}
        jobs = await self.repository.list_due_jobs(self.now_provider(), limit=self.batch_size)
        stats["picked"] = len(jobs)

        for job in jobs:
            spec = self.specs.get(job.kind)
            if spec is None:
                await self.repository.mark_failed(job, f"No handler registered for {job.kind}")
                record_job_outcome(job.kind, "failed")
                stats["failed"] += 1
                continue

            try:
                if spec.atomic:
                    async with self.repository.savepoint():
                        await spec.handler(job)
                else:
                    await spec.handler(job)
            except Exception as exc:
                error_message = f"{type(exc).__name__}: {exc}"
                if job.attempts + 1 >= spec.max_attempts:
                    logger.error(
                        "Job %s for session %s exhausted after %s attempts: %s",
                        job.kind,
                        job.session_id,
                        job.attempts + 1,
                        error_message,
                    )
                    await self.repository.mark_failed(job, error_message)
                    await self._run_exhaustion_hook(spec, job, error_message)
                    record_job_outcome(job.kind, "failed")
                    stats["failed"] += 1
                else:
                    next_run_at = self._next_run_at(job.attempts + 1, self.now_provider())
                    logger.warning(
                        "Job %s for session %s failed (attempt %s), retrying at %s: %s",
                        job.kind,
                        job.session_id,
                        job.attempts + 1,
                        next_run_at.isoformat(),
                        error_message,
                    )
                    await self.repository.mark_retry(job, error_message, next_run_at)
                    record_job_outcome(job.kind, "retried")
                    stats["retried"] += 1
                continue

            await self.repository.mark_done(job, self.now_provider())
            record_job_outcome(job.kind, "done")
            stats["done"] += 1
        return stats

    def _next_run_at(self, attempts: int, now: datetime) -> datetime:
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.base_backoff_seconds * (2 ** (max(attempts, 1) - 1)),
        )
        return now + timedelta(seconds=backoff_seconds)

    async def _run_exhaustion_hook(self, spec: JobSpec, job: ScheduledJob, error_message: str) -> None:
        if spec.on_exhausted is None:
            return
        try:
            async with self.repository.savepoint():
                await spec.on_exhausted(job, error_message)
        except Exception:
            logger.exception("Exhaustion hook failed for job %s of session %s", job.kind, job.session_id)
