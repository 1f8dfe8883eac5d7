"""Execute due scheduled session jobs.

Set ``JOBS_WORKER_MODE=poll`` to keep running; the default processes one batch.
"""

from __future__ import annotations

import asyncio

from app.core.config import get_settings
from app.core.database import session_scope
from app.integrations.zoom import build_zoom_client
from app.modules.jobs.repository import JobsRepository
from app.modules.jobs.runner import ScheduledJobRunner
from app.modules.recordings.pipeline import build_recording_pipeline
from app.modules.sessions.jobs import build_session_job_handlers
from app.workers.runtime import run_worker

settings = get_settings()

# One client per process keeps the cached OAuth token across cycles.
_meeting_provider = build_zoom_client()


async def run_cycle() -> dict[str, int]:
    """Run one batch of due jobs in one DB transaction."""
    async with session_scope() as session:
        handlers = build_session_job_handlers(session, meeting_provider=_meeting_provider)
        pipeline = build_recording_pipeline(session, meeting_provider=_meeting_provider)
        runner = ScheduledJobRunner(
            JobsRepository(session),
            {**handlers.specs(), **pipeline.specs()},
            batch_size=settings.jobs_batch_size,
            base_backoff_seconds=settings.job_base_backoff_seconds,
            max_backoff_seconds=settings.job_max_backoff_seconds,
        )
        return await runner.run_once()


if __name__ == "__main__":
    asyncio.run(
        run_worker(
            "Scheduled jobs worker",
            run_cycle,
            mode_env="JOBS_WORKER_MODE",
            poll_seconds=settings.jobs_poll_seconds,
        ),
    )
