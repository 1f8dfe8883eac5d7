"""Handlers for session jobs executed by the scheduled jobs worker.

Every handler re-reads the session under a row lock and does nothing when the
session is no longer in the state the job was armed for, so a job that fires
late or twice is harmless.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.enums import JobKindEnum, MeetingStatusEnum, SessionStatusEnum
from app.integrations.contracts import MeetingProvider
from app.integrations.zoom import build_zoom_client
from app.modules.jobs.models import ScheduledJob
from app.modules.jobs.repository import JobsRepository
from app.modules.jobs.runner import JobSpec
from app.modules.jobs.scheduler import JobScheduler
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.sessions.events import publish_session_event
from app.modules.sessions.models import MentorshipSession
from app.modules.sessions.policy import join_window
from app.modules.sessions.reschedule import RescheduleArbiter
from app.modules.sessions.service import SessionsService, build_sessions_service
from app.shared.exceptions import BusinessRuleException
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

UNPAID_RELEASE_REASON = "payment window expired"
MEETING_LIVE_STATES = frozenset(
    {
        SessionStatusEnum.CONFIRMED,
        SessionStatusEnum.PENDING_RESCHEDULE,
        SessionStatusEnum.IN_PROGRESS,
    },
)


class SessionJobHandlers:
    """Deferred session actions keyed by job kind."""

    def __init__(
        self,
        sessions_service: SessionsService,
        arbiter: RescheduleArbiter,
        meeting_provider: MeetingProvider,
        *,
        now_provider=utc_now,
    ) -> None:
        self.sessions_service = sessions_service
        self.arbiter = arbiter
        self.meeting_provider = meeting_provider
        self.now_provider = now_provider

    @property
    def repository(self):
        return self.sessions_service.sessions_repository

    @property
    def audit_repository(self):
        return self.sessions_service.audit_repository

    async def _load(self, job: ScheduledJob) -> MentorshipSession | None:
        mentorship_session = await self.repository.get_session_for_update(job.session_id)
        if mentorship_session is None:
            logger.warning("Job %s references missing session %s", job.kind, job.session_id)
        return mentorship_session

    async def create_meeting(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.status not in MEETING_LIVE_STATES:
            return

        if mentorship_session.meeting_id:
            # Re-armed after a reschedule: move the existing meeting.
            await self.meeting_provider.update_meeting(
                mentorship_session.meeting_id,
                start_at=mentorship_session.scheduled_start_at,
                duration_minutes=mentorship_session.duration_minutes,
            )
            return

        details = await self.meeting_provider.create_meeting(
            topic=mentorship_session.topic or "Mentorship session",
            start_at=mentorship_session.scheduled_start_at,
            duration_minutes=mentorship_session.duration_minutes,
            reference=str(mentorship_session.id),
        )
        mentorship_session.meeting_id = details.meeting_id
        mentorship_session.join_url = details.join_url
        mentorship_session.host_url = details.host_url
        mentorship_session.meeting_password = details.password
        mentorship_session.meeting_status = MeetingStatusEnum.READY
        await self.repository.save(mentorship_session)
        logger.info("Meeting %s created for session %s", details.meeting_id, mentorship_session.id)

    async def meeting_unavailable(self, job: ScheduledJob, error_message: str) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.meeting_status == MeetingStatusEnum.READY:
            return
        mentorship_session.meeting_status = MeetingStatusEnum.UNAVAILABLE
        await self.repository.save(mentorship_session)
        logger.warning("Meeting for session %s marked unavailable: %s", mentorship_session.id, error_message)
        await publish_session_event(self.audit_repository, mentorship_session, "meeting.unavailable")

    async def send_join_link(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.status not in MEETING_LIVE_STATES:
            return
        if mentorship_session.join_link_sent_at is not None:
            return
        if mentorship_session.meeting_status == MeetingStatusEnum.UNAVAILABLE:
            return
        if mentorship_session.join_url is None:
            raise BusinessRuleException("Meeting is not ready yet")

        mentorship_session.join_link_sent_at = self.now_provider()
        await self.repository.save(mentorship_session)
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "session.join_link",
            join_url=mentorship_session.join_url,
        )

    async def auto_terminate(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None:
            return
        if mentorship_session.status not in (SessionStatusEnum.IN_PROGRESS, SessionStatusEnum.CONFIRMED):
            return

        if mentorship_session.meeting_id:
            await self.meeting_provider.end_meeting(mentorship_session.meeting_id)
        # Nobody joined a confirmed session: the no-show check decides its fate.
        if mentorship_session.status == SessionStatusEnum.IN_PROGRESS:
            await self.sessions_service.complete_session(mentorship_session, None)

    async def no_show_check(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.status != SessionStatusEnum.CONFIRMED:
            return
        window = join_window(mentorship_session.scheduled_start_at, mentorship_session.scheduled_end_at)
        if not window.has_closed(self.now_provider()):
            return
        await self.sessions_service.apply_no_show(mentorship_session, None)

    async def release_payment_hold(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.status != SessionStatusEnum.COMPLETED:
            return
        billing_service = self.sessions_service.billing_service
        payment = await billing_service.get_payment_for_session(mentorship_session.id)
        if not await billing_service.release_hold(payment):
            return
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "payout.released",
            payout_amount=str(payment.payout_amount),
            currency=payment.currency,
        )

    async def review_request(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.status != SessionStatusEnum.COMPLETED:
            return
        if mentorship_session.review_submitted_at is not None or mentorship_session.review_requested_at is not None:
            return
        mentorship_session.review_requested_at = self.now_provider()
        await self.repository.save(mentorship_session)
        await publish_session_event(self.audit_repository, mentorship_session, "session.review_requested")

    async def release_unpaid_session(self, job: ScheduledJob) -> None:
        mentorship_session = await self._load(job)
        if mentorship_session is None or mentorship_session.status != SessionStatusEnum.PENDING:
            return
        logger.info("Releasing unpaid session %s", mentorship_session.id)
        await self.sessions_service.cancel_session(mentorship_session, UNPAID_RELEASE_REASON, None)

    async def reschedule_expiry(self, job: ScheduledJob) -> None:
        await self.arbiter.expire_pending(job.session_id)

    def specs(self) -> dict[JobKindEnum, JobSpec]:
        max_attempts = settings.job_max_attempts
        return {
            JobKindEnum.CREATE_MEETING: JobSpec(
                handler=self.create_meeting,
                max_attempts=settings.meeting_creation_max_attempts,
                on_exhausted=self.meeting_unavailable,
            ),
            JobKindEnum.SEND_JOIN_LINK: JobSpec(handler=self.send_join_link, max_attempts=max_attempts),
            JobKindEnum.AUTO_TERMINATE: JobSpec(handler=self.auto_terminate, max_attempts=max_attempts),
            JobKindEnum.NO_SHOW_CHECK: JobSpec(handler=self.no_show_check, max_attempts=max_attempts),
            JobKindEnum.RELEASE_PAYMENT_HOLD: JobSpec(handler=self.release_payment_hold, max_attempts=max_attempts),
            JobKindEnum.REVIEW_REQUEST: JobSpec(handler=self.review_request, max_attempts=max_attempts),
            JobKindEnum.RELEASE_UNPAID_SESSION: JobSpec(
                handler=self.release_unpaid_session,
                max_attempts=max_attempts,
            ),
            JobKindEnum.RESCHEDULE_EXPIRY: JobSpec(handler=self.reschedule_expiry, max_attempts=max_attempts),
        }


def build_session_job_handlers(
    session: AsyncSession,
    *,
    meeting_provider: MeetingProvider | None = None,
    now_provider=utc_now,
) -> SessionJobHandlers:
    sessions_service = build_sessions_service(session, now_provider=now_provider)
    arbiter = RescheduleArbiter(
        sessions_service.sessions_repository,
        SchedulingRepository(session),
        JobScheduler(JobsRepository(session)),
        sessions_service.audit_repository,
        now_provider=now_provider,
    )
    return SessionJobHandlers(
        sessions_service,
        arbiter,
        meeting_provider or build_zoom_client(),
        now_provider=now_provider,
    )
