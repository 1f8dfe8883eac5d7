"""Reschedule negotiation between the two session participants."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import JobKindEnum, RescheduleStatusEnum, RoleEnum, SessionStatusEnum
from app.modules.audit.repository import AuditRepository
from app.modules.identity.models import User
from app.modules.jobs.repository import JobsRepository
from app.modules.jobs.scheduler import JobScheduler
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.sessions.events import publish_session_event
from app.modules.sessions.lifecycle import ensure_transition
from app.modules.sessions.models import MentorshipSession, RescheduleRequest
from app.modules.sessions.policy import join_window
from app.modules.sessions.repository import SessionsRepository
from app.modules.sessions.schemas import RescheduleProposeRequest
from app.modules.sessions.service import arm_timed_jobs
from app.shared.exceptions import (
    AlreadyPending,
    AlreadyResolved,
    BusinessRuleException,
    InvalidParty,
    NotAuthorized,
    NotFoundException,
    SchedulingConflict,
    TooLateToReschedule,
)
from app.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

EXPIRED_NOTE = "expired without a response"


class RescheduleArbiter:
    """Propose and resolve schedule changes for confirmed sessions.

    A request is resolved by the participant who did not propose it, or by an
    administrator. Resolving twice with the same decision returns the session
    unchanged; a conflicting second decision is rejected.
    """

    def __init__(
        self,
        sessions_repository: SessionsRepository,
        scheduling_repository: SchedulingRepository,
        job_scheduler: JobScheduler,
        audit_repository: AuditRepository,
        *,
        now_provider=utc_now,
    ) -> None:
        self.sessions_repository = sessions_repository
        self.scheduling_repository = scheduling_repository
        self.job_scheduler = job_scheduler
        self.audit_repository = audit_repository
        self.now_provider = now_provider

    async def _get_locked(self, session_id: UUID) -> MentorshipSession:
        mentorship_session = await self.sessions_repository.get_session_for_update(session_id)
        if mentorship_session is None:
            raise NotFoundException("Session not found")
        return mentorship_session

    async def _ensure_no_conflicts(
        self,
        mentorship_session: MentorshipSession,
        start_at: datetime,
        end_at: datetime,
    ) -> None:
        for user_id in (mentorship_session.mentee_id, mentorship_session.mentor_id):
            if await self.sessions_repository.has_overlapping_session(
                user_id,
                start_at,
                end_at,
                exclude_session_id=mentorship_session.id,
            ):
                raise SchedulingConflict("The proposed time overlaps another session of a participant")
        if await self.scheduling_repository.has_overlapping_slot(
            mentorship_session.mentor_id,
            start_at,
            end_at,
            exclude_slot_id=mentorship_session.time_slot_id,
        ):
            raise SchedulingConflict("The proposed time overlaps another published slot of the mentor")

    async def propose(
        self,
        session_id: UUID,
        payload: RescheduleProposeRequest,
        actor: User,
    ) -> RescheduleRequest:
        mentorship_session = await self._get_locked(session_id)
        if not mentorship_session.is_participant(actor.id):
            raise InvalidParty("Only session participants can propose a reschedule")

        pending = await self.sessions_repository.get_pending_reschedule(mentorship_session.id)
        if pending is not None or mentorship_session.status == SessionStatusEnum.PENDING_RESCHEDULE:
            raise AlreadyPending("A reschedule request is already pending for this session")
        ensure_transition(mentorship_session.status, SessionStatusEnum.PENDING_RESCHEDULE, "reschedule")

        now = self.now_provider()
        min_notice = timedelta(hours=settings.reschedule_min_notice_hours)
        if mentorship_session.scheduled_start_at - now < min_notice:
            raise TooLateToReschedule(
                f"Sessions can be rescheduled only up to {settings.reschedule_min_notice_hours} hours before start",
            )

        new_start = ensure_utc(payload.new_start_at)
        if new_start - now < min_notice:
            raise BusinessRuleException(
                f"The new start must be at least {settings.reschedule_min_notice_hours} hours from now",
            )
        new_end = new_start + timedelta(minutes=mentorship_session.duration_minutes)
        await self._ensure_no_conflicts(mentorship_session, new_start, new_end)

        # Unanswered requests lapse before the join window of the current time opens.
        expires_at = min(
            now + timedelta(hours=settings.reschedule_response_hours),
            join_window(mentorship_session.scheduled_start_at, mentorship_session.scheduled_end_at).opens_at,
        )
        request = await self.sessions_repository.create_reschedule_request(
            session_id=mentorship_session.id,
            requested_by_id=actor.id,
            original_start_at=mentorship_session.scheduled_start_at,
            proposed_start_at=new_start,
            reason=payload.reason,
            expires_at=expires_at,
        )
        mentorship_session.status = SessionStatusEnum.PENDING_RESCHEDULE
        await self.sessions_repository.save(mentorship_session)
        await self.job_scheduler.schedule(
            mentorship_session.id,
            JobKindEnum.RESCHEDULE_EXPIRY,
            expires_at,
            rearm=True,
        )

        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=actor.id,
            action="session.reschedule.propose",
            entity_type="reschedule_request",
            entity_id=str(request.id),
            payload={
                "session_id": str(mentorship_session.id),
                "original_start_at": request.original_start_at.isoformat(),
                "proposed_start_at": new_start.isoformat(),
            },
        )
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "reschedule.requested",
            request_id=str(request.id),
            requested_by=str(actor.id),
            proposed_start_at=new_start,
            reason=payload.reason,
        )
        return request

    async def resolve(
        self,
        request_id: UUID,
        actor: User,
        approve: bool,
        note: str | None = None,
    ) -> MentorshipSession:
        request = await self.sessions_repository.get_reschedule_request(request_id)
        if request is None:
            raise NotFoundException("Reschedule request not found")

        mentorship_session = await self._get_locked(request.session_id)
        request = await self.sessions_repository.get_reschedule_request_for_update(request_id)

        is_admin = actor.role.name == RoleEnum.ADMIN
        if not is_admin and not mentorship_session.is_participant(actor.id):
            raise NotAuthorized("Only the other participant or an administrator can resolve this request")
        if actor.id == request.requested_by_id:
            raise NotAuthorized("You cannot resolve your own reschedule request")

        decision = RescheduleStatusEnum.APPROVED if approve else RescheduleStatusEnum.REJECTED
        if request.status != RescheduleStatusEnum.PENDING:
            if request.status == decision:
                return mentorship_session
            raise AlreadyResolved(f"Reschedule request was already {request.status}")

        now = self.now_provider()
        if approve:
            await self._apply(mentorship_session, request, now)
        await self._close(mentorship_session, request, decision, actor.id, note, now)
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "reschedule.approved" if approve else "reschedule.rejected",
            request_id=str(request.id),
            resolved_by=str(actor.id),
            original_start_at=request.original_start_at,
            proposed_start_at=request.proposed_start_at,
        )
        return mentorship_session

    async def expire_pending(self, session_id: UUID) -> bool:
        """Reject a pending request whose response deadline passed."""
        mentorship_session = await self._get_locked(session_id)
        request = await self.sessions_repository.get_pending_reschedule(session_id)
        if request is None:
            return False
        now = self.now_provider()
        if now < request.expires_at:
            return False

        await self._close(mentorship_session, request, RescheduleStatusEnum.REJECTED, None, EXPIRED_NOTE, now)
        logger.info("Reschedule request %s for session %s expired", request.id, session_id)
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "reschedule.expired",
            request_id=str(request.id),
            proposed_start_at=request.proposed_start_at,
        )
        return True

    async def _apply(
        self,
        mentorship_session: MentorshipSession,
        request: RescheduleRequest,
        now: datetime,
    ) -> None:
        new_start = request.proposed_start_at
        new_end = new_start + timedelta(minutes=mentorship_session.duration_minutes)
        await self._ensure_no_conflicts(mentorship_session, new_start, new_end)

        mentorship_session.scheduled_start_at = new_start
        mentorship_session.scheduled_end_at = new_end
        mentorship_session.join_link_sent_at = None
        await self.scheduling_repository.move_slot(mentorship_session.time_slot_id, new_start)

        await arm_timed_jobs(self.job_scheduler, mentorship_session, now, rearm=True)
        # The meeting job updates an existing meeting in place.
        await self.job_scheduler.schedule(mentorship_session.id, JobKindEnum.CREATE_MEETING, now, rearm=True)

    async def _close(
        self,
        mentorship_session: MentorshipSession,
        request: RescheduleRequest,
        decision: RescheduleStatusEnum,
        resolver_id: UUID | None,
        note: str | None,
        now: datetime,
    ) -> None:
        ensure_transition(mentorship_session.status, SessionStatusEnum.CONFIRMED, "resolve a reschedule for")
        request.status = decision
        request.resolved_by_id = resolver_id
        request.resolved_at = now
        request.resolution_note = note
        await self.sessions_repository.save_reschedule(request)

        mentorship_session.status = SessionStatusEnum.CONFIRMED
        await self.sessions_repository.save(mentorship_session)
        await self.job_scheduler.cancel(mentorship_session.id, [JobKindEnum.RESCHEDULE_EXPIRY])

        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=resolver_id,
            action=f"session.reschedule.{decision}",
            entity_type="reschedule_request",
            entity_id=str(request.id),
            payload={
                "session_id": str(mentorship_session.id),
                "scheduled_start_at": mentorship_session.scheduled_start_at.isoformat(),
                "note": note,
            },
        )


async def get_reschedule_arbiter(session: AsyncSession = Depends(get_db_session)) -> RescheduleArbiter:
    """Dependency provider for the reschedule arbiter."""
    return RescheduleArbiter(
        SessionsRepository(session),
        SchedulingRepository(session),
        JobScheduler(JobsRepository(session)),
        AuditRepository(session),
    )
