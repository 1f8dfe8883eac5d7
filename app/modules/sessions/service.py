"""Session orchestration: booking, payment confirmation, lifecycle commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import (
    JobKindEnum,
    MeetingStatusEnum,
    PaymentGatewayEnum,
    PaymentStatusEnum,
    RecordingAvailabilityEnum,
    RecordingStatusEnum,
    RefundStatusEnum,
    RescheduleStatusEnum,
    RoleEnum,
    SessionStatusEnum,
)
from app.integrations.contracts import RecordingStore
from app.integrations.storage import build_recording_store
from app.modules.audit.models import AuditLog
from app.modules.audit.repository import AuditRepository
from app.modules.billing.gateways.base import GatewayEvent, GatewayEventKind, WebhookDelivery
from app.modules.billing.gateways.registry import build_gateway_registry
from app.modules.billing.models import Payment
from app.modules.billing.repository import BillingRepository
from app.modules.billing.schemas import PaymentConfirmRequest, PaymentIntentCreate
from app.modules.billing.service import BillingService
from app.modules.identity.models import User
from app.modules.jobs.repository import JobsRepository
from app.modules.jobs.scheduler import JobScheduler
from app.modules.mentors.repository import MentorsRepository
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.sessions.events import publish_session_event
from app.modules.sessions.lifecycle import can_transition, ensure_transition
from app.modules.sessions.models import MentorshipSession, RescheduleRequest
from app.modules.sessions.policy import (
    JoinTelemetry,
    RefundDecision,
    calculate_refund,
    join_link_send_at,
    join_telemetry,
    join_window,
    refund_percentage,
)
from app.modules.sessions.repository import SessionsRepository
from app.modules.sessions.schemas import SessionBookRequest
from app.shared.exceptions import (
    BusinessRuleException,
    InvalidStateTransition,
    NotAuthorized,
    NotFoundException,
    SchedulingConflict,
    SlotNotFound,
    SlotTooSoon,
    SlotUnavailable,
    TooEarly,
    TooLate,
    UnauthorizedException,
)
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

ZERO = Decimal("0.00")
GATEWAY_REFUND_REASON = "payment refunded at the gateway"

# Jobs tied to the scheduled time; dropped whenever the session stops being live.
TIMED_JOB_KINDS = (
    JobKindEnum.CREATE_MEETING,
    JobKindEnum.SEND_JOIN_LINK,
    JobKindEnum.AUTO_TERMINATE,
    JobKindEnum.NO_SHOW_CHECK,
    JobKindEnum.RELEASE_UNPAID_SESSION,
    JobKindEnum.RESCHEDULE_EXPIRY,
)


async def arm_timed_jobs(
    job_scheduler: JobScheduler,
    mentorship_session: MentorshipSession,
    now: datetime,
    *,
    rearm: bool = False,
) -> None:
    """Arm jobs that depend on the session's current start and end."""
    window = join_window(mentorship_session.scheduled_start_at, mentorship_session.scheduled_end_at)
    await job_scheduler.schedule(
        mentorship_session.id,
        JobKindEnum.SEND_JOIN_LINK,
        join_link_send_at(now, mentorship_session.scheduled_start_at),
        rearm=rearm,
    )
    await job_scheduler.schedule(
        mentorship_session.id,
        JobKindEnum.AUTO_TERMINATE,
        mentorship_session.scheduled_end_at + timedelta(minutes=settings.auto_terminate_grace_minutes),
        rearm=rearm,
    )
    await job_scheduler.schedule(
        mentorship_session.id,
        JobKindEnum.NO_SHOW_CHECK,
        window.closes_at,
        rearm=rearm,
    )


@dataclass(slots=True)
class CancellationResult:
    session: MentorshipSession
    refund_amount: Decimal
    refund_percentage: int
    refund_status: RefundStatusEnum


@dataclass(slots=True)
class JoinResult:
    session: MentorshipSession
    telemetry: JoinTelemetry


@dataclass(slots=True)
class CompletionResult:
    session: MentorshipSession
    completed_at: datetime
    payment_release_at: datetime


@dataclass(slots=True)
class SessionDetails:
    session: MentorshipSession
    payment: Payment | None
    reschedule_requests: list[RescheduleRequest]


class SessionsService:
    """Session orchestrator over the slot, payment and job collaborators."""

    def __init__(
        self,
        sessions_repository: SessionsRepository,
        scheduling_repository: SchedulingRepository,
        mentors_repository: MentorsRepository,
        billing_service: BillingService,
        job_scheduler: JobScheduler,
        audit_repository: AuditRepository,
        *,
        recording_store: RecordingStore | None = None,
        now_provider=utc_now,
    ) -> None:
        self.sessions_repository = sessions_repository
        self.scheduling_repository = scheduling_repository
        self.mentors_repository = mentors_repository
        self.billing_service = billing_service
        self.job_scheduler = job_scheduler
        self.audit_repository = audit_repository
        self.recording_store = recording_store
        self.now_provider = now_provider

    @staticmethod
    def _is_admin(actor: User) -> bool:
        return actor.role.name == RoleEnum.ADMIN

    def _ensure_can_view(self, mentorship_session: MentorshipSession, actor: User) -> None:
        if self._is_admin(actor) or mentorship_session.is_participant(actor.id):
            return
        raise NotAuthorized("You are not a participant of this session")

    async def _get_locked(self, session_id: UUID) -> MentorshipSession:
        mentorship_session = await self.sessions_repository.get_session_for_update(session_id)
        if mentorship_session is None:
            raise NotFoundException("Session not found")
        return mentorship_session

    async def _get(self, session_id: UUID) -> MentorshipSession:
        mentorship_session = await self.sessions_repository.get_session_by_id(session_id)
        if mentorship_session is None:
            raise NotFoundException("Session not found")
        return mentorship_session

    async def book(self, payload: SessionBookRequest, actor: User) -> MentorshipSession:
        """Reserve a slot and create a pending session."""
        if actor.role.name != RoleEnum.MENTEE:
            raise UnauthorizedException("Only mentees can book sessions")

        slot = await self.scheduling_repository.get_slot_by_id(payload.time_slot_id)
        if slot is None:
            raise SlotNotFound("Time slot not found")
        if slot.is_booked:
            raise SlotUnavailable("Time slot is already booked")

        now = self.now_provider()
        notice = timedelta(hours=settings.booking_advance_notice_hours)
        if slot.start_at - now < notice:
            raise SlotTooSoon(
                f"Sessions must be booked at least {settings.booking_advance_notice_hours} hours in advance",
            )

        profile = await self.mentors_repository.get_profile_by_user_id(slot.mentor_id)
        if profile is None or not profile.is_approved:
            raise BusinessRuleException("Mentor is not available for booking")
        try:
            price = profile.rate_for(slot.duration_minutes)
        except ValueError as exc:
            raise BusinessRuleException(str(exc)) from exc

        # Held until commit so two bookings by this mentee cannot both pass the overlap check.
        await self.sessions_repository.lock_requester(actor.id)
        if await self.sessions_repository.has_overlapping_session(actor.id, slot.start_at, slot.end_at):
            raise SchedulingConflict("You already have a session overlapping this time slot")

        if not await self.scheduling_repository.claim_slot(slot.id):
            raise SlotUnavailable("Time slot is already booked")

        mentorship_session = await self.sessions_repository.create_session(
            mentee_id=actor.id,
            mentor_id=slot.mentor_id,
            time_slot_id=slot.id,
            duration_minutes=slot.duration_minutes,
            price=price,
            currency=settings.default_currency,
            scheduled_start_at=slot.start_at,
            scheduled_end_at=slot.end_at,
            topic=payload.topic,
            notes=payload.notes,
        )
        await self.scheduling_repository.attach_session(slot, mentorship_session.id)
        await self.job_scheduler.schedule(
            mentorship_session.id,
            JobKindEnum.RELEASE_UNPAID_SESSION,
            now + timedelta(minutes=settings.booking_payment_window_minutes),
        )
        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=actor.id,
            action="session.book",
            entity_type="session",
            entity_id=str(mentorship_session.id),
            payload={
                "time_slot_id": str(slot.id),
                "mentor_id": str(slot.mentor_id),
                "price": str(price),
                "scheduled_start_at": slot.start_at.isoformat(),
            },
        )
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "session.booked",
            price=str(price),
            currency=mentorship_session.currency,
        )
        return mentorship_session

    async def create_payment_intent(self, payload: PaymentIntentCreate, actor: User) -> Payment:
        """Open a gateway payment for a pending session owned by the mentee."""
        mentorship_session = await self._get_locked(payload.session_id)
        if actor.id != mentorship_session.mentee_id:
            raise NotAuthorized("Only the mentee who booked the session can pay for it")
        if mentorship_session.status != SessionStatusEnum.PENDING:
            raise InvalidStateTransition(
                f"Cannot pay for a session in status '{mentorship_session.status}'",
            )
        return await self.billing_service.create_intent(
            session_id=mentorship_session.id,
            amount=mentorship_session.price,
            currency=mentorship_session.currency,
            gateway_name=PaymentGatewayEnum(payload.gateway),
            actor_id=actor.id,
            customer_email=actor.email,
        )

    async def confirm_payment(
        self,
        payload: PaymentConfirmRequest,
        actor: User,
    ) -> tuple[MentorshipSession, Payment]:
        """Confirm a session after re-reading its payment from the gateway."""
        mentorship_session = await self._get_locked(payload.session_id)
        self._ensure_can_view(mentorship_session, actor)

        payment = await self.billing_service.get_payment_by_intent(payload.payment_intent_id, for_update=True)
        if payment is None or payment.session_id != mentorship_session.id:
            raise NotFoundException("Payment not found for this session")

        captured = await self.billing_service.sync_from_gateway(payment)
        if not captured:
            raise BusinessRuleException(f"Payment is not captured (status '{payment.status}')")

        await self._on_payment_captured(mentorship_session, payment)
        return mentorship_session, payment

    async def handle_payment_webhook(
        self,
        gateway_name: PaymentGatewayEnum,
        delivery: WebhookDelivery,
    ) -> tuple[GatewayEvent, bool]:
        """Verify and apply a payment webhook; returns the event and whether it changed state."""
        event = self.billing_service.parse_webhook(gateway_name, delivery)
        if event.kind == GatewayEventKind.IGNORED or not event.intent_id:
            return event, False

        payment = await self.billing_service.get_payment_by_intent(event.intent_id)
        if payment is None:
            logger.warning("Payment webhook %s references unknown intent %s", event.event_type, event.intent_id)
            return event, False

        # Lock order matches confirm_payment: session row first, then payment row.
        mentorship_session = await self._get_locked(payment.session_id)
        outcome = await self.billing_service.apply_event(event)
        if not outcome.applied:
            return event, False

        if event.kind == GatewayEventKind.CAPTURED:
            await self._on_payment_captured(mentorship_session, payment)
        elif event.kind == GatewayEventKind.FAILED:
            await publish_session_event(
                self.audit_repository,
                mentorship_session,
                "payment.failed",
                reason=payment.failure_reason,
            )
        elif event.kind == GatewayEventKind.REFUNDED:
            await self._on_gateway_refund(mentorship_session)
        return event, True

    async def _on_gateway_refund(self, mentorship_session: MentorshipSession) -> None:
        """A refund issued outside the platform ends the booking it paid for."""
        if mentorship_session.status == SessionStatusEnum.PENDING_RESCHEDULE:
            request = await self.sessions_repository.get_pending_reschedule(mentorship_session.id)
            if request is not None:
                request.status = RescheduleStatusEnum.REJECTED
                request.resolved_at = self.now_provider()
                request.resolution_note = GATEWAY_REFUND_REASON
                await self.sessions_repository.save_reschedule(request)
            mentorship_session.status = SessionStatusEnum.CONFIRMED

        if not can_transition(mentorship_session.status, SessionStatusEnum.CANCELLED):
            logger.warning(
                "Gateway refund for session %s in status '%s' needs manual reconciliation",
                mentorship_session.id,
                mentorship_session.status,
            )
            return
        await self.cancel_session(mentorship_session, GATEWAY_REFUND_REASON, None)

    async def _on_payment_captured(self, mentorship_session: MentorshipSession, payment: Payment) -> None:
        if mentorship_session.status == SessionStatusEnum.PENDING:
            ensure_transition(mentorship_session.status, SessionStatusEnum.CONFIRMED, "confirm")
            now = self.now_provider()
            mentorship_session.status = SessionStatusEnum.CONFIRMED
            mentorship_session.confirmed_at = now
            await self.sessions_repository.save(mentorship_session)

            await self.job_scheduler.cancel(mentorship_session.id, [JobKindEnum.RELEASE_UNPAID_SESSION])
            await self.job_scheduler.schedule(mentorship_session.id, JobKindEnum.CREATE_MEETING, now)
            await arm_timed_jobs(self.job_scheduler, mentorship_session, now)
            await publish_session_event(
                self.audit_repository,
                mentorship_session,
                "session.confirmed",
                amount=str(payment.captured_amount),
                currency=payment.currency,
            )
            return

        if mentorship_session.status == SessionStatusEnum.CANCELLED:
            logger.warning(
                "Capture arrived for cancelled session %s; refunding in full",
                mentorship_session.id,
            )
            decision = RefundDecision(amount=payment.captured_amount or payment.amount, percentage=100)
            refund_status = await self.billing_service.refund(payment, decision)
            await publish_session_event(
                self.audit_repository,
                mentorship_session,
                "session.late_payment_refunded",
                refund_amount=str(decision.amount),
                refund_status=refund_status,
            )

    async def join(self, session_id: UUID, actor: User) -> JoinResult:
        """Enter the meeting inside the join window; the first join starts the session."""
        mentorship_session = await self._get_locked(session_id)
        if not mentorship_session.is_participant(actor.id):
            raise NotAuthorized("Only session participants can join")
        if mentorship_session.status not in (SessionStatusEnum.CONFIRMED, SessionStatusEnum.IN_PROGRESS):
            raise InvalidStateTransition(f"Cannot join a session in status '{mentorship_session.status}'")

        now = self.now_provider()
        window = join_window(mentorship_session.scheduled_start_at, mentorship_session.scheduled_end_at)
        if window.not_yet_open(now):
            raise TooEarly(f"Joining opens at {window.opens_at.isoformat()}")
        if window.has_closed(now):
            raise TooLate("Session has ended")

        if mentorship_session.status == SessionStatusEnum.CONFIRMED:
            mentorship_session.status = SessionStatusEnum.IN_PROGRESS
            mentorship_session.started_at = now
            await self.sessions_repository.save(mentorship_session)
            await publish_session_event(self.audit_repository, mentorship_session, "session.started")

        if mentorship_session.meeting_status == MeetingStatusEnum.PENDING:
            await self.job_scheduler.ensure(mentorship_session.id, JobKindEnum.CREATE_MEETING, now)

        return JoinResult(
            session=mentorship_session,
            telemetry=join_telemetry(now, mentorship_session.scheduled_start_at, mentorship_session.scheduled_end_at),
        )

    async def complete(self, session_id: UUID, actor: User) -> CompletionResult:
        mentorship_session = await self._get_locked(session_id)
        if not self._is_admin(actor) and actor.id != mentorship_session.mentor_id:
            raise NotAuthorized("Only the mentor or an administrator can complete a session")
        return await self.complete_session(mentorship_session, actor.id)

    async def complete_session(
        self,
        mentorship_session: MentorshipSession,
        actor_id: UUID | None,
    ) -> CompletionResult:
        """Mark a session completed and arm payout and review follow-ups."""
        ensure_transition(mentorship_session.status, SessionStatusEnum.COMPLETED, "complete")
        now = self.now_provider()
        release_at = now + timedelta(hours=settings.payment_hold_hours)

        mentorship_session.status = SessionStatusEnum.COMPLETED
        mentorship_session.completed_at = now
        await self.sessions_repository.save(mentorship_session)

        payment = await self.billing_service.get_payment_for_session(mentorship_session.id)
        await self.billing_service.schedule_release(payment, release_at)

        await self.job_scheduler.cancel(
            mentorship_session.id,
            [JobKindEnum.SEND_JOIN_LINK, JobKindEnum.AUTO_TERMINATE, JobKindEnum.NO_SHOW_CHECK],
        )
        await self.job_scheduler.schedule(mentorship_session.id, JobKindEnum.RELEASE_PAYMENT_HOLD, release_at)
        await self.job_scheduler.schedule(
            mentorship_session.id,
            JobKindEnum.REVIEW_REQUEST,
            now + timedelta(hours=settings.review_request_delay_hours),
        )
        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=actor_id,
            action="session.complete",
            entity_type="session",
            entity_id=str(mentorship_session.id),
            payload={"completed_at": now.isoformat(), "payment_release_at": release_at.isoformat()},
        )
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "session.completed",
            payment_release_at=release_at,
        )
        return CompletionResult(session=mentorship_session, completed_at=now, payment_release_at=release_at)

    async def cancel(self, session_id: UUID, reason: str, actor: User) -> CancellationResult:
        mentorship_session = await self._get_locked(session_id)
        if not self._is_admin(actor) and not mentorship_session.is_participant(actor.id):
            raise NotAuthorized("Only session participants or an administrator can cancel")
        return await self.cancel_session(mentorship_session, reason, actor.id)

    async def cancel_session(
        self,
        mentorship_session: MentorshipSession,
        reason: str,
        actor_id: UUID | None,
    ) -> CancellationResult:
        """Cancel, refund by the time-based policy, and free the slot.

        A refund the gateway rejects is recorded on the payment; the session
        is cancelled and the slot released regardless.
        """
        ensure_transition(mentorship_session.status, SessionStatusEnum.CANCELLED, "cancel")
        now = self.now_provider()

        payment = await self.billing_service.get_payment_for_session(mentorship_session.id)
        if payment is not None and payment.status == PaymentStatusEnum.REFUNDED:
            # Already refunded at the gateway; report it without refunding twice.
            decision = RefundDecision(
                amount=payment.refund_amount or ZERO,
                percentage=payment.refund_percentage or 0,
            )
            refund_status = payment.refund_status
        else:
            if payment is not None and payment.status == PaymentStatusEnum.CAPTURED:
                decision = calculate_refund(
                    payment.captured_amount or payment.amount,
                    now,
                    mentorship_session.scheduled_start_at,
                )
            else:
                decision = RefundDecision(
                    amount=ZERO,
                    percentage=refund_percentage(now, mentorship_session.scheduled_start_at),
                )
            refund_status = await self.billing_service.refund(payment, decision)

        mentorship_session.status = SessionStatusEnum.CANCELLED
        mentorship_session.cancelled_at = now
        mentorship_session.cancellation_reason = reason
        mentorship_session.cancelled_by_id = actor_id
        await self.sessions_repository.save(mentorship_session)

        await self.scheduling_repository.release_slot(mentorship_session.time_slot_id)
        await self.job_scheduler.cancel(mentorship_session.id, TIMED_JOB_KINDS)

        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=actor_id,
            action="session.cancel",
            entity_type="session",
            entity_id=str(mentorship_session.id),
            payload={
                "reason": reason,
                "refund_amount": str(decision.amount),
                "refund_percentage": decision.percentage,
                "refund_status": str(refund_status),
            },
        )
        await publish_session_event(
            self.audit_repository,
            mentorship_session,
            "session.cancelled",
            reason=reason,
            cancelled_by=str(actor_id) if actor_id else None,
            refund_amount=str(decision.amount),
            refund_percentage=decision.percentage,
            refund_status=refund_status,
        )
        return CancellationResult(
            session=mentorship_session,
            refund_amount=decision.amount,
            refund_percentage=decision.percentage,
            refund_status=refund_status,
        )

    async def mark_no_show(self, session_id: UUID, actor: User) -> MentorshipSession:
        if not self._is_admin(actor):
            raise NotAuthorized("Only administrators can mark a session as no-show")
        mentorship_session = await self._get_locked(session_id)
        ensure_transition(mentorship_session.status, SessionStatusEnum.NO_SHOW, "mark no-show for")
        window = join_window(mentorship_session.scheduled_start_at, mentorship_session.scheduled_end_at)
        if not window.has_closed(self.now_provider()):
            raise BusinessRuleException("No-show can be recorded only after the join window has closed")
        return await self.apply_no_show(mentorship_session, actor.id)

    async def apply_no_show(self, mentorship_session: MentorshipSession, actor_id: UUID | None) -> MentorshipSession:
        mentorship_session.status = SessionStatusEnum.NO_SHOW
        await self.sessions_repository.save(mentorship_session)
        await self.job_scheduler.cancel(
            mentorship_session.id,
            [JobKindEnum.SEND_JOIN_LINK, JobKindEnum.AUTO_TERMINATE, JobKindEnum.NO_SHOW_CHECK],
        )
        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=actor_id,
            action="session.no_show",
            entity_type="session",
            entity_id=str(mentorship_session.id),
            payload={"scheduled_end_at": mentorship_session.scheduled_end_at.isoformat()},
        )
        await publish_session_event(self.audit_repository, mentorship_session, "session.no_show")
        return mentorship_session

    async def record_review(self, session_id: UUID, actor: User) -> MentorshipSession:
        """Note that the review service stored a review, so no review request goes out."""
        mentorship_session = await self._get_locked(session_id)
        if not self._is_admin(actor) and actor.id != mentorship_session.mentee_id:
            raise NotAuthorized("Only the mentee or an administrator can record a review")
        if mentorship_session.status != SessionStatusEnum.COMPLETED:
            raise BusinessRuleException("Only completed sessions can be reviewed")
        if mentorship_session.review_submitted_at is not None:
            return mentorship_session

        mentorship_session.review_submitted_at = self.now_provider()
        await self.sessions_repository.save(mentorship_session)
        await self.job_scheduler.cancel(mentorship_session.id, [JobKindEnum.REVIEW_REQUEST])
        await self.audit_repository.create_audit_log(
            session_id=mentorship_session.id,
            actor_id=actor.id,
            action="session.review.recorded",
            entity_type="session",
            entity_id=str(mentorship_session.id),
            payload={"review_submitted_at": mentorship_session.review_submitted_at.isoformat()},
        )
        return mentorship_session

    async def list_sessions(
        self,
        actor: User,
        status: SessionStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[MentorshipSession], int]:
        return await self.sessions_repository.list_sessions(
            user_id=actor.id,
            role_name=actor.role.name,
            status=status,
            limit=limit,
            offset=offset,
        )

    async def get_details(self, session_id: UUID, actor: User) -> SessionDetails:
        mentorship_session = await self._get(session_id)
        self._ensure_can_view(mentorship_session, actor)
        return SessionDetails(
            session=mentorship_session,
            payment=await self.billing_service.get_payment_for_session(mentorship_session.id),
            reschedule_requests=await self.sessions_repository.list_reschedule_requests(mentorship_session.id),
        )

    async def get_audit_trail(self, session_id: UUID, actor: User) -> list[AuditLog]:
        """Every recorded change to the session and its payment, oldest first."""
        if not self._is_admin(actor):
            raise NotAuthorized("Only administrators can read the audit trail")
        mentorship_session = await self._get(session_id)
        return await self.audit_repository.list_session_trail(mentorship_session.id)

    async def get_recording(
        self,
        session_id: UUID,
        actor: User,
    ) -> tuple[RecordingAvailabilityEnum, str | None]:
        mentorship_session = await self._get(session_id)
        self._ensure_can_view(mentorship_session, actor)
        availability = _availability(mentorship_session.recording_status)
        url = None
        if availability == RecordingAvailabilityEnum.AVAILABLE and self.recording_store is not None:
            url = self.recording_store.presigned_get_url(mentorship_session.recording_storage_key)
        return availability, url

    async def get_transcript(
        self,
        session_id: UUID,
        actor: User,
    ) -> tuple[RecordingAvailabilityEnum, str | None]:
        mentorship_session = await self._get(session_id)
        self._ensure_can_view(mentorship_session, actor)
        availability = _availability(mentorship_session.recording_status)
        transcript = mentorship_session.transcript if availability == RecordingAvailabilityEnum.AVAILABLE else None
        return availability, transcript


def _availability(recording_status: RecordingStatusEnum) -> RecordingAvailabilityEnum:
    if recording_status == RecordingStatusEnum.READY:
        return RecordingAvailabilityEnum.AVAILABLE
    if recording_status == RecordingStatusEnum.FAILED:
        return RecordingAvailabilityEnum.FAILED
    return RecordingAvailabilityEnum.PROCESSING


def build_sessions_service(session: AsyncSession, *, now_provider=utc_now) -> SessionsService:
    """Wire the orchestrator over one database session."""
    audit_repository = AuditRepository(session)
    billing_service = BillingService(
        BillingRepository(session),
        build_gateway_registry(),
        audit_repository,
        now_provider=now_provider,
    )
    return SessionsService(
        sessions_repository=SessionsRepository(session),
        scheduling_repository=SchedulingRepository(session),
        mentors_repository=MentorsRepository(session),
        billing_service=billing_service,
        job_scheduler=JobScheduler(JobsRepository(session)),
        audit_repository=audit_repository,
        recording_store=build_recording_store(),
        now_provider=now_provider,
    )


async def get_sessions_service(session: AsyncSession = Depends(get_db_session)) -> SessionsService:
    """Dependency provider for sessions service."""
    return build_sessions_service(session)
