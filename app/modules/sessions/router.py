"""Sessions API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import RoleEnum, SessionStatusEnum
from app.modules.billing.schemas import PaymentRead
from app.modules.identity.service import get_current_user, require_roles
from app.modules.sessions.reschedule import RescheduleArbiter, get_reschedule_arbiter
from app.modules.sessions.schemas import (
    AuditEntryRead,
    RecordingRead,
    RescheduleProposeRequest,
    RescheduleRequestRead,
    RescheduleResolveRequest,
    SessionBookRequest,
    SessionCancelRequest,
    SessionCancelResponse,
    SessionCompleteResponse,
    SessionDetailsRead,
    SessionJoinResponse,
    SessionRead,
    TranscriptRead,
)
from app.modules.sessions.service import SessionsService, get_sessions_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def book_session(
    payload: SessionBookRequest,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> SessionRead:
    """Reserve a time slot and create a pending session."""
    mentorship_session = await service.book(payload, current_user)
    return SessionRead.model_validate(mentorship_session)


@router.get("/my", response_model=Page[SessionRead])
async def list_my_sessions(
    status_filter: SessionStatusEnum | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> Page[SessionRead]:
    """List sessions of the current user."""
    items, total = await service.list_sessions(current_user, status_filter, pagination.limit, pagination.offset)
    serialized = [SessionRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.post(
    "/reschedule-requests/{request_id}/resolve",
    response_model=SessionRead,
)
async def resolve_reschedule(
    request_id: UUID,
    payload: RescheduleResolveRequest,
    arbiter: RescheduleArbiter = Depends(get_reschedule_arbiter),
    current_user=Depends(get_current_user),
) -> SessionRead:
    """Approve or reject a pending reschedule proposal."""
    mentorship_session = await arbiter.resolve(request_id, current_user, payload.approve, payload.note)
    return SessionRead.model_validate(mentorship_session)


@router.get("/{session_id}", response_model=SessionDetailsRead)
async def get_session(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> SessionDetailsRead:
    details = await service.get_details(session_id, current_user)
    return SessionDetailsRead(
        session=SessionRead.model_validate(details.session),
        payment=PaymentRead.model_validate(details.payment) if details.payment is not None else None,
        reschedule_requests=[RescheduleRequestRead.model_validate(item) for item in details.reschedule_requests],
    )


@router.post("/{session_id}/cancel", response_model=SessionCancelResponse)
async def cancel_session(
    session_id: UUID,
    payload: SessionCancelRequest,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> SessionCancelResponse:
    """Cancel a session and apply the time-based refund policy."""
    result = await service.cancel(session_id, payload.reason, current_user)
    return SessionCancelResponse(
        session=SessionRead.model_validate(result.session),
        refund_amount=result.refund_amount,
        refund_percentage=result.refund_percentage,
        refund_status=result.refund_status,
    )


@router.post("/{session_id}/join", response_model=SessionJoinResponse)
async def join_session(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> SessionJoinResponse:
    """Return the join link while the join window is open."""
    result = await service.join(session_id, current_user)
    return SessionJoinResponse(
        session_id=result.session.id,
        status=result.session.status,
        join_url=result.session.join_url,
        meeting_status=result.session.meeting_status,
        can_join_now=result.telemetry.can_join_now,
        minutes_until_start=result.telemetry.minutes_until_start,
        minutes_remaining=result.telemetry.minutes_remaining,
    )


@router.post("/{session_id}/complete", response_model=SessionCompleteResponse)
async def complete_session(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> SessionCompleteResponse:
    """Mark a session completed (mentor or admin)."""
    result = await service.complete(session_id, current_user)
    return SessionCompleteResponse(
        session=SessionRead.model_validate(result.session),
        completed_at=result.completed_at,
        payment_release_at=result.payment_release_at,
    )


@router.post("/{session_id}/no-show", response_model=SessionRead)
async def mark_no_show(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(require_roles(RoleEnum.ADMIN)),
) -> SessionRead:
    """Record a no-show after the join window closed (admin task endpoint)."""
    mentorship_session = await service.mark_no_show(session_id, current_user)
    return SessionRead.model_validate(mentorship_session)


@router.post("/{session_id}/review-submitted", response_model=SessionRead)
async def record_review(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> SessionRead:
    """Called once the review service has stored a review for the session."""
    mentorship_session = await service.record_review(session_id, current_user)
    return SessionRead.model_validate(mentorship_session)


@router.post(
    "/{session_id}/reschedule",
    response_model=RescheduleRequestRead,
    status_code=status.HTTP_201_CREATED,
)
async def propose_reschedule(
    session_id: UUID,
    payload: RescheduleProposeRequest,
    arbiter: RescheduleArbiter = Depends(get_reschedule_arbiter),
    current_user=Depends(get_current_user),
) -> RescheduleRequestRead:
    """Propose a new start time to the other participant."""
    request = await arbiter.propose(session_id, payload, current_user)
    return RescheduleRequestRead.model_validate(request)


@router.get("/{session_id}/recording", response_model=RecordingRead)
async def get_recording(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> RecordingRead:
    availability, url = await service.get_recording(session_id, current_user)
    return RecordingRead(session_id=session_id, status=availability, url=url)


@router.get("/{session_id}/transcript", response_model=TranscriptRead)
async def get_transcript(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> TranscriptRead:
    availability, transcript = await service.get_transcript(session_id, current_user)
    return TranscriptRead(session_id=session_id, status=availability, transcript=transcript)


@router.get("/{session_id}/audit", response_model=list[AuditEntryRead])
async def get_audit_trail(
    session_id: UUID,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(require_roles(RoleEnum.ADMIN)),
) -> list[AuditEntryRead]:
    """Audit trail of one session (admin only)."""
    entries = await service.get_audit_trail(session_id, current_user)
    return [AuditEntryRead.model_validate(entry) for entry in entries]
