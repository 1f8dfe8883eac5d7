"""Sessions repository layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import RescheduleStatusEnum, RoleEnum, SessionStatusEnum
from app.modules.sessions.lifecycle import LIVE_STATES
from app.modules.sessions.models import MentorshipSession, RescheduleRequest

BOOKING_LOCK_NAMESPACE = 7301


class SessionsRepository:
    """DB operations for sessions and reschedule requests."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_session(
        self,
        mentee_id: UUID,
        mentor_id: UUID,
        time_slot_id: UUID,
        duration_minutes: int,
        price: Decimal,
        currency: str,
        scheduled_start_at: datetime,
        scheduled_end_at: datetime,
        topic: str | None,
        notes: str | None,
    ) -> MentorshipSession:
        mentorship_session = MentorshipSession(
            mentee_id=mentee_id,
            mentor_id=mentor_id,
            time_slot_id=time_slot_id,
            duration_minutes=duration_minutes,
            price=price,
            currency=currency,
            scheduled_start_at=scheduled_start_at,
            scheduled_end_at=scheduled_end_at,
            topic=topic,
            notes=notes,
            status=SessionStatusEnum.PENDING,
        )
        self.session.add(mentorship_session)
        await self.session.flush()
        return mentorship_session

    async def get_session_by_id(self, session_id: UUID) -> MentorshipSession | None:
        stmt = select(MentorshipSession).where(MentorshipSession.id == session_id)
        return await self.session.scalar(stmt)

    async def get_session_for_update(self, session_id: UUID) -> MentorshipSession | None:
        """Load a session holding its row lock until the transaction ends."""
        stmt = (
            select(MentorshipSession)
            .where(MentorshipSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_session_by_meeting_id(self, meeting_id: str) -> MentorshipSession | None:
        stmt = select(MentorshipSession).where(MentorshipSession.meeting_id == meeting_id)
        return await self.session.scalar(stmt)

    async def list_sessions(
        self,
        user_id: UUID,
        role_name: RoleEnum,
        status: SessionStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[MentorshipSession], int]:
        base_stmt: Select[tuple[MentorshipSession]] = select(MentorshipSession)

        if role_name == RoleEnum.MENTEE:
            base_stmt = base_stmt.where(MentorshipSession.mentee_id == user_id)
        elif role_name == RoleEnum.MENTOR:
            base_stmt = base_stmt.where(MentorshipSession.mentor_id == user_id)
        if status is not None:
            base_stmt = base_stmt.where(MentorshipSession.status == status)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(MentorshipSession.scheduled_start_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def lock_requester(self, user_id: UUID) -> None:
        """Serialize bookings by one user until the transaction ends."""
        key = int.from_bytes(user_id.bytes[:4], "big", signed=True)
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(:namespace, :key)"),
            {"namespace": BOOKING_LOCK_NAMESPACE, "key": key},
        )

    async def has_overlapping_session(
        self,
        user_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_session_id: UUID | None = None,
    ) -> bool:
        stmt = select(func.count()).where(
            or_(MentorshipSession.mentee_id == user_id, MentorshipSession.mentor_id == user_id),
            MentorshipSession.status.in_(LIVE_STATES),
            MentorshipSession.scheduled_start_at < end_at,
            MentorshipSession.scheduled_end_at > start_at,
        )
        if exclude_session_id is not None:
            stmt = stmt.where(MentorshipSession.id != exclude_session_id)
        return int((await self.session.scalar(stmt)) or 0) > 0

    async def save(self, mentorship_session: MentorshipSession) -> MentorshipSession:
        await self.session.flush()
        return mentorship_session

    async def create_reschedule_request(
        self,
        session_id: UUID,
        requested_by_id: UUID,
        original_start_at: datetime,
        proposed_start_at: datetime,
        reason: str,
        expires_at: datetime,
    ) -> RescheduleRequest:
        request = RescheduleRequest(
            session_id=session_id,
            requested_by_id=requested_by_id,
            original_start_at=original_start_at,
            proposed_start_at=proposed_start_at,
            reason=reason,
            expires_at=expires_at,
            status=RescheduleStatusEnum.PENDING,
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_reschedule_request(self, request_id: UUID) -> RescheduleRequest | None:
        stmt = select(RescheduleRequest).where(RescheduleRequest.id == request_id)
        return await self.session.scalar(stmt)

    async def get_reschedule_request_for_update(self, request_id: UUID) -> RescheduleRequest | None:
        stmt = (
            select(RescheduleRequest)
            .where(RescheduleRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_pending_reschedule(self, session_id: UUID) -> RescheduleRequest | None:
        stmt = select(RescheduleRequest).where(
            RescheduleRequest.session_id == session_id,
            RescheduleRequest.status == RescheduleStatusEnum.PENDING,
        )
        return await self.session.scalar(stmt)

    async def list_reschedule_requests(self, session_id: UUID) -> list[RescheduleRequest]:
        stmt = (
            select(RescheduleRequest)
            .where(RescheduleRequest.session_id == session_id)
            .order_by(RescheduleRequest.created_at.desc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def save_reschedule(self, request: RescheduleRequest) -> RescheduleRequest:
        await self.session.flush()
        return request
