from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.enums import JobKindEnum, PaymentStatusEnum, RoleEnum, SessionStatusEnum
from app.modules.billing.schemas import PaymentIntentCreate
from app.modules.sessions.schemas import SessionBookRequest
from app.shared.exceptions import (
    BusinessRuleException,
    InvalidStateTransition,
    NotAuthorized,
    SchedulingConflict,
    SlotNotFound,
    SlotTooSoon,
    SlotUnavailable,
    UnauthorizedException,
)


@pytest.mark.asyncio
async def test_booking_freezes_price_and_arms_payment_window(world) -> None:
    slot = world.add_slot(hours_ahead=72, duration_minutes=60)

    mentorship_session = await world.service.book(
        SessionBookRequest(time_slot_id=slot.id, topic="System design"),
        world.mentee,
    )

    assert mentorship_session.status == SessionStatusEnum.PENDING
    assert mentorship_session.price == Decimal("50.00")
    assert mentorship_session.scheduled_end_at == slot.start_at + timedelta(minutes=60)
    assert slot.is_booked is True
    assert slot.session_id == mentorship_session.id
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.RELEASE_UNPAID_SESSION) == world.clock.now + timedelta(
        minutes=15
    )
    assert world.audit.event_types() == ["session.booked"]

    # Later rate changes never touch an existing session.
    world.mentors.profiles[world.mentor.id].rate_60_min = Decimal("80.00")
    assert mentorship_session.price == Decimal("50.00")


@pytest.mark.asyncio
async def test_thirty_minute_slot_uses_short_rate(world) -> None:
    slot = world.add_slot(duration_minutes=30)

    mentorship_session = await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)

    assert mentorship_session.price == Decimal("30.00")
    assert mentorship_session.duration_minutes == 30


@pytest.mark.asyncio
async def test_only_mentees_can_book(world) -> None:
    slot = world.add_slot()

    with pytest.raises(UnauthorizedException):
        await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentor)


@pytest.mark.asyncio
async def test_unknown_slot_is_rejected(world) -> None:
    with pytest.raises(SlotNotFound):
        await world.service.book(SessionBookRequest(time_slot_id=uuid4()), world.mentee)


@pytest.mark.asyncio
async def test_slot_inside_advance_notice_is_too_soon(world) -> None:
    slot = world.add_slot(hours_ahead=23.5)

    with pytest.raises(SlotTooSoon):
        await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)
    assert slot.is_booked is False


@pytest.mark.asyncio
async def test_slot_exactly_at_advance_notice_is_bookable(world) -> None:
    slot = world.add_slot(hours_ahead=24)

    mentorship_session = await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)

    assert mentorship_session.status == SessionStatusEnum.PENDING


@pytest.mark.asyncio
async def test_unapproved_mentor_cannot_be_booked(world) -> None:
    world.mentors.profiles[world.mentor.id].is_approved = False
    slot = world.add_slot()

    with pytest.raises(BusinessRuleException):
        await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)


@pytest.mark.asyncio
async def test_booked_slot_is_unavailable(world) -> None:
    slot = world.add_slot()
    await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)

    other_mentee = world.new_user(RoleEnum.MENTEE)
    with pytest.raises(SlotUnavailable):
        await world.service.book(SessionBookRequest(time_slot_id=slot.id), other_mentee)


@pytest.mark.asyncio
async def test_losing_the_claim_race_reports_unavailable(world) -> None:
    slot = world.add_slot()

    async def claim_lost(slot_id):
        return False

    world.scheduling.claim_slot = claim_lost

    with pytest.raises(SlotUnavailable):
        await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)
    assert world.sessions.sessions == {}
    assert world.audit.events == []


def _yield_during_overlap_check(world) -> None:
    """Let concurrent bookings interleave between the overlap check and the slot claim."""
    check = world.sessions.has_overlapping_session

    async def has_overlapping_session(*args, **kwargs):
        await asyncio.sleep(0)
        return await check(*args, **kwargs)

    world.sessions.has_overlapping_session = has_overlapping_session


@pytest.mark.asyncio
async def test_concurrent_bookings_of_one_slot_create_a_single_session(world) -> None:
    slot = world.add_slot()
    other_mentee = world.new_user(RoleEnum.MENTEE)
    _yield_during_overlap_check(world)

    results = await asyncio.gather(
        world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee),
        world.service.book(SessionBookRequest(time_slot_id=slot.id), other_mentee),
        return_exceptions=True,
    )

    booked = [item for item in results if not isinstance(item, Exception)]
    failures = [item for item in results if isinstance(item, Exception)]
    assert len(booked) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], SlotUnavailable)
    assert list(world.sessions.sessions) == [booked[0].id]
    assert slot.session_id == booked[0].id
    assert world.audit.event_types().count("session.booked") == 1
    release_jobs = [key for key in world.jobs.jobs if key[1] == JobKindEnum.RELEASE_UNPAID_SESSION]
    assert release_jobs == [(booked[0].id, JobKindEnum.RELEASE_UNPAID_SESSION)]


@pytest.mark.asyncio
async def test_concurrent_overlapping_bookings_by_one_mentee_are_serialized(world) -> None:
    first = world.add_slot(hours_ahead=72)
    other_mentor = world.new_user(RoleEnum.MENTOR)
    second = world.scheduling.add_slot(other_mentor.id, first.start_at + timedelta(minutes=30))
    _yield_during_overlap_check(world)

    locks: dict = {}
    held: dict = {}

    async def lock_requester(user_id):
        lock = locks.setdefault(user_id, asyncio.Lock())
        await lock.acquire()
        held.setdefault(asyncio.current_task(), []).append(lock)

    async def book_in_transaction(slot):
        try:
            return await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)
        finally:
            for lock in held.pop(asyncio.current_task(), []):
                lock.release()

    world.sessions.lock_requester = lock_requester

    results = await asyncio.gather(
        book_in_transaction(first),
        book_in_transaction(second),
        return_exceptions=True,
    )

    booked = [item for item in results if not isinstance(item, Exception)]
    failures = [item for item in results if isinstance(item, Exception)]
    assert len(booked) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], SchedulingConflict)
    assert len(world.sessions.sessions) == 1
    assert [first.is_booked, second.is_booked].count(True) == 1


@pytest.mark.asyncio
async def test_booking_locks_the_requester(world) -> None:
    await world.book()

    assert world.sessions.requester_locks == [world.mentee.id]


@pytest.mark.asyncio
async def test_mentee_cannot_double_book_overlapping_time(world) -> None:
    first = world.add_slot(hours_ahead=72)
    await world.service.book(SessionBookRequest(time_slot_id=first.id), world.mentee)

    other_mentor = world.new_user(RoleEnum.MENTOR)
    overlapping = world.scheduling.add_slot(other_mentor.id, first.start_at + timedelta(minutes=30))

    with pytest.raises(SchedulingConflict):
        await world.service.book(SessionBookRequest(time_slot_id=overlapping.id), world.mentee)
    assert overlapping.is_booked is False


@pytest.mark.asyncio
async def test_payment_intent_is_opened_for_session_price(world) -> None:
    slot = world.add_slot()
    mentorship_session = await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)

    payment = await world.service.create_payment_intent(
        PaymentIntentCreate(session_id=mentorship_session.id),
        world.mentee,
    )

    assert payment.amount == Decimal("50.00")
    assert payment.status == PaymentStatusEnum.PENDING
    assert payment.client_secret == f"{payment.payment_intent_id}_secret"

    again = await world.service.create_payment_intent(
        PaymentIntentCreate(session_id=mentorship_session.id),
        world.mentee,
    )
    assert again.id == payment.id
    assert world.gateway.intent_counter == 1


@pytest.mark.asyncio
async def test_only_booking_mentee_can_pay(world) -> None:
    slot = world.add_slot()
    mentorship_session = await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)

    with pytest.raises(NotAuthorized):
        await world.service.create_payment_intent(
            PaymentIntentCreate(session_id=mentorship_session.id),
            world.mentor,
        )


@pytest.mark.asyncio
async def test_cannot_pay_for_cancelled_session(world) -> None:
    slot = world.add_slot()
    mentorship_session = await world.service.book(SessionBookRequest(time_slot_id=slot.id), world.mentee)
    await world.service.cancel(mentorship_session.id, "Changed my plans entirely", world.mentee)

    with pytest.raises(InvalidStateTransition):
        await world.service.create_payment_intent(
            PaymentIntentCreate(session_id=mentorship_session.id),
            world.mentee,
        )
