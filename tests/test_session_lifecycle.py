from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.enums import (
    JobKindEnum,
    PaymentGatewayEnum,
    PaymentStatusEnum,
    RecordingAvailabilityEnum,
    RecordingStatusEnum,
    RefundStatusEnum,
    RescheduleStatusEnum,
    RoleEnum,
    SessionStatusEnum,
)
from app.modules.billing.gateways.base import GatewayEvent, GatewayEventKind, GatewayPaymentState, WebhookDelivery
from app.modules.billing.schemas import PaymentConfirmRequest, PaymentIntentCreate
from app.modules.sessions.schemas import RescheduleProposeRequest
from app.modules.sessions.service import GATEWAY_REFUND_REASON
from app.shared.exceptions import (
    BusinessRuleException,
    InvalidStateTransition,
    NotAuthorized,
    TooEarly,
    TooLate,
)

DELIVERY = WebhookDelivery(body=b"{}", headers={})


async def _open_intent(world, mentorship_session):
    return await world.service.create_payment_intent(
        PaymentIntentCreate(session_id=mentorship_session.id),
        world.mentee,
    )


def _captured_event(payment, amount=None) -> GatewayEvent:
    return GatewayEvent(
        gateway=PaymentGatewayEnum.STRIPE,
        kind=GatewayEventKind.CAPTURED,
        event_type="payment_intent.succeeded",
        intent_id=payment.payment_intent_id,
        amount=payment.amount if amount is None else amount,
        transaction_id="ch_1",
    )


@pytest.mark.asyncio
async def test_client_confirmation_confirms_session_and_arms_jobs(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)

    assert mentorship_session.status == SessionStatusEnum.CONFIRMED
    assert mentorship_session.confirmed_at == world.clock.now
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    assert payment.status == PaymentStatusEnum.CAPTURED
    assert payment.commission_amount == Decimal("7.50")
    assert payment.payout_amount == Decimal("42.50")

    start = mentorship_session.scheduled_start_at
    end = mentorship_session.scheduled_end_at
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.RELEASE_UNPAID_SESSION) is None
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.CREATE_MEETING) == world.clock.now
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.SEND_JOIN_LINK) == start - timedelta(minutes=15)
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.AUTO_TERMINATE) == end + timedelta(minutes=2)
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.NO_SHOW_CHECK) == end + timedelta(minutes=15)
    assert "session.confirmed" in world.audit.event_types()


@pytest.mark.asyncio
async def test_confirmation_without_capture_is_rejected(world) -> None:
    mentorship_session = await world.book()
    payment = await _open_intent(world, mentorship_session)

    with pytest.raises(BusinessRuleException):
        await world.service.confirm_payment(
            PaymentConfirmRequest(payment_intent_id=payment.payment_intent_id, session_id=mentorship_session.id),
            world.mentee,
        )
    assert mentorship_session.status == SessionStatusEnum.PENDING


@pytest.mark.asyncio
async def test_gateway_failure_state_marks_payment_failed(world) -> None:
    mentorship_session = await world.book()
    payment = await _open_intent(world, mentorship_session)
    world.gateway.states[payment.payment_intent_id] = GatewayPaymentState(
        intent_id=payment.payment_intent_id,
        status=PaymentStatusEnum.FAILED,
    )

    with pytest.raises(BusinessRuleException):
        await world.service.confirm_payment(
            PaymentConfirmRequest(payment_intent_id=payment.payment_intent_id, session_id=mentorship_session.id),
            world.mentee,
        )
    assert payment.status == PaymentStatusEnum.FAILED


@pytest.mark.asyncio
async def test_capture_webhook_confirms_once(world) -> None:
    mentorship_session = await world.book()
    payment = await _open_intent(world, mentorship_session)
    world.gateway.next_event = _captured_event(payment)

    event, applied = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)
    assert applied is True
    assert event.kind == GatewayEventKind.CAPTURED
    assert mentorship_session.status == SessionStatusEnum.CONFIRMED
    assert payment.transaction_id == "ch_1"

    _, applied_again = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)
    assert applied_again is False
    assert world.audit.event_types().count("session.confirmed") == 1


@pytest.mark.asyncio
async def test_failed_webhook_publishes_payment_failure(world) -> None:
    mentorship_session = await world.book()
    payment = await _open_intent(world, mentorship_session)
    world.gateway.next_event = GatewayEvent(
        gateway=PaymentGatewayEnum.STRIPE,
        kind=GatewayEventKind.FAILED,
        event_type="payment_intent.payment_failed",
        intent_id=payment.payment_intent_id,
        failure_reason="card_declined",
    )

    _, applied = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)

    assert applied is True
    assert payment.status == PaymentStatusEnum.FAILED
    assert mentorship_session.status == SessionStatusEnum.PENDING
    failure = world.audit.events[-1]
    assert failure["event_type"] == "payment.failed"
    assert failure["payload"]["reason"] == "card_declined"


@pytest.mark.asyncio
async def test_capture_after_cancellation_is_refunded_in_full(world) -> None:
    mentorship_session = await world.book()
    payment = await _open_intent(world, mentorship_session)
    await world.service.cancel(mentorship_session.id, "Found another mentor already", world.mentee)
    world.gateway.next_event = _captured_event(payment)

    _, applied = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)

    assert applied is True
    assert mentorship_session.status == SessionStatusEnum.CANCELLED
    assert payment.status == PaymentStatusEnum.REFUNDED
    assert payment.refund_percentage == 100
    assert world.gateway.refunds == [
        {"intent_id": payment.payment_intent_id, "amount": Decimal("50.00"), "currency": "USD"},
    ]
    assert world.audit.event_types()[-1] == "session.late_payment_refunded"


def _refunded_event(payment, amount=None) -> GatewayEvent:
    return GatewayEvent(
        gateway=PaymentGatewayEnum.STRIPE,
        kind=GatewayEventKind.REFUNDED,
        event_type="charge.refunded",
        intent_id=payment.payment_intent_id,
        amount=amount,
    )


@pytest.mark.asyncio
async def test_gateway_refund_cancels_confirmed_session(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    world.gateway.next_event = _refunded_event(payment)

    _, applied = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)
    _, redelivered = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)

    assert applied is True
    assert redelivered is False
    assert mentorship_session.status == SessionStatusEnum.CANCELLED
    assert mentorship_session.cancellation_reason == GATEWAY_REFUND_REASON
    assert mentorship_session.cancelled_by_id is None
    assert world.scheduling.slots[mentorship_session.time_slot_id].is_booked is False
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.SEND_JOIN_LINK) is None
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.AUTO_TERMINATE) is None
    assert payment.status == PaymentStatusEnum.REFUNDED
    assert payment.refund_amount == Decimal("50.00")
    assert payment.refund_percentage == 100
    assert world.gateway.refunds == []
    cancelled = [event for event in world.audit.events if event["event_type"] == "session.cancelled"]
    assert len(cancelled) == 1
    assert cancelled[0]["payload"]["refund_percentage"] == 100


@pytest.mark.asyncio
async def test_partial_gateway_refund_reports_its_share(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    world.gateway.next_event = _refunded_event(payment, amount=Decimal("25.00"))

    await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)

    assert mentorship_session.status == SessionStatusEnum.CANCELLED
    assert payment.refund_amount == Decimal("25.00")
    assert payment.refund_percentage == 50
    assert world.gateway.refunds == []


@pytest.mark.asyncio
async def test_gateway_refund_closes_pending_reschedule(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    request = await world.arbiter.propose(
        mentorship_session.id,
        RescheduleProposeRequest(new_start_at=world.clock.now + timedelta(hours=96), reason="Moving to next day"),
        world.mentee,
    )
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    world.gateway.next_event = _refunded_event(payment)

    await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)

    assert request.status == RescheduleStatusEnum.REJECTED
    assert request.resolution_note == GATEWAY_REFUND_REASON
    assert mentorship_session.status == SessionStatusEnum.CANCELLED
    assert world.scheduling.slots[mentorship_session.time_slot_id].is_booked is False


@pytest.mark.asyncio
async def test_gateway_refund_after_session_started_keeps_status(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    world.clock.now = mentorship_session.scheduled_start_at
    await world.service.join(mentorship_session.id, world.mentee)
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    world.gateway.next_event = _refunded_event(payment)

    _, applied = await world.service.handle_payment_webhook(PaymentGatewayEnum.STRIPE, DELIVERY)

    assert applied is True
    assert payment.status == PaymentStatusEnum.REFUNDED
    assert mentorship_session.status == SessionStatusEnum.IN_PROGRESS


@pytest.mark.asyncio
async def test_join_window_is_enforced(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    start = mentorship_session.scheduled_start_at

    world.clock.now = start - timedelta(minutes=16)
    with pytest.raises(TooEarly):
        await world.service.join(mentorship_session.id, world.mentee)

    world.clock.now = start - timedelta(minutes=15)
    result = await world.service.join(mentorship_session.id, world.mentee)

    assert result.session.status == SessionStatusEnum.IN_PROGRESS
    assert result.session.started_at == world.clock.now
    assert result.telemetry.can_join_now is True
    assert result.telemetry.minutes_until_start == 15
    assert result.telemetry.minutes_remaining == 60
    assert world.audit.event_types().count("session.started") == 1

    world.clock.now = start + timedelta(minutes=10)
    await world.service.join(mentorship_session.id, world.mentor)
    assert world.audit.event_types().count("session.started") == 1


@pytest.mark.asyncio
async def test_join_does_not_reset_pending_meeting_creation(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    key = (mentorship_session.id, JobKindEnum.CREATE_MEETING)
    armed_at = world.jobs.run_at(*key)

    world.clock.now = mentorship_session.scheduled_start_at
    await world.service.join(mentorship_session.id, world.mentee)
    await world.service.join(mentorship_session.id, world.mentor)

    assert world.jobs.run_at(*key) == armed_at

    del world.jobs.jobs[key]
    await world.service.join(mentorship_session.id, world.mentee)

    assert world.jobs.run_at(*key) == world.clock.now


@pytest.mark.asyncio
async def test_join_after_window_closed_is_too_late(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    world.clock.now = mentorship_session.scheduled_end_at + timedelta(minutes=15, seconds=1)

    with pytest.raises(TooLate):
        await world.service.join(mentorship_session.id, world.mentee)


@pytest.mark.asyncio
async def test_outsider_cannot_join(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    world.clock.now = mentorship_session.scheduled_start_at

    with pytest.raises(NotAuthorized):
        await world.service.join(mentorship_session.id, world.new_user(RoleEnum.MENTEE))


@pytest.mark.asyncio
async def test_complete_arms_payout_and_review(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    world.clock.now = mentorship_session.scheduled_start_at
    await world.service.join(mentorship_session.id, world.mentee)

    world.clock.now = mentorship_session.scheduled_end_at
    result = await world.service.complete(mentorship_session.id, world.mentor)

    assert result.session.status == SessionStatusEnum.COMPLETED
    assert result.completed_at == world.clock.now
    assert result.payment_release_at == world.clock.now + timedelta(hours=72)
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    assert payment.release_at == result.payment_release_at
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.RELEASE_PAYMENT_HOLD) == result.payment_release_at
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.REVIEW_REQUEST) == world.clock.now + timedelta(
        hours=24
    )
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.NO_SHOW_CHECK) is None
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.AUTO_TERMINATE) is None


@pytest.mark.asyncio
async def test_mentee_cannot_complete(world) -> None:
    mentorship_session = await world.confirmed_session()

    with pytest.raises(NotAuthorized):
        await world.service.complete(mentorship_session.id, world.mentee)


@pytest.mark.asyncio
async def test_pending_session_cannot_complete(world) -> None:
    mentorship_session = await world.book()

    with pytest.raises(InvalidStateTransition):
        await world.service.complete(mentorship_session.id, world.admin)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("hours_before", "percentage", "amount", "refund_status", "payment_status"),
    [
        (48, 100, Decimal("50.00"), RefundStatusEnum.COMPLETED, PaymentStatusEnum.REFUNDED),
        (30, 50, Decimal("25.00"), RefundStatusEnum.COMPLETED, PaymentStatusEnum.REFUNDED),
        (24, 50, Decimal("25.00"), RefundStatusEnum.COMPLETED, PaymentStatusEnum.REFUNDED),
        (10, 0, Decimal("0.00"), RefundStatusEnum.NOT_REQUIRED, PaymentStatusEnum.CAPTURED),
    ],
)
async def test_cancel_refunds_by_notice(world, hours_before, percentage, amount, refund_status, payment_status) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    world.clock.now = mentorship_session.scheduled_start_at - timedelta(hours=hours_before)

    result = await world.service.cancel(mentorship_session.id, "Schedule conflict at work", world.mentee)

    assert result.session.status == SessionStatusEnum.CANCELLED
    assert result.refund_percentage == percentage
    assert result.refund_amount == amount
    assert result.refund_status == refund_status
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    assert payment.status == payment_status
    slot = world.scheduling.slots[mentorship_session.time_slot_id]
    assert slot.is_booked is False
    assert world.jobs.run_at(mentorship_session.id, JobKindEnum.SEND_JOIN_LINK) is None
    assert world.audit.events[-1]["payload"]["refund_percentage"] == percentage


@pytest.mark.asyncio
async def test_refund_failure_does_not_block_cancellation(world) -> None:
    mentorship_session = await world.confirmed_session(hours_ahead=72)
    world.gateway.fail_refunds = True

    result = await world.service.cancel(mentorship_session.id, "Mentor asked to cancel", world.mentor)

    assert result.session.status == SessionStatusEnum.CANCELLED
    assert result.refund_status == RefundStatusEnum.FAILED
    payment = await world.billing.get_payment_for_session(mentorship_session.id)
    assert payment.status == PaymentStatusEnum.CAPTURED
    assert payment.refund_error == "card network unavailable"
    assert world.scheduling.slots[mentorship_session.time_slot_id].is_booked is False


@pytest.mark.asyncio
async def test_cancel_unpaid_session_reports_policy_percentage(world) -> None:
    mentorship_session = await world.book(hours_ahead=72)

    result = await world.service.cancel(mentorship_session.id, "No longer needed, thanks", world.mentee)

    assert result.refund_amount == Decimal("0.00")
    assert result.refund_percentage == 100
    assert result.refund_status == RefundStatusEnum.NOT_REQUIRED


@pytest.mark.asyncio
async def test_completed_session_cannot_be_cancelled(world) -> None:
    mentorship_session = await world.confirmed_session()
    world.clock.now = mentorship_session.scheduled_end_at
    await world.service.complete(mentorship_session.id, world.admin)

    with pytest.raises(InvalidStateTransition):
        await world.service.cancel(mentorship_session.id, "Too late to change my mind", world.mentee)


@pytest.mark.asyncio
async def test_outsider_cannot_cancel(world) -> None:
    mentorship_session = await world.confirmed_session()

    with pytest.raises(NotAuthorized):
        await world.service.cancel(mentorship_session.id, "Not my session at all", world.new_user(RoleEnum.MENTOR))


@pytest.mark.asyncio
async def test_admin_marks_no_show_only_after_window(world) -> None:
    mentorship_session = await world.confirmed_session()

    world.clock.now = mentorship_session.scheduled_end_at
    with pytest.raises(BusinessRuleException):
        await world.service.mark_no_show(mentorship_session.id, world.admin)
    with pytest.raises(NotAuthorized):
        await world.service.mark_no_show(mentorship_session.id, world.mentor)

    world.clock.now = mentorship_session.scheduled_end_at + timedelta(minutes=16)
    result = await world.service.mark_no_show(mentorship_session.id, world.admin)

    assert result.status == SessionStatusEnum.NO_SHOW
    assert world.audit.event_types()[-1] == "session.no_show"


@pytest.mark.asyncio
async def test_details_and_recording_are_private_to_participants(world) -> None:
    mentorship_session = await world.confirmed_session()

    details = await world.service.get_details(mentorship_session.id, world.mentor)
    assert details.payment.status == PaymentStatusEnum.CAPTURED
    assert details.reschedule_requests == []

    availability, url = await world.service.get_recording(mentorship_session.id, world.mentee)
    assert availability == RecordingAvailabilityEnum.PROCESSING
    assert url is None

    mentorship_session.recording_status = RecordingStatusEnum.READY
    mentorship_session.transcript = "hello"
    availability, transcript = await world.service.get_transcript(mentorship_session.id, world.admin)
    assert availability == RecordingAvailabilityEnum.AVAILABLE
    assert transcript == "hello"

    with pytest.raises(NotAuthorized):
        await world.service.get_details(mentorship_session.id, world.new_user(RoleEnum.MENTEE))


@pytest.mark.asyncio
async def test_audit_trail_is_admin_only_and_ordered(world) -> None:
    mentorship_session = await world.confirmed_session()

    trail = await world.service.get_audit_trail(mentorship_session.id, world.admin)

    actions = [entry.action for entry in trail]
    assert actions[0] == "session.book"
    assert "billing.payment.intent.create" in actions
    assert actions[-1] == "billing.payment.captured"
    with pytest.raises(NotAuthorized):
        await world.service.get_audit_trail(mentorship_session.id, world.mentee)
