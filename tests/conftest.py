from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from app.core.enums import (
    JobKindEnum,
    MeetingStatusEnum,
    PaymentGatewayEnum,
    PaymentStatusEnum,
    RecordingStatusEnum,
    RefundStatusEnum,
    RescheduleStatusEnum,
    RoleEnum,
    SessionStatusEnum,
)
from app.modules.billing.gateways.base import (
    GatewayEvent,
    GatewayPaymentState,
    PaymentIntent,
    RefundResult,
    WebhookDelivery,
)
from app.modules.billing.gateways.registry import PaymentGatewayRegistry
from app.modules.billing.schemas import PaymentConfirmRequest, PaymentIntentCreate
from app.modules.billing.service import BillingService
from app.modules.sessions.lifecycle import LIVE_STATES
from app.modules.sessions.reschedule import RescheduleArbiter
from app.modules.sessions.schemas import SessionBookRequest
from app.modules.sessions.service import SessionsService
from app.shared.exceptions import PaymentGatewayError
from app.shared.utils import intervals_overlap

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_user(role: RoleEnum, user_id: UUID | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        id=user_id or uuid4(),
        email=f"{role}@example.com",
        role=SimpleNamespace(name=role),
    )


class Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class FakeSlot:
    id: UUID
    mentor_id: UUID
    start_at: datetime
    duration_minutes: int = 60
    is_booked: bool = False
    session_id: UUID | None = None

    @property
    def end_at(self) -> datetime:
        return self.start_at + timedelta(minutes=self.duration_minutes)


@dataclass
class FakeProfile:
    user_id: UUID
    rate_30_min: Decimal = Decimal("30.00")
    rate_60_min: Decimal = Decimal("50.00")
    is_approved: bool = True

    def rate_for(self, duration_minutes: int) -> Decimal:
        if duration_minutes == 30:
            return self.rate_30_min
        if duration_minutes == 60:
            return self.rate_60_min
        raise ValueError(f"Unsupported session duration: {duration_minutes}")


@dataclass
class FakeSession:
    id: UUID
    mentee_id: UUID
    mentor_id: UUID
    time_slot_id: UUID
    duration_minutes: int
    price: Decimal
    currency: str
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    topic: str | None = None
    notes: str | None = None
    status: SessionStatusEnum = SessionStatusEnum.PENDING
    meeting_id: str | None = None
    join_url: str | None = None
    host_url: str | None = None
    meeting_password: str | None = None
    meeting_status: MeetingStatusEnum = MeetingStatusEnum.PENDING
    recording_status: RecordingStatusEnum = RecordingStatusEnum.NOT_READY
    recording_storage_key: str | None = None
    transcript: str | None = None
    cancellation_reason: str | None = None
    cancelled_by_id: UUID | None = None
    confirmed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    join_link_sent_at: datetime | None = None
    review_requested_at: datetime | None = None
    review_submitted_at: datetime | None = None

    def is_participant(self, user_id: UUID) -> bool:
        return user_id in (self.mentee_id, self.mentor_id)

    def counterpart_of(self, user_id: UUID) -> UUID:
        return self.mentor_id if user_id == self.mentee_id else self.mentee_id


@dataclass
class FakeRescheduleRequest:
    id: UUID
    session_id: UUID
    requested_by_id: UUID
    original_start_at: datetime
    proposed_start_at: datetime
    reason: str
    expires_at: datetime
    status: RescheduleStatusEnum = RescheduleStatusEnum.PENDING
    resolved_by_id: UUID | None = None
    resolved_at: datetime | None = None
    resolution_note: str | None = None


@dataclass
class FakePayment:
    id: UUID
    session_id: UUID
    gateway: PaymentGatewayEnum
    payment_intent_id: str
    amount: Decimal
    currency: str
    client_secret: str | None = None
    checkout_url: str | None = None
    transaction_id: str | None = None
    status: PaymentStatusEnum = PaymentStatusEnum.PENDING
    captured_amount: Decimal | None = None
    commission_amount: Decimal | None = None
    payout_amount: Decimal | None = None
    failure_reason: str | None = None
    refund_amount: Decimal | None = None
    refund_percentage: int | None = None
    refund_status: RefundStatusEnum = RefundStatusEnum.NOT_REQUIRED
    refund_reference: str | None = None
    refund_error: str | None = None
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    release_at: datetime | None = None
    released_at: datetime | None = None


class FakeSessionsRepository:
    def __init__(self) -> None:
        self.sessions: dict[UUID, FakeSession] = {}
        self.requests: dict[UUID, FakeRescheduleRequest] = {}
        self.locked: list[UUID] = []
        self.requester_locks: list[UUID] = []

    async def create_session(self, **kwargs) -> FakeSession:
        mentorship_session = FakeSession(id=uuid4(), **kwargs)
        self.sessions[mentorship_session.id] = mentorship_session
        return mentorship_session

    async def get_session_by_id(self, session_id: UUID) -> FakeSession | None:
        return self.sessions.get(session_id)

    async def get_session_for_update(self, session_id: UUID) -> FakeSession | None:
        self.locked.append(session_id)
        return self.sessions.get(session_id)

    async def get_session_by_meeting_id(self, meeting_id: str) -> FakeSession | None:
        for mentorship_session in self.sessions.values():
            if mentorship_session.meeting_id == meeting_id:
                return mentorship_session
        return None

    async def list_sessions(self, user_id, role_name, status, limit, offset):
        items = [
            item
            for item in self.sessions.values()
            if (role_name == RoleEnum.ADMIN or item.is_participant(user_id))
            and (status is None or item.status == status)
        ]
        return items[offset : offset + limit], len(items)

    async def lock_requester(self, user_id: UUID) -> None:
        self.requester_locks.append(user_id)

    async def has_overlapping_session(
        self,
        user_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_session_id: UUID | None = None,
    ) -> bool:
        return any(
            item.is_participant(user_id)
            and item.status in LIVE_STATES
            and item.id != exclude_session_id
            and intervals_overlap(start_at, end_at, item.scheduled_start_at, item.scheduled_end_at)
            for item in self.sessions.values()
        )

    async def save(self, mentorship_session: FakeSession) -> FakeSession:
        return mentorship_session

    async def create_reschedule_request(self, **kwargs) -> FakeRescheduleRequest:
        request = FakeRescheduleRequest(id=uuid4(), **kwargs)
        self.requests[request.id] = request
        return request

    async def get_reschedule_request(self, request_id: UUID) -> FakeRescheduleRequest | None:
        return self.requests.get(request_id)

    async def get_reschedule_request_for_update(self, request_id: UUID) -> FakeRescheduleRequest | None:
        return self.requests.get(request_id)

    async def get_pending_reschedule(self, session_id: UUID) -> FakeRescheduleRequest | None:
        for request in self.requests.values():
            if request.session_id == session_id and request.status == RescheduleStatusEnum.PENDING:
                return request
        return None

    async def list_reschedule_requests(self, session_id: UUID) -> list[FakeRescheduleRequest]:
        return [request for request in self.requests.values() if request.session_id == session_id]

    async def save_reschedule(self, request: FakeRescheduleRequest) -> FakeRescheduleRequest:
        return request


class FakeSchedulingRepository:
    def __init__(self) -> None:
        self.slots: dict[UUID, FakeSlot] = {}

    def add_slot(self, mentor_id: UUID, start_at: datetime, duration_minutes: int = 60) -> FakeSlot:
        slot = FakeSlot(id=uuid4(), mentor_id=mentor_id, start_at=start_at, duration_minutes=duration_minutes)
        self.slots[slot.id] = slot
        return slot

    async def get_slot_by_id(self, slot_id: UUID) -> FakeSlot | None:
        return self.slots.get(slot_id)

    async def claim_slot(self, slot_id: UUID) -> bool:
        slot = self.slots[slot_id]
        if slot.is_booked:
            return False
        slot.is_booked = True
        return True

    async def attach_session(self, slot: FakeSlot, session_id: UUID) -> FakeSlot:
        slot.session_id = session_id
        return slot

    async def release_slot(self, slot_id: UUID) -> None:
        slot = self.slots[slot_id]
        slot.is_booked = False
        slot.session_id = None

    async def move_slot(self, slot_id: UUID, start_at: datetime) -> None:
        self.slots[slot_id].start_at = start_at

    async def has_overlapping_slot(
        self,
        mentor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_slot_id: UUID | None = None,
    ) -> bool:
        return any(
            slot.mentor_id == mentor_id
            and slot.id != exclude_slot_id
            and intervals_overlap(start_at, end_at, slot.start_at, slot.end_at)
            for slot in self.slots.values()
        )


class FakeMentorsRepository:
    def __init__(self) -> None:
        self.profiles: dict[UUID, FakeProfile] = {}

    async def get_profile_by_user_id(self, user_id: UUID) -> FakeProfile | None:
        return self.profiles.get(user_id)


class FakeBillingRepository:
    def __init__(self) -> None:
        self.payments: dict[UUID, FakePayment] = {}

    async def create_payment(self, **kwargs) -> FakePayment:
        payment = FakePayment(id=uuid4(), **kwargs)
        self.payments[payment.id] = payment
        return payment

    async def get_payment_by_session_id(self, session_id: UUID) -> FakePayment | None:
        for payment in self.payments.values():
            if payment.session_id == session_id:
                return payment
        return None

    async def get_payment_by_intent_id(self, payment_intent_id: str, *, for_update: bool = False):
        for payment in self.payments.values():
            if payment.payment_intent_id == payment_intent_id:
                return payment
        return None

    async def save(self, payment: FakePayment) -> FakePayment:
        return payment


class FakeJobScheduler:
    def __init__(self) -> None:
        self.jobs: dict[tuple[UUID, JobKindEnum], datetime] = {}
        self.cancelled: list[tuple[UUID, JobKindEnum]] = []

    async def schedule(self, session_id: UUID, kind: JobKindEnum, run_at: datetime, *, rearm: bool = False):
        self.jobs[(session_id, kind)] = run_at

    async def ensure(self, session_id: UUID, kind: JobKindEnum, run_at: datetime):
        self.jobs.setdefault((session_id, kind), run_at)

    async def cancel(self, session_id: UUID, kinds) -> int:
        count = 0
        for kind in kinds:
            if self.jobs.pop((session_id, kind), None) is not None:
                self.cancelled.append((session_id, kind))
                count += 1
        return count

    def run_at(self, session_id: UUID, kind: JobKindEnum) -> datetime | None:
        return self.jobs.get((session_id, kind))


class FakeAuditRepository:
    def __init__(self) -> None:
        self.audit_logs: list[dict] = []
        self.events: list[dict] = []

    async def create_audit_log(self, **kwargs) -> dict:
        self.audit_logs.append(kwargs)
        return kwargs

    async def create_outbox_event(self, **kwargs) -> dict:
        self.events.append(kwargs)
        return kwargs

    async def list_session_trail(self, session_id: UUID) -> list[SimpleNamespace]:
        return [SimpleNamespace(**entry) for entry in self.audit_logs if entry.get("session_id") == session_id]

    def event_types(self) -> list[str]:
        return [event["event_type"] for event in self.events]


class FakeGateway:
    def __init__(self, name: PaymentGatewayEnum = PaymentGatewayEnum.STRIPE) -> None:
        self.name = name
        self.intent_counter = 0
        self.states: dict[str, GatewayPaymentState] = {}
        self.refunds: list[dict] = []
        self.fail_refunds = False
        self.next_event: GatewayEvent | None = None

    async def create_intent(self, *, amount, currency, reference, customer_email=None) -> PaymentIntent:
        self.intent_counter += 1
        intent_id = f"{self.name}_intent_{self.intent_counter}"
        self.states[intent_id] = GatewayPaymentState(intent_id=intent_id, status=PaymentStatusEnum.PENDING)
        return PaymentIntent(intent_id=intent_id, client_secret=f"{intent_id}_secret")

    async def retrieve_intent(self, intent_id: str) -> GatewayPaymentState:
        return self.states[intent_id]

    def capture(self, intent_id: str, amount: Decimal) -> None:
        self.states[intent_id] = GatewayPaymentState(
            intent_id=intent_id,
            status=PaymentStatusEnum.CAPTURED,
            amount=amount,
            transaction_id=f"txn_{intent_id}",
        )

    async def refund(self, *, intent_id, transaction_id, amount, currency) -> RefundResult:
        if self.fail_refunds:
            raise PaymentGatewayError("card network unavailable")
        self.refunds.append({"intent_id": intent_id, "amount": amount, "currency": currency})
        return RefundResult(reference=f"re_{intent_id}", amount=amount)

    def parse_webhook(self, delivery: WebhookDelivery) -> GatewayEvent:
        return self.next_event


@dataclass
class World:
    clock: Clock
    sessions: FakeSessionsRepository
    scheduling: FakeSchedulingRepository
    mentors: FakeMentorsRepository
    billing_repository: FakeBillingRepository
    gateway: FakeGateway
    jobs: FakeJobScheduler
    audit: FakeAuditRepository
    billing: BillingService
    service: SessionsService
    arbiter: RescheduleArbiter
    mentee: SimpleNamespace
    mentor: SimpleNamespace
    admin: SimpleNamespace
    extra: dict = field(default_factory=dict)

    def new_user(self, role: RoleEnum) -> SimpleNamespace:
        user = make_user(role)
        if role == RoleEnum.MENTOR:
            self.mentors.profiles[user.id] = FakeProfile(user_id=user.id)
        return user

    def add_slot(self, hours_ahead: float = 72, duration_minutes: int = 60) -> FakeSlot:
        return self.scheduling.add_slot(
            self.mentor.id,
            self.clock.now + timedelta(hours=hours_ahead),
            duration_minutes,
        )

    async def book(self, hours_ahead: float = 72, duration_minutes: int = 60) -> FakeSession:
        slot = self.add_slot(hours_ahead, duration_minutes)
        return await self.service.book(SessionBookRequest(time_slot_id=slot.id), self.mentee)

    async def confirmed_session(self, hours_ahead: float = 72, duration_minutes: int = 60) -> FakeSession:
        """Book a slot, pay for it and confirm through the client confirmation path."""
        mentorship_session = await self.book(hours_ahead, duration_minutes)
        payment = await self.service.create_payment_intent(
            PaymentIntentCreate(session_id=mentorship_session.id),
            self.mentee,
        )
        self.gateway.capture(payment.payment_intent_id, payment.amount)
        await self.service.confirm_payment(
            PaymentConfirmRequest(payment_intent_id=payment.payment_intent_id, session_id=mentorship_session.id),
            self.mentee,
        )
        return mentorship_session


def build_world() -> World:
    clock = Clock()
    sessions = FakeSessionsRepository()
    scheduling = FakeSchedulingRepository()
    mentors = FakeMentorsRepository()
    billing_repository = FakeBillingRepository()
    gateway = FakeGateway()
    jobs = FakeJobScheduler()
    audit = FakeAuditRepository()
    billing = BillingService(
        billing_repository,
        PaymentGatewayRegistry([gateway]),
        audit,
        now_provider=clock,
    )
    service = SessionsService(
        sessions_repository=sessions,
        scheduling_repository=scheduling,
        mentors_repository=mentors,
        billing_service=billing,
        job_scheduler=jobs,
        audit_repository=audit,
        now_provider=clock,
    )
    arbiter = RescheduleArbiter(sessions, scheduling, jobs, audit, now_provider=clock)

    mentee = make_user(RoleEnum.MENTEE)
    mentor = make_user(RoleEnum.MENTOR)
    admin = make_user(RoleEnum.ADMIN)
    mentors.profiles[mentor.id] = FakeProfile(user_id=mentor.id)
    return World(
        clock=clock,
        sessions=sessions,
        scheduling=scheduling,
        mentors=mentors,
        billing_repository=billing_repository,
        gateway=gateway,
        jobs=jobs,
        audit=audit,
        billing=billing,
        service=service,
        arbiter=arbiter,
        mentee=mentee,
        mentor=mentor,
        admin=admin,
    )


@pytest.fixture
def world() -> World:
    return build_world()
