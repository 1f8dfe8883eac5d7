"""Billing business logic layer.

Everything here is provider-agnostic: gateways are resolved from the
registry and only their normalized results reach the Payment row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from app.core.config import get_settings
from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum, RefundStatusEnum
from app.modules.audit.repository import AuditRepository
from app.modules.billing.gateways.base import GatewayEvent, GatewayEventKind, WebhookDelivery
from app.modules.billing.gateways.registry import PaymentGatewayRegistry
from app.modules.billing.models import Payment
from app.modules.billing.repository import BillingRepository
from app.modules.sessions.policy import RefundDecision
from app.shared.exceptions import BusinessRuleException, ConflictException, ExternalServiceError
from app.shared.utils import quantize_money, utc_now

logger = logging.getLogger(__name__)
settings = get_settings()

CAPTURABLE_STATUSES = frozenset(
    {PaymentStatusEnum.PENDING, PaymentStatusEnum.AUTHORIZED, PaymentStatusEnum.FAILED},
)
FAILABLE_STATUSES = frozenset({PaymentStatusEnum.PENDING, PaymentStatusEnum.AUTHORIZED})


def split_commission(gross: Decimal, percentage: int) -> tuple[Decimal, Decimal]:
    """Return (commission, payout) for a captured gross amount."""
    commission = quantize_money(Decimal(gross) * Decimal(percentage) / Decimal(100))
    return commission, quantize_money(Decimal(gross) - commission)


@dataclass(slots=True)
class EventOutcome:
    payment: Payment | None
    applied: bool


class BillingService:
    """Billing domain service."""

    def __init__(
        self,
        repository: BillingRepository,
        gateways: PaymentGatewayRegistry,
        audit_repository: AuditRepository,
        *,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.gateways = gateways
        self.audit_repository = audit_repository
        self.now_provider = now_provider

    async def get_payment_for_session(self, session_id: UUID) -> Payment | None:
        return await self.repository.get_payment_by_session_id(session_id)

    async def get_payment_by_intent(self, payment_intent_id: str, *, for_update: bool = False) -> Payment | None:
        return await self.repository.get_payment_by_intent_id(payment_intent_id, for_update=for_update)

    async def create_intent(
        self,
        session_id: UUID,
        amount: Decimal,
        currency: str,
        gateway_name: PaymentGatewayEnum,
        actor_id: UUID,
        customer_email: str | None = None,
    ) -> Payment:
        """Open a payment intent for a session, reusing a pending one for the same gateway."""
        payment = await self.repository.get_payment_by_session_id(session_id)
        if payment is not None:
            if payment.status == PaymentStatusEnum.PENDING and payment.gateway == gateway_name:
                return payment
            if payment.status not in (PaymentStatusEnum.PENDING, PaymentStatusEnum.FAILED):
                raise ConflictException(f"Session already has a payment in status '{payment.status}'")

        gateway = self.gateways.get(gateway_name)
        intent = await gateway.create_intent(
            amount=amount,
            currency=currency,
            reference=str(session_id),
            customer_email=customer_email,
        )

        if payment is None:
            payment = await self.repository.create_payment(
                session_id=session_id,
                gateway=gateway.name,
                payment_intent_id=intent.intent_id,
                amount=amount,
                currency=currency,
                client_secret=intent.client_secret,
                checkout_url=intent.checkout_url,
            )
        else:
            # Replacing a failed or other-gateway intent keeps one payment per session.
            payment.gateway = gateway.name
            payment.payment_intent_id = intent.intent_id
            payment.client_secret = intent.client_secret
            payment.checkout_url = intent.checkout_url
            payment.amount = amount
            payment.status = PaymentStatusEnum.PENDING
            payment.failure_reason = None
            await self.repository.save(payment)

        await self.audit_repository.create_audit_log(
            session_id=session_id,
            actor_id=actor_id,
            action="billing.payment.intent.create",
            entity_type="payment",
            entity_id=str(payment.id),
            payload={
                "session_id": str(session_id),
                "gateway": str(payment.gateway),
                "payment_intent_id": payment.payment_intent_id,
                "amount": str(payment.amount),
                "currency": payment.currency,
            },
        )
        return payment

    async def sync_from_gateway(self, payment: Payment) -> bool:
        """Re-read the intent from its gateway and apply a capture or failure.

        Returns True when the payment is captured after the call.
        """
        if payment.status in (PaymentStatusEnum.CAPTURED, PaymentStatusEnum.REFUNDED):
            return payment.status == PaymentStatusEnum.CAPTURED

        gateway = self.gateways.get(payment.gateway)
        state = await gateway.retrieve_intent(payment.payment_intent_id)
        if state.status == PaymentStatusEnum.CAPTURED:
            self._ensure_amount_matches(payment, state.amount)
            await self._mark_captured(payment, state.amount or payment.amount, state.transaction_id)
            return True
        if state.status == PaymentStatusEnum.FAILED and payment.status in FAILABLE_STATUSES:
            await self._mark_failed(payment, "Gateway reports the payment as failed")
        elif state.status == PaymentStatusEnum.AUTHORIZED and payment.status == PaymentStatusEnum.PENDING:
            payment.status = PaymentStatusEnum.AUTHORIZED
            await self.repository.save(payment)
        return False

    def parse_webhook(self, gateway_name: PaymentGatewayEnum, delivery: WebhookDelivery) -> GatewayEvent:
        return self.gateways.get(gateway_name).parse_webhook(delivery)

    async def apply_event(self, event: GatewayEvent) -> EventOutcome:
        """Apply a normalized gateway event when it is an allowed transition."""
        if event.kind == GatewayEventKind.IGNORED or not event.intent_id:
            return EventOutcome(payment=None, applied=False)

        payment = await self.repository.get_payment_by_intent_id(event.intent_id, for_update=True)
        if payment is None:
            logger.warning("Payment webhook %s for unknown intent %s", event.event_type, event.intent_id)
            return EventOutcome(payment=None, applied=False)

        if event.kind == GatewayEventKind.CAPTURED:
            if payment.status not in CAPTURABLE_STATUSES:
                return EventOutcome(payment=payment, applied=False)
            if event.amount is not None and Decimal(event.amount) != Decimal(payment.amount):
                logger.warning(
                    "Ignoring capture for intent %s: amount %s does not match price %s",
                    payment.payment_intent_id,
                    event.amount,
                    payment.amount,
                )
                return EventOutcome(payment=payment, applied=False)
            await self._mark_captured(payment, payment.amount, event.transaction_id)
            return EventOutcome(payment=payment, applied=True)

        if event.kind == GatewayEventKind.FAILED:
            if payment.status not in FAILABLE_STATUSES:
                return EventOutcome(payment=payment, applied=False)
            await self._mark_failed(payment, event.failure_reason or event.event_type)
            return EventOutcome(payment=payment, applied=True)

        if payment.status != PaymentStatusEnum.CAPTURED:
            return EventOutcome(payment=payment, applied=False)
        payment.status = PaymentStatusEnum.REFUNDED
        captured = payment.captured_amount or payment.amount
        payment.refund_amount = quantize_money(Decimal(payment.refund_amount or event.amount or captured))
        payment.refund_percentage = int(
            (payment.refund_amount * 100 / Decimal(captured)).quantize(Decimal("1"), rounding=ROUND_HALF_UP),
        )
        payment.refund_status = RefundStatusEnum.COMPLETED
        payment.refund_error = None
        payment.refunded_at = self.now_provider()
        await self.repository.save(payment)
        await self._audit(payment, "billing.payment.refunded", {"source": "webhook"})
        return EventOutcome(payment=payment, applied=True)

    async def refund(self, payment: Payment | None, decision: RefundDecision) -> RefundStatusEnum:
        """Issue a refund for a captured payment.

        Gateway failures are recorded on the payment and never raised, so the
        caller's cancellation still takes effect.
        """
        if payment is None or payment.status != PaymentStatusEnum.CAPTURED:
            return RefundStatusEnum.NOT_REQUIRED

        payment.refund_percentage = decision.percentage
        payment.refund_amount = decision.amount
        if decision.amount <= 0:
            payment.refund_status = RefundStatusEnum.NOT_REQUIRED
            await self.repository.save(payment)
            return payment.refund_status

        gateway = self.gateways.get(payment.gateway)
        try:
            result = await gateway.refund(
                intent_id=payment.payment_intent_id,
                transaction_id=payment.transaction_id,
                amount=decision.amount,
                currency=payment.currency,
            )
        except ExternalServiceError as exc:
            logger.warning(
                "Refund of %s %s for payment %s failed: %s",
                decision.amount,
                payment.currency,
                payment.id,
                exc.message,
            )
            payment.refund_status = RefundStatusEnum.FAILED
            payment.refund_error = exc.message
            await self.repository.save(payment)
            await self._audit(payment, "billing.payment.refund.failed", {"error": exc.message})
            return payment.refund_status

        payment.status = PaymentStatusEnum.REFUNDED
        payment.refund_status = RefundStatusEnum.COMPLETED
        payment.refund_reference = result.reference
        payment.refund_error = None
        payment.refunded_at = self.now_provider()
        await self.repository.save(payment)
        await self._audit(
            payment,
            "billing.payment.refunded",
            {"refund_amount": str(decision.amount), "refund_percentage": decision.percentage},
        )
        return payment.refund_status

    async def release_hold(self, payment: Payment | None) -> bool:
        """Finalize payout for a captured payment once the hold period passed."""
        if payment is None or payment.status != PaymentStatusEnum.CAPTURED or payment.released_at is not None:
            return False
        payment.released_at = self.now_provider()
        await self.repository.save(payment)
        await self._audit(payment, "billing.payout.released", {"payout_amount": str(payment.payout_amount)})
        return True

    async def schedule_release(self, payment: Payment | None, release_at: datetime) -> None:
        if payment is None:
            return
        payment.release_at = release_at
        await self.repository.save(payment)

    def _ensure_amount_matches(self, payment: Payment, amount: Decimal | None) -> None:
        if amount is not None and Decimal(amount) != Decimal(payment.amount):
            raise BusinessRuleException(
                f"Captured amount {amount} does not match session price {payment.amount}",
            )

    async def _mark_captured(self, payment: Payment, amount: Decimal, transaction_id: str | None) -> None:
        commission, payout = split_commission(amount, settings.platform_commission_percentage)
        payment.status = PaymentStatusEnum.CAPTURED
        payment.captured_amount = amount
        payment.commission_amount = commission
        payment.payout_amount = payout
        payment.transaction_id = transaction_id or payment.transaction_id
        payment.failure_reason = None
        payment.paid_at = self.now_provider()
        await self.repository.save(payment)
        await self._audit(
            payment,
            "billing.payment.captured",
            {
                "captured_amount": str(amount),
                "commission_amount": str(commission),
                "payout_amount": str(payout),
                "transaction_id": payment.transaction_id,
            },
        )

    async def _mark_failed(self, payment: Payment, reason: str) -> None:
        payment.status = PaymentStatusEnum.FAILED
        payment.failure_reason = reason
        await self.repository.save(payment)
        await self._audit(payment, "billing.payment.failed", {"reason": reason})

    async def _audit(self, payment: Payment, action: str, payload: dict) -> None:
        await self.audit_repository.create_audit_log(
            session_id=payment.session_id,
            actor_id=None,
            action=action,
            entity_type="payment",
            entity_id=str(payment.id),
            payload={
                "session_id": str(payment.session_id),
                "gateway": str(payment.gateway),
                "payment_intent_id": payment.payment_intent_id,
                **payload,
            },
        )
