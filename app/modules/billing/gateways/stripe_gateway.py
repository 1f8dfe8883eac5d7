"""Stripe payment gateway."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any

import stripe

from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum
from app.modules.billing.gateways.base import (
    GatewayEvent,
    GatewayEventKind,
    GatewayPaymentState,
    PaymentIntent,
    RefundResult,
    WebhookDelivery,
    from_minor_units,
    to_minor_units,
)
from app.shared.exceptions import InvalidWebhookSignature, PaymentGatewayError

logger = logging.getLogger(__name__)

_INTENT_STATUS_MAP: dict[str, PaymentStatusEnum] = {
    "succeeded": PaymentStatusEnum.CAPTURED,
    "requires_capture": PaymentStatusEnum.AUTHORIZED,
    "requires_payment_method": PaymentStatusEnum.FAILED,
    "canceled": PaymentStatusEnum.FAILED,
}

_EVENT_KIND_MAP: dict[str, GatewayEventKind] = {
    "payment_intent.succeeded": GatewayEventKind.CAPTURED,
    "payment_intent.payment_failed": GatewayEventKind.FAILED,
    "payment_intent.canceled": GatewayEventKind.FAILED,
    "charge.refunded": GatewayEventKind.REFUNDED,
}


class StripeGateway:
    """PaymentIntent-based card payments through the official SDK.

    The SDK is synchronous, so every network call runs in a worker thread.
    """

    name = PaymentGatewayEnum.STRIPE

    def __init__(self, *, secret_key: str | None, webhook_secret: str | None) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    def _require_key(self) -> str:
        if not self._secret_key:
            raise PaymentGatewayError("Stripe secret key is not configured")
        return self._secret_key

    async def _call(self, func, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, api_key=self._require_key(), **kwargs)
        except stripe.StripeError as exc:
            logger.warning("Stripe API call %s failed: %s", getattr(func, "__qualname__", func), exc)
            raise PaymentGatewayError(f"Stripe request failed: {exc.user_message or exc}") from exc

    async def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        reference: str,
        customer_email: str | None = None,
    ) -> PaymentIntent:
        intent = await self._call(
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            receipt_email=customer_email,
            metadata={"session_id": reference},
            idempotency_key=f"session-intent-{reference}",
        )
        return PaymentIntent(intent_id=intent["id"], client_secret=intent.get("client_secret"))

    async def retrieve_intent(self, intent_id: str) -> GatewayPaymentState:
        intent = await self._call(stripe.PaymentIntent.retrieve, intent_id)
        status = _INTENT_STATUS_MAP.get(intent["status"], PaymentStatusEnum.PENDING)
        amount = from_minor_units(intent.get("amount_received")) if status == PaymentStatusEnum.CAPTURED else None
        return GatewayPaymentState(
            intent_id=intent["id"],
            status=status,
            amount=amount,
            transaction_id=intent.get("latest_charge"),
        )

    async def refund(
        self,
        *,
        intent_id: str,
        transaction_id: str | None,
        amount: Decimal,
        currency: str,
    ) -> RefundResult:
        refund = await self._call(
            stripe.Refund.create,
            payment_intent=intent_id,
            amount=to_minor_units(amount),
            idempotency_key=f"refund-{intent_id}-{to_minor_units(amount)}",
        )
        if refund.get("status") in {"failed", "canceled"}:
            raise PaymentGatewayError(f"Stripe refund {refund['id']} ended with status {refund['status']}")
        return RefundResult(reference=refund["id"], amount=from_minor_units(refund["amount"]) or amount)

    def parse_webhook(self, delivery: WebhookDelivery) -> GatewayEvent:
        if not self._webhook_secret:
            raise InvalidWebhookSignature("Stripe webhook secret is not configured")
        signature = delivery.headers.get("stripe-signature")
        if not signature:
            raise InvalidWebhookSignature("Missing Stripe-Signature header")
        try:
            event = stripe.Webhook.construct_event(delivery.body, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise InvalidWebhookSignature("Invalid Stripe webhook signature") from exc
        except ValueError as exc:
            raise InvalidWebhookSignature("Malformed Stripe webhook payload") from exc

        event_type = event["type"]
        data = event["data"]["object"]
        kind = _EVENT_KIND_MAP.get(event_type, GatewayEventKind.IGNORED)

        if event_type == "charge.refunded":
            intent_id = data.get("payment_intent")
            amount = from_minor_units(data.get("amount_refunded"))
            transaction_id = data.get("id")
        else:
            intent_id = data.get("id")
            amount = from_minor_units(data.get("amount_received")) if kind == GatewayEventKind.CAPTURED else None
            transaction_id = data.get("latest_charge")

        failure_reason = None
        if kind == GatewayEventKind.FAILED:
            last_error = data.get("last_payment_error") or {}
            failure_reason = last_error.get("message") or event_type

        return GatewayEvent(
            gateway=self.name,
            kind=kind,
            event_type=event_type,
            intent_id=intent_id,
            event_id=event.get("id"),
            amount=amount,
            transaction_id=transaction_id,
            failure_reason=failure_reason,
        )
