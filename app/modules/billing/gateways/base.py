"""Payment gateway capability interface."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum


class GatewayEventKind(StrEnum):
    """Gateway-independent meaning of a payment webhook."""

    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    intent_id: str
    client_secret: str | None = None
    checkout_url: str | None = None


@dataclass(frozen=True, slots=True)
class GatewayPaymentState:
    intent_id: str
    status: PaymentStatusEnum
    amount: Decimal | None = None
    transaction_id: str | None = None


@dataclass(frozen=True, slots=True)
class RefundResult:
    reference: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class WebhookDelivery:
    """Raw inbound webhook as received by the HTTP layer."""

    body: bytes
    headers: Mapping[str, str]
    query_params: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GatewayEvent:
    gateway: PaymentGatewayEnum
    kind: GatewayEventKind
    event_type: str
    intent_id: str | None = None
    event_id: str | None = None
    amount: Decimal | None = None
    transaction_id: str | None = None
    failure_reason: str | None = None
    raw: Mapping = field(default_factory=dict)


class PaymentGateway(Protocol):
    """What the billing layer needs from any payment provider."""

    name: PaymentGatewayEnum

    async def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        reference: str,
        customer_email: str | None = None,
    ) -> PaymentIntent: ...

    async def retrieve_intent(self, intent_id: str) -> GatewayPaymentState: ...

    async def refund(
        self,
        *,
        intent_id: str,
        transaction_id: str | None,
        amount: Decimal,
        currency: str,
    ) -> RefundResult: ...

    def parse_webhook(self, delivery: WebhookDelivery) -> GatewayEvent: ...


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to integer cents."""
    return int((Decimal(amount) * 100).to_integral_value())


def from_minor_units(value: int | str | None) -> Decimal | None:
    if value is None:
        return None
    return (Decimal(int(value)) / Decimal(100)).quantize(Decimal("0.01"))
