"""Billing schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum, RefundStatusEnum


class PaymentIntentCreate(BaseModel):
    """Open a payment intent for a pending session."""

    session_id: UUID
    gateway: PaymentGatewayEnum = PaymentGatewayEnum.STRIPE


class PaymentIntentRead(BaseModel):
    """What the client needs to complete payment with the gateway."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    gateway: PaymentGatewayEnum
    payment_intent_id: str
    client_secret: str | None
    checkout_url: str | None
    amount: Decimal
    currency: str
    status: PaymentStatusEnum


class PaymentConfirmRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1, max_length=255)
    session_id: UUID


class PaymentRead(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    gateway: PaymentGatewayEnum
    payment_intent_id: str
    transaction_id: str | None
    status: PaymentStatusEnum
    amount: Decimal
    captured_amount: Decimal | None
    commission_amount: Decimal | None
    payout_amount: Decimal | None
    currency: str
    failure_reason: str | None
    refund_amount: Decimal | None
    refund_percentage: int | None
    refund_status: RefundStatusEnum
    refund_error: str | None
    paid_at: datetime | None
    refunded_at: datetime | None
    release_at: datetime | None
    released_at: datetime | None
    created_at: datetime


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str | None = None
    applied: bool = False
