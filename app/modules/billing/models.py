"""Billing ORM models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum, RefundStatusEnum


class Payment(BaseModelMixin, Base):
    """Payment for exactly one session."""

    __tablename__ = "payments"

    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("sessions.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    gateway: Mapped[PaymentGatewayEnum] = mapped_column(
        SAEnum(PaymentGatewayEnum, name="payment_gateway_enum", native_enum=False),
        nullable=False,
    )
    payment_intent_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    client_secret: Mapped[str | None] = mapped_column(String(512), nullable=True)
    checkout_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    captured_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    commission_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    payout_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[PaymentStatusEnum] = mapped_column(
        SAEnum(PaymentStatusEnum, name="payment_status_enum", native_enum=False),
        default=PaymentStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    refund_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_status: Mapped[RefundStatusEnum] = mapped_column(
        SAEnum(RefundStatusEnum, name="refund_status_enum", native_enum=False),
        default=RefundStatusEnum.NOT_REQUIRED,
        nullable=False,
    )
    refund_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    release_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
