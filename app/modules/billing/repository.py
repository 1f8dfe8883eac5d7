"""Billing repository layer."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum
from app.modules.billing.models import Payment


class BillingRepository:
    """DB access methods for billing."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_payment(
        self,
        session_id: UUID,
        gateway: PaymentGatewayEnum,
        payment_intent_id: str,
        amount: Decimal,
        currency: str,
        client_secret: str | None,
        checkout_url: str | None,
    ) -> Payment:
        payment = Payment(
            session_id=session_id,
            gateway=gateway,
            payment_intent_id=payment_intent_id,
            amount=amount,
            currency=currency.upper(),
            client_secret=client_secret,
            checkout_url=checkout_url,
            status=PaymentStatusEnum.PENDING,
        )
        self.session.add(payment)
        await self.session.flush()
        return payment

    async def get_payment_by_session_id(self, session_id: UUID) -> Payment | None:
        stmt = select(Payment).where(Payment.session_id == session_id)
        return await self.session.scalar(stmt)

    async def get_payment_by_intent_id(
        self,
        payment_intent_id: str,
        *,
        for_update: bool = False,
    ) -> Payment | None:
        stmt = select(Payment).where(Payment.payment_intent_id == payment_intent_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def save(self, payment: Payment) -> Payment:
        await self.session.flush()
        return payment
