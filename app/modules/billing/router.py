"""Billing API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from app.core.enums import PaymentGatewayEnum
from app.core.metrics import record_webhook
from app.modules.billing.gateways.base import WebhookDelivery
from app.modules.billing.schemas import (
    PaymentConfirmRequest,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentRead,
    WebhookAck,
)
from app.modules.identity.service import get_current_user
from app.modules.sessions.schemas import PaymentConfirmResponse, SessionRead
from app.modules.sessions.service import SessionsService, get_sessions_service
from app.shared.exceptions import AppException

router = APIRouter(tags=["billing"])


@router.post("/payments/intents", response_model=PaymentIntentRead, status_code=status.HTTP_201_CREATED)
async def create_payment_intent(
    payload: PaymentIntentCreate,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> PaymentIntentRead:
    """Open a gateway payment for a pending session."""
    payment = await service.create_payment_intent(payload, current_user)
    return PaymentIntentRead.model_validate(payment)


@router.post("/payments/confirm", response_model=PaymentConfirmResponse)
async def confirm_payment(
    payload: PaymentConfirmRequest,
    service: SessionsService = Depends(get_sessions_service),
    current_user=Depends(get_current_user),
) -> PaymentConfirmResponse:
    """Confirm a session once the gateway reports the payment captured."""
    mentorship_session, payment = await service.confirm_payment(payload, current_user)
    return PaymentConfirmResponse(
        session=SessionRead.model_validate(mentorship_session),
        payment=PaymentRead.model_validate(payment),
    )


async def _handle_webhook(
    gateway_name: PaymentGatewayEnum,
    request: Request,
    service: SessionsService,
) -> WebhookAck:
    delivery = WebhookDelivery(
        body=await request.body(),
        headers={key.lower(): value for key, value in request.headers.items()},
        query_params=dict(request.query_params),
    )
    try:
        event, applied = await service.handle_payment_webhook(gateway_name, delivery)
    except AppException:
        record_webhook(str(gateway_name), "rejected")
        raise
    record_webhook(str(gateway_name), "applied" if applied else "ignored")
    return WebhookAck(event_type=event.event_type, applied=applied)


@router.post("/webhooks/payments/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    service: SessionsService = Depends(get_sessions_service),
) -> WebhookAck:
    return await _handle_webhook(PaymentGatewayEnum.STRIPE, request, service)


@router.post("/webhooks/payments/paymob", response_model=WebhookAck)
async def paymob_webhook(
    request: Request,
    service: SessionsService = Depends(get_sessions_service),
) -> WebhookAck:
    return await _handle_webhook(PaymentGatewayEnum.PAYMOB, request, service)
