"""Paymob Accept payment gateway."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from decimal import Decimal
from typing import Any

import httpx

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

# Order matters: Paymob signs the concatenation of these transaction fields.
HMAC_FIELDS: tuple[str, ...] = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)

PAYMENT_KEY_EXPIRATION_SECONDS = 3600


def _lookup(obj: dict[str, Any], dotted: str) -> Any:
    value: Any = obj
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _hmac_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compute_transaction_hmac(transaction: dict[str, Any], secret: str) -> str:
    message = "".join(_hmac_value(_lookup(transaction, field)) for field in HMAC_FIELDS)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512).hexdigest()


def _transaction_status(transaction: dict[str, Any]) -> PaymentStatusEnum:
    if transaction.get("is_refunded"):
        return PaymentStatusEnum.REFUNDED
    if transaction.get("pending"):
        return PaymentStatusEnum.PENDING
    if transaction.get("success"):
        return PaymentStatusEnum.CAPTURED
    return PaymentStatusEnum.FAILED


class PaymobGateway:
    """Order + payment key flow against the Accept REST API."""

    name = PaymentGatewayEnum.PAYMOB

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        hmac_secret: str | None,
        integration_id: int | None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._hmac_secret = hmac_secret
        self._integration_id = integration_id
        self._timeout = timeout_seconds
        self._transport = transport

    async def _request(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=payload)
        except httpx.TransportError as exc:
            logger.warning("Paymob request %s %s failed: %s", method, path, exc)
            raise PaymentGatewayError(f"Paymob is unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Paymob %s %s returned %s: %s", method, path, response.status_code, response.text)
            raise PaymentGatewayError(f"Paymob request failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise PaymentGatewayError("Paymob returned a non-JSON response") from exc

    async def _auth_token(self) -> str:
        if not self._api_key:
            raise PaymentGatewayError("Paymob API key is not configured")
        data = await self._request("POST", "auth/tokens", {"api_key": self._api_key})
        token = data.get("token")
        if not token:
            raise PaymentGatewayError("Paymob authentication returned no token")
        return token

    async def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        reference: str,
        customer_email: str | None = None,
    ) -> PaymentIntent:
        if self._integration_id is None:
            raise PaymentGatewayError("Paymob integration id is not configured")
        token = await self._auth_token()
        amount_cents = to_minor_units(amount)

        order = await self._request(
            "POST",
            "ecommerce/orders",
            {
                "auth_token": token,
                "delivery_needed": False,
                "amount_cents": amount_cents,
                "currency": currency.upper(),
                "merchant_order_id": reference,
                "items": [],
            },
        )
        order_id = order.get("id")
        if order_id is None:
            raise PaymentGatewayError("Paymob order creation returned no id")

        # Paymob rejects payment keys with empty billing fields.
        billing_data = {
            "email": customer_email or "NA",
            "first_name": "NA",
            "last_name": "NA",
            "phone_number": "NA",
            "apartment": "NA",
            "floor": "NA",
            "street": "NA",
            "building": "NA",
            "shipping_method": "NA",
            "postal_code": "NA",
            "city": "NA",
            "country": "NA",
            "state": "NA",
        }
        key = await self._request(
            "POST",
            "acceptance/payment_keys",
            {
                "auth_token": token,
                "amount_cents": amount_cents,
                "expiration": PAYMENT_KEY_EXPIRATION_SECONDS,
                "order_id": order_id,
                "billing_data": billing_data,
                "currency": currency.upper(),
                "integration_id": self._integration_id,
            },
        )
        payment_token = key.get("token")
        if not payment_token:
            raise PaymentGatewayError("Paymob payment key request returned no token")
        return PaymentIntent(intent_id=str(order_id), client_secret=payment_token)

    async def retrieve_intent(self, intent_id: str) -> GatewayPaymentState:
        token = await self._auth_token()
        transaction = await self._request(
            "POST",
            "ecommerce/orders/transaction_inquiry",
            {"auth_token": token, "order_id": intent_id},
        )
        status = _transaction_status(transaction)
        return GatewayPaymentState(
            intent_id=intent_id,
            status=status,
            amount=from_minor_units(transaction.get("amount_cents")) if status == PaymentStatusEnum.CAPTURED else None,
            transaction_id=str(transaction["id"]) if transaction.get("id") is not None else None,
        )

    async def refund(
        self,
        *,
        intent_id: str,
        transaction_id: str | None,
        amount: Decimal,
        currency: str,
    ) -> RefundResult:
        if not transaction_id:
            raise PaymentGatewayError(f"Paymob order {intent_id} has no captured transaction to refund")
        token = await self._auth_token()
        data = await self._request(
            "POST",
            "acceptance/void_refund/refund",
            {
                "auth_token": token,
                "transaction_id": transaction_id,
                "amount_cents": to_minor_units(amount),
            },
        )
        if not data.get("success"):
            raise PaymentGatewayError(f"Paymob refund for transaction {transaction_id} was declined")
        return RefundResult(
            reference=str(data.get("id")),
            amount=from_minor_units(data.get("amount_cents")) or amount,
        )

    def parse_webhook(self, delivery: WebhookDelivery) -> GatewayEvent:
        if not self._hmac_secret:
            raise InvalidWebhookSignature("Paymob HMAC secret is not configured")
        received = delivery.query_params.get("hmac") or delivery.headers.get("hmac")
        if not received:
            raise InvalidWebhookSignature("Missing Paymob HMAC")
        try:
            payload = json.loads(delivery.body or b"{}")
        except ValueError as exc:
            raise InvalidWebhookSignature("Malformed Paymob callback payload") from exc

        transaction = payload.get("obj") or {}
        expected = compute_transaction_hmac(transaction, self._hmac_secret)
        if not hmac.compare_digest(expected, received.lower()):
            raise InvalidWebhookSignature("Invalid Paymob HMAC")

        event_type = str(payload.get("type") or "TRANSACTION")
        order_id = _lookup(transaction, "order.id")
        transaction_id = transaction.get("id")

        if event_type != "TRANSACTION":
            kind = GatewayEventKind.IGNORED
        else:
            kind = {
                PaymentStatusEnum.CAPTURED: GatewayEventKind.CAPTURED,
                PaymentStatusEnum.REFUNDED: GatewayEventKind.REFUNDED,
                PaymentStatusEnum.FAILED: GatewayEventKind.FAILED,
            }.get(_transaction_status(transaction), GatewayEventKind.IGNORED)

        failure_reason = None
        if kind == GatewayEventKind.FAILED:
            failure_reason = _lookup(transaction, "data.message") or "Paymob transaction declined"

        return GatewayEvent(
            gateway=self.name,
            kind=kind,
            event_type=event_type,
            intent_id=str(order_id) if order_id is not None else None,
            event_id=str(transaction_id) if transaction_id is not None else None,
            amount=from_minor_units(transaction.get("amount_cents")),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            failure_reason=failure_reason,
            raw=payload,
        )
