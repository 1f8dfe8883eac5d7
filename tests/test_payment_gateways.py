from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
import stripe

from app.core.config import Settings
from app.core.enums import PaymentGatewayEnum, PaymentStatusEnum
from app.modules.billing.gateways.base import GatewayEventKind, WebhookDelivery, from_minor_units, to_minor_units
from app.modules.billing.gateways.paymob_gateway import PaymobGateway, compute_transaction_hmac
from app.modules.billing.gateways.registry import PaymentGatewayRegistry, build_gateway_registry
from app.modules.billing.gateways.stripe_gateway import StripeGateway
from app.shared.exceptions import BusinessRuleException, InvalidWebhookSignature, PaymentGatewayError

PAYMOB_SECRET = "paymob-hmac-secret"


def _stripe_gateway() -> StripeGateway:
    return StripeGateway(secret_key="sk_test_123", webhook_secret="whsec_123")


def _paymob_gateway(transport: httpx.AsyncBaseTransport | None = None) -> PaymobGateway:
    return PaymobGateway(
        base_url="https://paymob.test/api",
        api_key="paymob-key",
        hmac_secret=PAYMOB_SECRET,
        integration_id=42,
        transport=transport,
    )


def _paymob_transaction(**overrides) -> dict:
    transaction = {
        "id": 9001,
        "amount_cents": 5000,
        "created_at": "2026-03-02T09:00:00",
        "currency": "EGP",
        "error_occured": False,
        "has_parent_transaction": False,
        "integration_id": 42,
        "is_3d_secure": True,
        "is_auth": False,
        "is_capture": False,
        "is_refunded": False,
        "is_standalone_payment": True,
        "is_voided": False,
        "order": {"id": 777},
        "owner": 1,
        "pending": False,
        "source_data": {"pan": "2346", "sub_type": "MasterCard", "type": "card"},
        "success": True,
    }
    transaction.update(overrides)
    return transaction


def _paymob_delivery(transaction: dict, hmac_value: str | None = None) -> WebhookDelivery:
    body = json.dumps({"type": "TRANSACTION", "obj": transaction}).encode()
    signature = hmac_value or compute_transaction_hmac(transaction, PAYMOB_SECRET)
    return WebhookDelivery(body=body, headers={}, query_params={"hmac": signature})


def test_minor_unit_conversion() -> None:
    assert to_minor_units(Decimal("50.00")) == 5000
    assert to_minor_units(Decimal("0.29")) == 29
    assert from_minor_units(2999) == Decimal("29.99")
    assert from_minor_units(None) is None


def test_stripe_webhook_capture_is_normalized(monkeypatch) -> None:
    captured_args = {}

    def fake_construct_event(payload, sig_header, secret):
        captured_args.update(payload=payload, sig_header=sig_header, secret=secret)
        return {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "amount_received": 5000, "latest_charge": "ch_1"}},
        }

    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_construct_event)

    event = _stripe_gateway().parse_webhook(
        WebhookDelivery(body=b"{}", headers={"stripe-signature": "t=1,v1=abc"}),
    )

    assert captured_args == {"payload": b"{}", "sig_header": "t=1,v1=abc", "secret": "whsec_123"}
    assert event.kind == GatewayEventKind.CAPTURED
    assert event.intent_id == "pi_1"
    assert event.amount == Decimal("50.00")
    assert event.transaction_id == "ch_1"
    assert event.event_id == "evt_1"


def test_stripe_refund_event_uses_charge_intent(monkeypatch) -> None:
    monkeypatch.setattr(
        stripe.Webhook,
        "construct_event",
        lambda payload, sig_header, secret: {
            "id": "evt_2",
            "type": "charge.refunded",
            "data": {"object": {"id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 2500}},
        },
    )

    event = _stripe_gateway().parse_webhook(WebhookDelivery(body=b"{}", headers={"stripe-signature": "sig"}))

    assert event.kind == GatewayEventKind.REFUNDED
    assert event.intent_id == "pi_1"
    assert event.amount == Decimal("25.00")


def test_stripe_unknown_event_is_ignored(monkeypatch) -> None:
    monkeypatch.setattr(
        stripe.Webhook,
        "construct_event",
        lambda payload, sig_header, secret: {"id": "evt_3", "type": "customer.created", "data": {"object": {}}},
    )

    event = _stripe_gateway().parse_webhook(WebhookDelivery(body=b"{}", headers={"stripe-signature": "sig"}))

    assert event.kind == GatewayEventKind.IGNORED


def test_stripe_rejects_bad_or_missing_signature(monkeypatch) -> None:
    def reject(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("No signatures found", sig_header)

    monkeypatch.setattr(stripe.Webhook, "construct_event", reject)
    gateway = _stripe_gateway()

    with pytest.raises(InvalidWebhookSignature):
        gateway.parse_webhook(WebhookDelivery(body=b"{}", headers={"stripe-signature": "forged"}))
    with pytest.raises(InvalidWebhookSignature):
        gateway.parse_webhook(WebhookDelivery(body=b"{}", headers={}))
    with pytest.raises(InvalidWebhookSignature):
        StripeGateway(secret_key="sk", webhook_secret=None).parse_webhook(
            WebhookDelivery(body=b"{}", headers={"stripe-signature": "sig"}),
        )


@pytest.mark.asyncio
async def test_stripe_intent_creation_sends_minor_units(monkeypatch) -> None:
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return {"id": "pi_9", "client_secret": "pi_9_secret"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    intent = await _stripe_gateway().create_intent(
        amount=Decimal("50.00"),
        currency="USD",
        reference="session-1",
        customer_email="mentee@example.com",
    )

    assert intent.intent_id == "pi_9"
    assert intent.client_secret == "pi_9_secret"
    assert calls[0]["amount"] == 5000
    assert calls[0]["currency"] == "usd"
    assert calls[0]["api_key"] == "sk_test_123"
    assert calls[0]["metadata"] == {"session_id": "session-1"}


@pytest.mark.asyncio
async def test_stripe_without_secret_key_fails_as_gateway_error() -> None:
    with pytest.raises(PaymentGatewayError):
        await StripeGateway(secret_key=None, webhook_secret=None).retrieve_intent("pi_1")


def test_paymob_successful_transaction_is_captured() -> None:
    event = _paymob_gateway().parse_webhook(_paymob_delivery(_paymob_transaction()))

    assert event.gateway == PaymentGatewayEnum.PAYMOB
    assert event.kind == GatewayEventKind.CAPTURED
    assert event.intent_id == "777"
    assert event.transaction_id == "9001"
    assert event.amount == Decimal("50.00")


def test_paymob_declined_transaction_is_failure() -> None:
    transaction = _paymob_transaction(success=False, data={"message": "Insufficient funds"})

    event = _paymob_gateway().parse_webhook(_paymob_delivery(transaction))

    assert event.kind == GatewayEventKind.FAILED
    assert event.failure_reason == "Insufficient funds"


def test_paymob_tampered_payload_is_rejected() -> None:
    transaction = _paymob_transaction()
    signature = compute_transaction_hmac(transaction, PAYMOB_SECRET)
    tampered = dict(transaction, amount_cents=1)

    with pytest.raises(InvalidWebhookSignature):
        _paymob_gateway().parse_webhook(_paymob_delivery(tampered, hmac_value=signature))
    with pytest.raises(InvalidWebhookSignature):
        _paymob_gateway().parse_webhook(
            WebhookDelivery(body=json.dumps({"obj": transaction}).encode(), headers={}),
        )


@pytest.mark.asyncio
async def test_paymob_intent_runs_order_and_payment_key_flow() -> None:
    requests: list[tuple[str, dict]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        requests.append((request.url.path, payload))
        if request.url.path.endswith("auth/tokens"):
            return httpx.Response(200, json={"token": "auth-token"})
        if request.url.path.endswith("ecommerce/orders"):
            return httpx.Response(201, json={"id": 777})
        return httpx.Response(201, json={"token": "payment-key"})

    gateway = _paymob_gateway(httpx.MockTransport(handler))

    intent = await gateway.create_intent(amount=Decimal("50.00"), currency="egp", reference="session-1")

    assert intent.intent_id == "777"
    assert intent.client_secret == "payment-key"
    assert [path for path, _ in requests] == [
        "/api/auth/tokens",
        "/api/ecommerce/orders",
        "/api/acceptance/payment_keys",
    ]
    assert requests[1][1]["amount_cents"] == 5000
    assert requests[1][1]["merchant_order_id"] == "session-1"
    assert requests[2][1]["integration_id"] == 42


@pytest.mark.asyncio
async def test_paymob_http_error_becomes_gateway_error() -> None:
    gateway = _paymob_gateway(httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))

    with pytest.raises(PaymentGatewayError):
        await gateway.retrieve_intent("777")


@pytest.mark.asyncio
async def test_paymob_refund_requires_transaction() -> None:
    with pytest.raises(PaymentGatewayError):
        await _paymob_gateway().refund(intent_id="777", transaction_id=None, amount=Decimal("10.00"), currency="EGP")


@pytest.mark.asyncio
async def test_paymob_inquiry_maps_transaction_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("auth/tokens"):
            return httpx.Response(200, json={"token": "auth-token"})
        return httpx.Response(200, json=_paymob_transaction())

    state = await _paymob_gateway(httpx.MockTransport(handler)).retrieve_intent("777")

    assert state.status == PaymentStatusEnum.CAPTURED
    assert state.amount == Decimal("50.00")
    assert state.transaction_id == "9001"


def test_registry_resolves_configured_gateways() -> None:
    registry = build_gateway_registry(Settings(_env_file=None))

    assert registry.names() == [PaymentGatewayEnum.STRIPE, PaymentGatewayEnum.PAYMOB]
    assert registry.get("paymob").name == PaymentGatewayEnum.PAYMOB
    with pytest.raises(BusinessRuleException):
        registry.get("paypal")
    with pytest.raises(BusinessRuleException):
        PaymentGatewayRegistry([]).get(PaymentGatewayEnum.STRIPE)
