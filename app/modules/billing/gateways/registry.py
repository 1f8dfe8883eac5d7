"""Lookup of configured payment gateways by name."""

from __future__ import annotations

from collections.abc import Iterable

from app.core.config import Settings, get_settings
from app.core.enums import PaymentGatewayEnum
from app.modules.billing.gateways.base import PaymentGateway
from app.modules.billing.gateways.paymob_gateway import PaymobGateway
from app.modules.billing.gateways.stripe_gateway import StripeGateway
from app.shared.exceptions import BusinessRuleException


class PaymentGatewayRegistry:
    def __init__(self, gateways: Iterable[PaymentGateway]) -> None:
        self._gateways: dict[PaymentGatewayEnum, PaymentGateway] = {
            PaymentGatewayEnum(gateway.name): gateway for gateway in gateways
        }

    def get(self, name: PaymentGatewayEnum | str) -> PaymentGateway:
        try:
            key = PaymentGatewayEnum(name)
        except ValueError as exc:
            raise BusinessRuleException(f"Unsupported payment gateway '{name}'") from exc
        gateway = self._gateways.get(key)
        if gateway is None:
            raise BusinessRuleException(f"Payment gateway '{key}' is not enabled")
        return gateway

    def names(self) -> list[PaymentGatewayEnum]:
        return list(self._gateways)


def build_gateway_registry(settings: Settings | None = None) -> PaymentGatewayRegistry:
    settings = settings or get_settings()
    return PaymentGatewayRegistry(
        [
            StripeGateway(
                secret_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
            ),
            PaymobGateway(
                base_url=settings.paymob_base_url,
                api_key=settings.paymob_api_key,
                hmac_secret=settings.paymob_hmac_secret,
                integration_id=settings.paymob_integration_id,
                timeout_seconds=settings.external_http_timeout_seconds,
            ),
        ],
    )
