"""
Payment provider clients.

Each provider client opens transactions, verifies them and parses its own
webhook bodies into a :class:`PaymentEvent`. Everything the rest of the
service sees is provider-neutral: two-place Decimal amounts in major units
and ``success`` / ``failed`` for terminal outcomes. This module is the only
place that knows about a provider's wire format, including Paystack's minor
currency unit (kobo).
"""

import base64
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterator, Optional, Protocol

import httpx

from checkout.domain.errors import (
    GatewayError,
    GatewayTimeout,
    PaymentInitializationError,
    ValidationError,
)
from checkout.domain.models import PaymentProvider
from checkout.domain.pricing import money
from shared.core import get_logger

logger = get_logger(__name__)

# kobo per naira
MINOR_UNIT_FACTOR = 100

SUCCESS_STATUSES = frozenset({"success"})
FAILURE_STATUSES = frozenset({"failed"})

WEBHOOK_EVENT_STATUSES = {
    "charge.success": "success",
    "charge.failed": "failed",
}

MONNIFY_PAYMENT_STATUSES = {
    "PAID": "success",
    "OVERPAID": "success",
    "FAILED": "failed",
    "EXPIRED": "failed",
    "CANCELLED": "failed",
    "REVERSED": "failed",
}

MONNIFY_WEBHOOK_EVENT_STATUSES = {
    "SUCCESSFUL_TRANSACTION": "success",
    "FAILED_TRANSACTION": "failed",
}


def to_minor_units(amount) -> int:
    minor = money(amount) * MINOR_UNIT_FACTOR
    if minor != minor.to_integral_value():
        raise ValueError(f"Amount {amount} is not representable in minor units")
    return int(minor)


def from_minor_units(amount: int) -> Decimal:
    return money(Decimal(int(amount)) / MINOR_UNIT_FACTOR)


@dataclass(frozen=True)
class PaymentEvent:
    """A payment outcome reported by the provider, from verify or webhook."""

    provider: str
    reference: str
    reported_status: str
    source: str
    amount: Optional[Decimal] = None
    order_id: Optional[int] = None

    @property
    def idempotency_key(self) -> str:
        return f"{self.reference}:{self.reported_status}"

    @property
    def succeeded(self) -> bool:
        return self.reported_status in SUCCESS_STATUSES

    @property
    def failed(self) -> bool:
        return self.reported_status in FAILURE_STATUSES


@dataclass(frozen=True)
class InitializedTransaction:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


class PaymentGateway(Protocol):
    """What the payment service needs from a provider client."""

    provider: str
    signature_header: str

    @property
    def configured(self) -> bool: ...

    def initialize(
        self,
        order_id: int,
        payer_email: str,
        amount,
        callback_url: str,
        reference: Optional[str] = None,
        currency: str = "NGN",
    ) -> InitializedTransaction: ...

    def verify(self, reference: str) -> Optional[PaymentEvent]: ...

    def parse_webhook(self, payload: Any) -> Optional[PaymentEvent]: ...


def _order_id_from_metadata(metadata: Any) -> Optional[int]:
    if not isinstance(metadata, dict):
        return None
    try:
        return int(metadata.get("orderId"))
    except (TypeError, ValueError):
        return None


def _major_units(amount) -> Optional[Decimal]:
    if amount is None or isinstance(amount, bool):
        return None
    try:
        return money(amount)
    except ArithmeticError:
        return None


class HttpGateway:
    """Shared transport for provider clients: bounded timeouts and error mapping."""

    provider: str = ""
    display_name: str = ""
    signature_header: str = ""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        reference_prefix: str = "ORD",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.reference_prefix = reference_prefix
        self._transport = transport

    def new_reference(self, order_id: int) -> str:
        """Reference unique per attempt: prefix, order id and a random suffix."""
        return f"{self.reference_prefix}-{order_id}-{secrets.token_hex(6)}"

    def _send(self, method: str, path: str, headers: dict, **kwargs) -> tuple[int, Any]:
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers=headers,
            ) as client:
                response = client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{self.display_name} {method} {path} timed out")
            raise GatewayTimeout("Payment provider timed out; payment state unknown") from e
        except httpx.HTTPError as e:
            logger.error(f"{self.display_name} {method} {path} failed: {e}")
            raise GatewayError("Payment provider is unreachable") from e

        try:
            return response.status_code, response.json()
        except ValueError as e:
            raise GatewayError(f"Malformed response from payment provider (HTTP {response.status_code})") from e


class PaystackClient(HttpGateway):
    provider = PaymentProvider.PAYSTACK.value
    display_name = "Paystack"
    signature_header = "x-paystack-signature"

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        reference_prefix: str = "ORD",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(base_url, timeout, reference_prefix, transport)
        self.secret_key = secret_key

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        if not self.configured:
            raise GatewayError("Paystack is not configured. Set PAYSTACK_SECRET_KEY.")

        status_code, body = self._send(
            method, path, {"Authorization": f"Bearer {self.secret_key}"}, json=payload
        )
        if not isinstance(body, dict) or "status" not in body:
            raise GatewayError(f"Malformed response from payment provider (HTTP {status_code})")
        return body

    def initialize(
        self,
        order_id: int,
        payer_email: str,
        amount,
        callback_url: str,
        reference: Optional[str] = None,
        currency: str = "NGN",
    ) -> InitializedTransaction:
        reference = reference or self.new_reference(order_id)
        body = self._request("POST", "/transaction/initialize", {
            "email": payer_email,
            "amount": to_minor_units(amount),
            "currency": currency,
            "reference": reference,
            "callback_url": callback_url,
            "metadata": {
                "orderId": order_id,
                "custom_fields": [
                    {"display_name": "Order ID", "variable_name": "order_id", "value": order_id},
                ],
            },
        })

        if not body.get("status"):
            message = body.get("message") or "Payment initialization failed"
            logger.error(
                "Paystack initialization rejected",
                extra={'extra_fields': {'order_id': order_id, 'provider_message': message}},
            )
            raise PaymentInitializationError(message)

        data = body.get("data") or {}
        authorization_url = data.get("authorization_url")
        if not authorization_url:
            raise GatewayError("Payment provider returned no authorization URL")

        return InitializedTransaction(
            authorization_url=authorization_url,
            reference=data.get("reference") or reference,
            access_code=data.get("access_code"),
        )

    def verify(self, reference: str) -> Optional[PaymentEvent]:
        """
        Ask the provider for the state of one transaction.

        Returns None when the provider does not know the reference; that is a
        lookup failure, not a failed payment.
        """
        body = self._request("GET", f"/transaction/verify/{reference}")
        if not body.get("status"):
            logger.info(f"Paystack could not verify reference {reference}: {body.get('message')}")
            return None

        data = body.get("data") or {}
        if "status" not in data:
            raise GatewayError("Payment provider returned no transaction status")
        return self._event_from_data(data, str(data["status"]).lower(), "verify", reference)

    def parse_webhook(self, payload: Any) -> Optional[PaymentEvent]:
        """Turn a verified webhook body into an event; None for event kinds we ignore."""
        if not isinstance(payload, dict):
            raise GatewayError("Webhook payload must be a JSON object")

        reported_status = WEBHOOK_EVENT_STATUSES.get(payload.get("event"))
        if reported_status is None:
            return None

        data = payload.get("data")
        if not isinstance(data, dict) or not data.get("reference"):
            raise GatewayError("Webhook payload carries no transaction reference")
        return self._event_from_data(data, reported_status, "webhook", data["reference"])

    def _event_from_data(self, data: dict, reported_status: str, source: str, reference: str) -> PaymentEvent:
        amount = data.get("amount")
        return PaymentEvent(
            provider=self.provider,
            reference=data.get("reference") or reference,
            reported_status=reported_status,
            source=source,
            amount=from_minor_units(amount) if isinstance(amount, int) else None,
            order_id=_order_id_from_metadata(data.get("metadata")),
        )


class MonnifyClient(HttpGateway):
    """
    Monnify client.

    Every call first exchanges the API key and secret for a bearer token.
    Monnify quotes amounts in major units, so no minor-unit conversion is
    needed; its payment statuses are folded onto ``success`` / ``failed``.
    """

    provider = PaymentProvider.MONNIFY.value
    display_name = "Monnify"
    signature_header = "monnify-signature"

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        contract_code: str,
        base_url: str = "https://sandbox.monnify.com",
        timeout: float = 10.0,
        reference_prefix: str = "ORD",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(base_url, timeout, reference_prefix, transport)
        self.api_key = api_key
        self.secret_key = secret_key
        self.contract_code = contract_code

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.secret_key and self.contract_code)

    def _call(self, method: str, path: str, headers: dict, **kwargs) -> dict:
        status_code, body = self._send(method, path, headers, **kwargs)
        if not isinstance(body, dict) or "requestSuccessful" not in body:
            raise GatewayError(f"Malformed response from payment provider (HTTP {status_code})")
        return body

    def _access_token(self) -> str:
        if not self.configured:
            raise GatewayError(
                "Monnify is not configured. Set MONNIFY_API_KEY, MONNIFY_SECRET_KEY and MONNIFY_CONTRACT_CODE."
            )
        credentials = base64.b64encode(f"{self.api_key}:{self.secret_key}".encode()).decode()
        body = self._call("POST", "/api/v1/auth/login", {"Authorization": f"Basic {credentials}"})
        token = (body.get("responseBody") or {}).get("accessToken")
        if not body.get("requestSuccessful") or not token:
            logger.error(f"Monnify authentication failed: {body.get('responseMessage')}")
            raise GatewayError("Payment provider authentication failed")
        return token

    def _authorized(self, method: str, path: str, **kwargs) -> dict:
        token = self._access_token()
        return self._call(method, path, {"Authorization": f"Bearer {token}"}, **kwargs)

    def initialize(
        self,
        order_id: int,
        payer_email: str,
        amount,
        callback_url: str,
        reference: Optional[str] = None,
        currency: str = "NGN",
    ) -> InitializedTransaction:
        reference = reference or self.new_reference(order_id)
        body = self._authorized("POST", "/api/v1/merchant/transactions/init-transaction", json={
            # JSON number in major units, two places
            "amount": float(money(amount)),
            "customerName": payer_email,
            "customerEmail": payer_email,
            "paymentReference": reference,
            "paymentDescription": f"Order {order_id}",
            "currencyCode": currency,
            "contractCode": self.contract_code,
            "redirectUrl": callback_url,
            "paymentMethods": ["CARD", "ACCOUNT_TRANSFER"],
            "metaData": {"orderId": order_id},
        })

        if not body.get("requestSuccessful"):
            message = body.get("responseMessage") or "Payment initialization failed"
            logger.error(
                "Monnify initialization rejected",
                extra={'extra_fields': {'order_id': order_id, 'provider_message': message}},
            )
            raise PaymentInitializationError(message)

        data = body.get("responseBody") or {}
        checkout_url = data.get("checkoutUrl")
        if not checkout_url:
            raise GatewayError("Payment provider returned no authorization URL")

        return InitializedTransaction(
            authorization_url=checkout_url,
            reference=data.get("paymentReference") or reference,
            access_code=data.get("transactionReference"),
        )

    def verify(self, reference: str) -> Optional[PaymentEvent]:
        body = self._authorized(
            "GET", "/api/v2/merchant/transactions/query", params={"paymentReference": reference}
        )
        if not body.get("requestSuccessful"):
            logger.info(f"Monnify could not verify reference {reference}: {body.get('responseMessage')}")
            return None

        data = body.get("responseBody") or {}
        if not data.get("paymentStatus"):
            raise GatewayError("Payment provider returned no transaction status")
        payment_status = str(data["paymentStatus"]).upper()
        reported_status = MONNIFY_PAYMENT_STATUSES.get(payment_status, payment_status.lower())
        return self._event_from_data(data, reported_status, "verify", reference)

    def parse_webhook(self, payload: Any) -> Optional[PaymentEvent]:
        if not isinstance(payload, dict):
            raise GatewayError("Webhook payload must be a JSON object")

        reported_status = MONNIFY_WEBHOOK_EVENT_STATUSES.get(payload.get("eventType"))
        if reported_status is None:
            return None

        data = payload.get("eventData")
        if not isinstance(data, dict):
            raise GatewayError("Webhook payload carries no transaction reference")
        product = data.get("product") if isinstance(data.get("product"), dict) else {}
        reference = data.get("paymentReference") or product.get("reference")
        if not reference:
            raise GatewayError("Webhook payload carries no transaction reference")
        return self._event_from_data(data, reported_status, "webhook", reference)

    def _event_from_data(self, data: dict, reported_status: str, source: str, reference: str) -> PaymentEvent:
        return PaymentEvent(
            provider=self.provider,
            reference=data.get("paymentReference") or reference,
            reported_status=reported_status,
            source=source,
            amount=_major_units(data.get("amountPaid")),
            order_id=_order_id_from_metadata(data.get("metaData")),
        )


class GatewayRegistry:
    """Provider clients keyed by provider name, with a default for new payments."""

    def __init__(self, gateways, default_provider: str = PaymentProvider.PAYSTACK.value):
        self._gateways = {gateway.provider: gateway for gateway in gateways}
        if default_provider not in self._gateways:
            raise ValueError(f"Default payment provider {default_provider} has no client")
        self.default_provider = default_provider

    def __iter__(self) -> Iterator[PaymentGateway]:
        return iter(self._gateways.values())

    @property
    def default(self) -> PaymentGateway:
        return self._gateways[self.default_provider]

    @property
    def available(self) -> list[str]:
        """Providers with credentials, in registration order."""
        return [name for name, gateway in self._gateways.items() if gateway.configured]

    def get(self, provider: Optional[str] = None) -> PaymentGateway:
        name = (provider or self.default_provider).upper()
        gateway = self._gateways.get(name)
        if gateway is None:
            raise ValidationError(f"Unsupported payment provider: {provider}")
        return gateway
