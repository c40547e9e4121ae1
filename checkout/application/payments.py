import json
from typing import Optional

from sqlalchemy.orm import Session

from checkout.domain.errors import (
    GatewayError,
    OrderNotFoundError,
    OrderNotFoundForReference,
    SignatureError,
    ValidationError,
)
from checkout.domain.models import OrderStatus, PaymentStatus
from checkout.domain.pricing import money
from checkout.infrastructure.gateway import GatewayRegistry
from checkout.infrastructure.repository import OrderRepository
from shared.core import get_logger
from shared.core.logging_config import set_request_context
from .reconciler import Outcome, PaymentReconciler
from .schemas import PaymentInitialize, PaymentInitializeRead, PaymentVerifyRead, WebhookAck
from .webhooks import WebhookVerifier

logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        db: Session,
        gateways: GatewayRegistry,
        verifiers: Optional[dict[str, WebhookVerifier]] = None,
        default_callback_url: Optional[str] = None,
        currency: str = "NGN",
    ):
        self.db = db
        self.gateways = gateways
        self.verifiers = verifiers or {}
        self.default_callback_url = default_callback_url
        self.currency = currency
        self.orders = OrderRepository(db)
        self.reconciler = PaymentReconciler(db)

    def initialize(self, data: PaymentInitialize) -> PaymentInitializeRead:
        order = self.orders.get(data.order_id)
        if not order:
            raise OrderNotFoundError(data.order_id)

        if order.payment_status == PaymentStatus.PAID:
            raise ValidationError("Order has already been paid")
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError("Order has been cancelled")
        if data.amount is not None and money(data.amount) != money(order.total):
            raise ValidationError(f"Amount does not match the order total of {money(order.total):,.2f}")
        gateway = self.gateways.get(data.provider.value if data.provider else None)

        # an attempt is already open for this order: hand back the same one,
        # whichever provider it was opened with
        if (
            order.payment_reference
            and order.payment_status == PaymentStatus.PENDING
            and order.payment_authorization_url
        ):
            logger.info(f"Order {order.id} already has an open {order.payment_provider} payment attempt")
            return self._open_attempt(order)

        # nothing is written unless the provider accepts the transaction
        transaction = gateway.initialize(
            order_id=order.id,
            payer_email=data.email,
            amount=order.total,
            callback_url=data.callback_url or self.default_callback_url,
            currency=self.currency,
        )
        set_request_context(payment_reference=transaction.reference)

        attached = self.orders.attach_payment_reference(
            order.id, transaction.reference, gateway.provider, transaction.authorization_url
        )
        self.db.commit()
        self.db.refresh(order)

        if not attached:
            # a concurrent initialization stored its attempt first
            logger.warning(
                f"Order {order.id} payment attempt {transaction.reference} discarded; "
                f"keeping {order.payment_reference}"
            )
            if order.payment_status == PaymentStatus.PAID or not order.payment_authorization_url:
                raise ValidationError("Order payment is already in progress")
            return self._open_attempt(order)

        logger.info(
            f"Payment initialized for order {order.id}",
            extra={'extra_fields': {'order_id': order.id, 'provider': gateway.provider}},
        )
        return PaymentInitializeRead(
            order_id=order.id,
            authorization_url=transaction.authorization_url,
            reference=transaction.reference,
            provider=gateway.provider,
        )

    def _open_attempt(self, order) -> PaymentInitializeRead:
        return PaymentInitializeRead(
            order_id=order.id,
            authorization_url=order.payment_authorization_url,
            reference=order.payment_reference,
            provider=order.payment_provider or self.gateways.default_provider,
        )

    def verify(self, reference: str, provider: Optional[str] = None) -> PaymentVerifyRead:
        """
        Browser-return path. A timeout propagates and leaves the order untouched.

        The provider that issued a stored reference is always the one asked;
        ``provider`` only matters for references no order holds.
        """
        set_request_context(payment_reference=reference)
        order = self.orders.get_by_reference(reference)
        gateway = self.gateways.get(order.payment_provider if order and order.payment_provider else provider)

        event = gateway.verify(reference)
        if event is None:
            return PaymentVerifyRead(
                success=False,
                order_id=order.id if order else None,
                status="unknown",
                provider=gateway.provider,
                payment_status=order.payment_status if order else None,
                order_status=order.status if order else None,
            )

        result = self.reconciler.apply(event)
        return PaymentVerifyRead(
            success=result.payment_status == PaymentStatus.PAID,
            order_id=result.order_id,
            status=event.reported_status,
            provider=gateway.provider,
            payment_status=result.payment_status,
            order_status=result.status,
        )

    def handle_webhook(self, provider: str, raw_body: bytes, signature: Optional[str]) -> WebhookAck:
        """
        Authenticate and apply one provider notification.

        Only a bad signature is refused. Anything signed is acknowledged so
        the provider stops redelivering; what happened is in the outcome.
        """
        gateway = self.gateways.get(provider)
        verifier = self.verifiers.get(gateway.provider)
        if verifier is None or not verifier.verify_signature(raw_body, signature):
            logger.warning(
                f"Rejected {gateway.provider} webhook with invalid signature",
                extra={'extra_fields': {'has_signature': bool(signature)}, 'security_event': True},
            )
            raise SignatureError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body)
            event = gateway.parse_webhook(payload)
        except (ValueError, GatewayError) as e:
            reason = e.message if isinstance(e, GatewayError) else "body is not valid JSON"
            logger.warning(
                f"Signed {gateway.provider} webhook could not be read: {reason}",
                extra={'extra_fields': {'provider': gateway.provider, 'body_bytes': len(raw_body)}},
            )
            return WebhookAck(outcome=Outcome.MALFORMED.value)

        if event is None:
            kind = payload.get("event") or payload.get("eventType")
            logger.info(f"Unhandled {gateway.provider} webhook event: {kind}")
            return WebhookAck(outcome=Outcome.IGNORED.value)

        try:
            result = self.reconciler.apply(event)
        except OrderNotFoundForReference:
            # acknowledged so the provider stops redelivering; recorded for review
            return WebhookAck(outcome=Outcome.UNKNOWN_ORDER.value)
        return WebhookAck(outcome=result.outcome.value)
