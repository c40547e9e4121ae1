"""
Payment reconciliation.

Both the browser-return verify call and the provider webhook end up in
:meth:`PaymentReconciler.apply`. An order leaves ``PENDING`` payment status at
most once: the transition is a conditional UPDATE, and the completion side
effects (promotion usage, status history) run only for the request whose
UPDATE matched. Terminal states are never rewritten, so a late ``failed``
cannot undo ``PAID``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from checkout.domain.errors import OrderNotFoundForReference
from checkout.domain.models import (
    Order,
    OrderStatus,
    PaymentEventLog,
)
from checkout.domain.pricing import money
from checkout.infrastructure.gateway import PaymentEvent
from checkout.infrastructure.repository import OrderRepository
from shared.core import get_logger
from shared.core.logging_config import set_request_context
from .promotions import PromotionValidator

logger = get_logger(__name__)


class Outcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    AMOUNT_MISMATCH = "amount_mismatch"
    UNKNOWN_ORDER = "unknown_order"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ReconciliationResult:
    outcome: Outcome
    order_id: Optional[int]
    payment_status: Optional[str]
    status: Optional[str]


class PaymentReconciler:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.promotions = PromotionValidator(db)

    def _locate(self, event: PaymentEvent) -> Optional[Order]:
        order = self.orders.get_by_reference(event.reference)
        if order is not None:
            return order

        # the reference may not have been stored if initialization lost a race;
        # metadata is trusted only for an order without a different attempt
        if event.order_id is not None:
            order = self.orders.get(event.order_id)
            if order is not None and order.payment_reference in (None, event.reference):
                return order
        return None

    def _record(self, event: PaymentEvent, outcome: Outcome, order_id: Optional[int]) -> None:
        self.orders.record_event(PaymentEventLog(
            provider=event.provider,
            reference=event.reference,
            reported_status=event.reported_status,
            source=event.source,
            idempotency_key=event.idempotency_key,
            order_id=order_id,
            amount=event.amount,
            outcome=outcome.value,
        ))

    def apply(self, event: PaymentEvent) -> ReconciliationResult:
        set_request_context(payment_reference=event.reference)
        order = self._locate(event)

        if order is None:
            self._record(event, Outcome.UNKNOWN_ORDER, None)
            self.db.commit()
            logger.error(
                f"Payment event for unknown reference {event.reference}",
                extra={'extra_fields': {'source': event.source, 'reported_status': event.reported_status}},
            )
            raise OrderNotFoundForReference(event.reference)

        if event.succeeded:
            outcome = self._apply_success(order, event)
        elif event.failed:
            outcome = self._apply_failure(order, event)
        else:
            outcome = Outcome.IGNORED
            logger.info(f"Order {order.id}: non-terminal payment status '{event.reported_status}' ignored")

        self._record(event, outcome, order.id)
        self.db.commit()
        self.db.refresh(order)
        return ReconciliationResult(
            outcome=outcome,
            order_id=order.id,
            payment_status=order.payment_status,
            status=order.status,
        )

    def _apply_success(self, order: Order, event: PaymentEvent) -> Outcome:
        if event.amount is not None and money(event.amount) < money(order.total):
            logger.error(
                f"Order {order.id}: paid amount {event.amount} is below order total {order.total}",
                extra={'extra_fields': {'order_id': order.id, 'reference': event.reference}},
            )
            return Outcome.AMOUNT_MISMATCH

        if not self.orders.mark_paid(order.id):
            self._log_duplicate(order, event)
            return Outcome.DUPLICATE

        # this request won the transition; completion side effects run once
        self.db.refresh(order)
        if order.promotion_id is not None:
            self.promotions.increment_usage(order.promotion_id)

        if order.status == OrderStatus.CONFIRMED:
            self.orders.append_history(order, OrderStatus.CONFIRMED.value, f"Payment received ({event.source})")
        else:
            # e.g. cancelled by staff while the payment was in flight
            logger.warning(f"Order {order.id} paid while {order.status}; needs staff review")
            self.orders.append_history(order, order.status, f"Payment received while {order.status}")

        logger.info(
            f"Order {order.id} marked as PAID via {event.source}",
            extra={'extra_fields': {'order_id': order.id, 'reference': event.reference}},
        )
        return Outcome.APPLIED

    def _apply_failure(self, order: Order, event: PaymentEvent) -> Outcome:
        if not self.orders.mark_failed(order.id):
            self._log_duplicate(order, event)
            return Outcome.DUPLICATE

        self.db.refresh(order)
        self.orders.append_history(order, order.status, f"Payment failed ({event.source})")
        logger.warning(
            f"Order {order.id} payment FAILED via {event.source}",
            extra={'extra_fields': {'order_id': order.id, 'reference': event.reference}},
        )
        return Outcome.APPLIED

    def _log_duplicate(self, order: Order, event: PaymentEvent) -> None:
        # re-read: the in-session copy may predate the winning write
        self.db.refresh(order)
        logger.info(
            f"Order {order.id} already {order.payment_status}; "
            f"ignoring {event.reported_status} from {event.source}",
            extra={'extra_fields': {'order_id': order.id, 'idempotency_key': event.idempotency_key}},
        )
