"""
Order persistence.

The repository is the only place that writes ``orders.payment_status``.
Status changes are conditional UPDATEs keyed on the current value, so two
requests racing on the same order cannot both move it: the loser sees a
rowcount of zero.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from checkout.domain.models import (
    Order,
    OrderStatus,
    PaymentEventLog,
    PaymentStatus,
    utcnow,
)


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def get(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self.db.scalars(
            select(Order).options(selectinload(Order.items)).where(Order.order_number == order_number)
        ).first()

    def get_by_reference(self, reference: str) -> Optional[Order]:
        return self.db.scalars(select(Order).where(Order.payment_reference == reference)).first()

    def list_orders(
        self,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], int]:
        filters = []
        if status:
            filters.append(Order.status == status)
        if customer_id is not None:
            filters.append(Order.customer_id == customer_id)
        query = select(Order).where(*filters)
        count_query = select(func.count(Order.id)).where(*filters)

        items = self.db.scalars(
            query.options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(items), self.db.scalar(count_query)

    def next_order_number(self, now: Optional[datetime] = None) -> str:
        """Sequential order number in the format ORD-YYYY-NNNNN."""
        year = (now or utcnow()).year
        count = self.db.scalar(
            select(func.count(Order.id)).where(Order.order_number.like(f"ORD-{year}-%"))
        )
        return f"ORD-{year}-{(count + 1):05d}"

    def attach_payment_reference(
        self, order_id: int, reference: str, provider: str, authorization_url: Optional[str]
    ) -> bool:
        """
        Record a new payment attempt on an order.

        Succeeds only while the order has no reference yet, or its previous
        attempt is known to have failed; a failed order goes back to PENDING.
        """
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                or_(
                    Order.payment_reference.is_(None),
                    Order.payment_status == PaymentStatus.FAILED.value,
                ),
            )
            .values(
                payment_reference=reference,
                payment_provider=provider,
                payment_authorization_url=authorization_url,
                payment_status=PaymentStatus.PENDING.value,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_paid(self, order_id: int, paid_at: Optional[datetime] = None) -> bool:
        """PENDING -> PAID. Fulfillment moves to CONFIRMED only from PENDING."""
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value)
            .values(
                payment_status=PaymentStatus.PAID.value,
                status=case(
                    (Order.status == OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value),
                    else_=Order.status,
                ),
                paid_at=paid_at or utcnow(),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_failed(self, order_id: int) -> bool:
        """PENDING -> FAILED; fulfillment status is left alone."""
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value)
            .values(payment_status=PaymentStatus.FAILED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def transition_status(self, order_id: int, current: str, new: str) -> bool:
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(status=new, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def append_history(self, order: Order, status: str, note: Optional[str] = None) -> None:
        entry = {"status": status, "timestamp": utcnow().isoformat() + "Z"}
        if note:
            entry["note"] = note
        # reassign so the JSON column is flagged dirty
        order.status_history = [*(order.status_history or []), entry]

    def record_event(self, event: PaymentEventLog) -> PaymentEventLog:
        self.db.add(event)
        self.db.flush()
        return event

    def events_for(self, reference: str) -> list[PaymentEventLog]:
        return list(self.db.scalars(
            select(PaymentEventLog)
            .where(PaymentEventLog.reference == reference)
            .order_by(PaymentEventLog.id)
        ).all())
