from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from math import ceil
from typing import Optional

from checkout.domain.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationError,
    VariantNotFoundError,
)
from checkout.domain.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    ProductVariant,
)
from checkout.domain.pricing import PricedLine, PriceQuote, PricingEngine, naive_utc, unit_price
from checkout.infrastructure.repository import OrderRepository
from shared.core import get_logger
from .promotions import PromotionValidator
from .schemas import CartItem, OrderCreate, OrderStatusUpdate, OrderTrackingUpdate, QuoteRequest
from .shipping import ShippingZoneResolver

logger = get_logger(__name__)

# Fulfillment moves forward only; CANCELLED is reachable before SHIPPED
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

ORDER_NUMBER_ATTEMPTS = 5


class OrderService:
    def __init__(self, db: Session, currency: str = "NGN"):
        self.db = db
        self.currency = currency
        self.orders = OrderRepository(db)
        self.promotions = PromotionValidator(db)
        self.shipping = ShippingZoneResolver(db)
        self.pricing = PricingEngine()

    def get(self, order_id: int) -> Optional[Order]:
        return self.orders.get(order_id)

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self.orders.get_by_number(order_number)

    def list_orders(
        self,
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        items, total = self.orders.list_orders(status=status, customer_id=customer_id, page=page, limit=limit)
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": ceil(total / limit) if limit else 0,
        }

    def _merge_cart(self, items: list[CartItem]) -> dict[int, int]:
        """Variant id -> total quantity, in first-seen order."""
        merged: dict[int, int] = {}
        for item in items:
            merged[item.variant_id] = merged.get(item.variant_id, 0) + item.quantity
        return merged

    def _price_lines(self, cart: dict[int, int]) -> list[PricedLine]:
        """Read live variant prices; a cached or client-supplied price is never used."""
        variants = {
            variant.id: variant
            for variant in self.db.scalars(
                select(ProductVariant)
                .options(selectinload(ProductVariant.product))
                .where(ProductVariant.id.in_(list(cart)))
            ).all()
        }

        lines = []
        for variant_id, quantity in cart.items():
            variant = variants.get(variant_id)
            if variant is None:
                raise VariantNotFoundError(variant_id)
            if variant.stock < quantity:
                raise InsufficientStockError(
                    f"Insufficient stock for {variant.product.name} ({variant.size}/{variant.color})"
                )
            lines.append(PricedLine(
                variant_id=variant.id,
                product_id=variant.product_id,
                product_name=variant.product.name,
                unit_price=unit_price(variant.product.base_price, variant.price_adjustment),
                quantity=quantity,
                size=variant.size,
                color=variant.color,
            ))
        return lines

    def quote(self, data: QuoteRequest) -> tuple[PriceQuote, str, int]:
        """Price a cart without side effects. Returns (quote, zone name, zone id)."""
        return self._quote(data.items, data.region, data.promotion_code)

    def _quote(self, items: list[CartItem], region: str, promotion_code: Optional[str]):
        lines = self._price_lines(self._merge_cart(items))
        zone = self.shipping.resolve(region)

        promotion = None
        if promotion_code and promotion_code.strip():
            promotion = self.promotions.validate(promotion_code, PricingEngine.subtotal(lines))

        return self.pricing.price(lines, zone.fee, promotion), zone.name, zone.id

    def create(self, data: OrderCreate) -> tuple[Order, PriceQuote]:
        if data.customer_id is None and not (data.guest_email or data.shipping_address.email):
            raise ValidationError("Guest orders need a contact email")

        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                order, quote = self._create_once(data)
                self.db.commit()
            except IntegrityError:
                # another checkout took the same order number
                self.db.rollback()
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Order number collision, retrying (attempt {attempt})")
                continue
            except Exception:
                self.db.rollback()
                raise
            break

        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number} created",
            extra={'extra_fields': {
                'order_id': order.id,
                'total': str(order.total),
                'promotion_code': order.promotion_code,
            }},
        )
        return order, quote

    def _create_once(self, data: OrderCreate) -> tuple[Order, PriceQuote]:
        region = data.region or data.shipping_address.state
        quote, _, zone_id = self._quote(data.items, region, data.promotion_code)

        # total = subtotal - discount + shipping is fixed here and never recomputed
        if quote.total != quote.subtotal - quote.discount + quote.shipping_fee or quote.total < 0:
            raise ValidationError("Order totals are inconsistent")

        for line in quote.lines:
            decremented = self.db.execute(
                update(ProductVariant)
                .where(ProductVariant.id == line.variant_id, ProductVariant.stock >= line.quantity)
                .values(stock=ProductVariant.stock - line.quantity)
                .execution_options(synchronize_session=False)
            )
            if decremented.rowcount != 1:
                raise InsufficientStockError(f"Insufficient stock for {line.product_name}")

        promotion = quote.promotion if quote.promotion and quote.promotion.valid else None
        address = data.shipping_address.model_dump()
        order = Order(
            order_number=self.orders.next_order_number(),
            customer_id=data.customer_id,
            guest_email=None if data.customer_id is not None else (data.guest_email or address["email"]),
            guest_phone=None if data.customer_id is not None else (data.guest_phone or address["phone"]),
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=quote.subtotal,
            discount=quote.discount,
            shipping_fee=quote.shipping_fee,
            total=quote.total,
            currency=self.currency,
            shipping_address=address,
            shipping_zone_id=zone_id,
            promotion_id=promotion.promotion_id if promotion else None,
            promotion_code=promotion.code if promotion else None,
            status_history=[],
            items=[
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=line.product_name,
                    variant_size=line.size,
                    variant_color=line.color,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                )
                for line in quote.lines
            ],
        )
        self.orders.append_history(order, OrderStatus.PENDING.value, "Order placed")
        self.orders.add(order)
        return order, quote

    def update_status(self, order_id: int, data: OrderStatusUpdate) -> Order:
        order = self.get(order_id)
        if not order:
            raise OrderNotFoundError(order_id)

        current = OrderStatus(order.status)
        requested = OrderStatus(data.status)
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, requested.value)
        # payment confirmation is the reconciler's job
        if requested == OrderStatus.CONFIRMED and order.payment_status != PaymentStatus.PAID:
            raise InvalidTransitionError(current.value, requested.value)

        if not self.orders.transition_status(order.id, current.value, requested.value):
            self.db.rollback()
            raise InvalidTransitionError(current.value, requested.value)

        self.db.refresh(order)
        self.orders.append_history(order, requested.value, data.note)
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} moved from {current.value} to {requested.value}")
        return order

    def update_tracking(self, order_id: int, data: OrderTrackingUpdate) -> Order:
        order = self.get(order_id)
        if not order:
            raise OrderNotFoundError(order_id)

        # Update only provided fields
        if data.tracking_number is not None:
            order.tracking_number = data.tracking_number
        if data.carrier_name is not None:
            order.carrier_name = data.carrier_name
        if data.estimated_delivery_date is not None:
            order.estimated_delivery_date = naive_utc(data.estimated_delivery_date)

        self.db.commit()
        self.db.refresh(order)
        return order
