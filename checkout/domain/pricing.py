"""
Order pricing.

Everything here is a pure function of its inputs: no database, no clock
unless one is passed in. Quote previews and order creation both run through
:class:`PricingEngine`, so a quote shown at checkout is exactly what the
order is created with.

Amounts are :class:`~decimal.Decimal` in the store's major currency unit,
quantized to two places.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .models import DiscountType

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Coerce ints, strings, floats and Decimals to a two-place Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def unit_price(base_price, price_adjustment=None) -> Decimal:
    """Current variant price: product base price plus the variant adjustment."""
    return money(money(base_price) + money(price_adjustment or 0))


@dataclass(frozen=True)
class PricedLine:
    variant_id: int
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class PromotionResult:
    valid: bool
    discount_amount: Decimal
    message: str
    code: Optional[str] = None
    reason: Optional[str] = None
    promotion_id: Optional[int] = None

    @classmethod
    def rejected(cls, code: Optional[str], reason: str, message: str) -> "PromotionResult":
        return cls(valid=False, discount_amount=ZERO, message=message, code=code, reason=reason)


# Rejection reasons, in the order the rules are checked
REASON_NOT_FOUND = "not found"
REASON_INACTIVE = "expired/inactive"
REASON_USAGE_LIMIT = "usage limit reached"
REASON_MIN_ORDER = "order amount too low"


def naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def evaluate_promotion(promotion, order_amount, now: datetime) -> PromotionResult:
    """
    Apply the eligibility rules to a promotion that has already been looked up.

    ``promotion`` is anything with the Promotion model's attributes. Usage is
    never consumed here.
    """
    order_amount = money(order_amount)
    code = promotion.code
    now = naive_utc(now)

    if not promotion.is_active or not (
        naive_utc(promotion.valid_from) <= now <= naive_utc(promotion.valid_to)
    ):
        return PromotionResult.rejected(
            code, REASON_INACTIVE, "This promotion has expired or is not active"
        )

    if promotion.usage_limit is not None and promotion.usage_count >= promotion.usage_limit:
        return PromotionResult.rejected(
            code, REASON_USAGE_LIMIT, "This promotion has reached its usage limit"
        )

    if promotion.min_order_amount is not None and order_amount < money(promotion.min_order_amount):
        minimum = money(promotion.min_order_amount)
        return PromotionResult.rejected(
            code, REASON_MIN_ORDER,
            f"Minimum order amount of {minimum:,.2f} required for this promotion",
        )

    value = money(promotion.value)
    if promotion.discount_type == DiscountType.PERCENTAGE.value:
        discount = order_amount * value / Decimal(100)
    else:
        discount = value
    discount = min(discount, order_amount)

    if promotion.max_discount is not None:
        discount = min(discount, money(promotion.max_discount))

    discount = money(max(discount, ZERO))
    return PromotionResult(
        valid=True,
        discount_amount=discount,
        message=f'Promotion "{promotion.name}" applied successfully',
        code=code,
        promotion_id=promotion.id,
    )


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    lines: tuple = field(default_factory=tuple)
    promotion: Optional[PromotionResult] = None


class PricingEngine:
    """Computes subtotal, discount, shipping fee and total for a cart."""

    @staticmethod
    def subtotal(lines: Iterable[PricedLine]) -> Decimal:
        return money(sum((line.line_total for line in lines), ZERO))

    def price(
        self,
        lines: Iterable[PricedLine],
        shipping_fee,
        promotion: Optional[PromotionResult] = None,
    ) -> PriceQuote:
        lines = tuple(lines)
        subtotal = self.subtotal(lines)
        shipping_fee = money(shipping_fee)

        discount = ZERO
        if promotion is not None and promotion.valid:
            discount = money(promotion.discount_amount)
        # the discount may never push the total below zero
        discount = max(ZERO, min(discount, subtotal + shipping_fee))

        total = money(subtotal - discount + shipping_fee)
        return PriceQuote(
            subtotal=subtotal,
            discount=discount,
            shipping_fee=shipping_fee,
            total=total,
            lines=lines,
            promotion=promotion,
        )
