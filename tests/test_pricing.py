from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

from checkout.domain.models import DiscountType
from checkout.domain.pricing import (
    REASON_INACTIVE,
    REASON_MIN_ORDER,
    REASON_USAGE_LIMIT,
    PricedLine,
    PricingEngine,
    PromotionResult,
    evaluate_promotion,
    money,
    unit_price,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


def promotion(**overrides):
    fields = dict(
        id=1,
        code="FLASH25",
        name="Flash Sale 25% Off",
        discount_type=DiscountType.PERCENTAGE.value,
        value=Decimal("25"),
        min_order_amount=None,
        max_discount=Decimal("15000"),
        usage_limit=50,
        usage_count=0,
        valid_from=NOW - timedelta(days=1),
        valid_to=NOW + timedelta(days=6),
        is_active=True,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def line(price, quantity=1, variant_id=1):
    return PricedLine(
        variant_id=variant_id,
        product_id=1,
        product_name="Premium Streetwear Hoodie",
        unit_price=money(price),
        quantity=quantity,
    )


class TestMoney:
    def test_quantizes_half_up(self):
        assert money("10.005") == Decimal("10.01")
        assert money(7) == Decimal("7.00")
        assert money(0.1) == Decimal("0.10")

    def test_unit_price_adds_variant_adjustment(self):
        assert unit_price(Decimal("18500"), Decimal("1000")) == Decimal("19500.00")
        assert unit_price(Decimal("18500"), None) == Decimal("18500.00")

    def test_line_total(self):
        assert line("18500", quantity=3).line_total == Decimal("55500.00")


class TestEvaluatePromotion:
    def test_percentage_capped_at_max_discount(self):
        result = evaluate_promotion(promotion(), Decimal("68000"), NOW)
        assert result.valid
        assert result.discount_amount == Decimal("15000.00")
        assert result.code == "FLASH25"
        assert result.promotion_id == 1

    def test_percentage_below_cap(self):
        result = evaluate_promotion(promotion(), Decimal("20000"), NOW)
        assert result.discount_amount == Decimal("5000.00")

    def test_fixed_discount_capped_at_order_amount(self):
        fixed = promotion(discount_type=DiscountType.FIXED.value, value=Decimal("1500"), max_discount=None)
        assert evaluate_promotion(fixed, Decimal("1000"), NOW).discount_amount == Decimal("1000.00")
        assert evaluate_promotion(fixed, Decimal("20000"), NOW).discount_amount == Decimal("1500.00")

    def test_minimum_order_reason_states_minimum(self):
        welcome = promotion(code="WELCOME10", value=Decimal("10"), min_order_amount=Decimal("10000"))
        result = evaluate_promotion(welcome, Decimal("5000"), NOW)
        assert not result.valid
        assert result.reason == REASON_MIN_ORDER
        assert result.discount_amount == Decimal("0.00")
        assert "10,000.00" in result.message

    def test_expired(self):
        expired = promotion(valid_to=NOW - timedelta(seconds=1))
        assert evaluate_promotion(expired, Decimal("68000"), NOW).reason == REASON_INACTIVE

    def test_not_started(self):
        future = promotion(valid_from=NOW + timedelta(hours=1))
        assert evaluate_promotion(future, Decimal("68000"), NOW).reason == REASON_INACTIVE

    def test_inactive(self):
        assert evaluate_promotion(promotion(is_active=False), Decimal("68000"), NOW).reason == REASON_INACTIVE

    def test_usage_limit_reached(self):
        used_up = promotion(usage_count=50)
        assert evaluate_promotion(used_up, Decimal("68000"), NOW).reason == REASON_USAGE_LIMIT

    def test_rules_checked_in_order(self):
        # expired, used up and below minimum at once: the window is checked first
        everything_wrong = promotion(
            valid_to=NOW - timedelta(days=1),
            usage_count=50,
            min_order_amount=Decimal("100000"),
        )
        assert evaluate_promotion(everything_wrong, Decimal("100"), NOW).reason == REASON_INACTIVE

        used_and_small = promotion(usage_count=50, min_order_amount=Decimal("100000"))
        assert evaluate_promotion(used_and_small, Decimal("100"), NOW).reason == REASON_USAGE_LIMIT

    def test_aware_now_is_accepted(self):
        aware = NOW.replace(tzinfo=timezone.utc)
        assert evaluate_promotion(promotion(), Decimal("68000"), aware).valid


class TestPricingEngine:
    def setup_method(self):
        self.engine = PricingEngine()

    def test_flash_sale_with_free_shipping(self):
        applied = evaluate_promotion(promotion(), Decimal("68000"), NOW)
        quote = self.engine.price([line("34000", quantity=2)], Decimal("0"), applied)
        assert quote.subtotal == Decimal("68000.00")
        assert quote.discount == Decimal("15000.00")
        assert quote.shipping_fee == Decimal("0.00")
        assert quote.total == Decimal("53000.00")

    def test_total_identity(self):
        applied = evaluate_promotion(promotion(), Decimal("37000"), NOW)
        quote = self.engine.price([line("18500", 2)], Decimal("1500"), applied)
        assert quote.total == quote.subtotal - quote.discount + quote.shipping_fee
        assert quote.total == Decimal("29250.00")

    def test_invalid_promotion_is_not_applied(self):
        rejected = PromotionResult.rejected("WELCOME10", REASON_MIN_ORDER, "too low")
        quote = self.engine.price([line("5000")], Decimal("1500"), rejected)
        assert quote.discount == Decimal("0.00")
        assert quote.total == Decimal("6500.00")
        assert quote.promotion is rejected

    def test_discount_never_makes_total_negative(self):
        oversized = PromotionResult(valid=True, discount_amount=Decimal("99999"), message="ok")
        quote = self.engine.price([line("5000")], Decimal("1500"), oversized)
        assert quote.discount == Decimal("6500.00")
        assert quote.total == Decimal("0.00")

    def test_no_promotion(self):
        quote = self.engine.price([line("18500"), line("5000", 2, variant_id=2)], Decimal("2500"))
        assert quote.subtotal == Decimal("28500.00")
        assert quote.discount == Decimal("0.00")
        assert quote.total == Decimal("31000.00")
        assert len(quote.lines) == 2
