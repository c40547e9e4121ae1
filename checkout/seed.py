"""Load reference data: shipping zones, launch promotions and a small catalog.

Run with ``python -m checkout.seed``. Rows that already exist (matched by
zone name, promotion code or product name) are left alone.
"""

from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from checkout.core_settings import get_settings
from checkout.domain.models import (
    DiscountType,
    Product,
    ProductVariant,
    Promotion,
    ShippingZone,
    utcnow,
)
from checkout.infrastructure.db import build_engine, build_session_factory, init_models
from shared.core import get_logger, setup_logging

logger = get_logger(__name__)

SHIPPING_ZONES = [
    ("Lagos", ["Lagos"], "1500"),
    ("South West", ["Ogun", "Oyo", "Osun", "Ondo", "Ekiti"], "2500"),
    ("FCT", ["FCT", "Abuja"], "3000"),
    ("South East", ["Anambra", "Enugu", "Imo", "Abia", "Ebonyi"], "3500"),
    ("South South", ["Rivers", "Delta", "Edo", "Cross River", "Akwa Ibom", "Bayelsa"], "3500"),
]

PROMOTIONS = [
    # code, name, type, value, min order, max discount, usage limit, days valid
    ("WELCOME10", "Welcome Discount", DiscountType.PERCENTAGE, "10", "10000", "5000", 1000, 365),
    ("FREESHIP", "Free Shipping", DiscountType.FIXED, "1500", "20000", None, 500, 30),
    ("FLASH25", "Flash Sale 25% Off", DiscountType.PERCENTAGE, "25", None, "15000", 50, 7),
]

PRODUCTS = [
    ("Premium Streetwear Hoodie", "18500", [("M", "Black", "0", 25), ("L", "Black", "0", 20), ("XL", "Black", "1000", 10)]),
    ("Classic Cotton T-Shirt", "5000", [("S", "White", "0", 50), ("M", "White", "0", 50), ("L", "Navy", "500", 30)]),
]


def seed(db: Session) -> dict:
    created = {"zones": 0, "promotions": 0, "products": 0}
    now = utcnow()

    existing_zones = set(db.scalars(select(ShippingZone.name)).all())
    for name, regions, fee in SHIPPING_ZONES:
        if name not in existing_zones:
            db.add(ShippingZone(name=name, regions=regions, fee=Decimal(fee), is_active=True))
            created["zones"] += 1

    existing_codes = set(db.scalars(select(Promotion.code)).all())
    for code, name, kind, value, minimum, cap, limit, days in PROMOTIONS:
        if code in existing_codes:
            continue
        db.add(Promotion(
            code=code,
            name=name,
            discount_type=kind.value,
            value=Decimal(value),
            min_order_amount=Decimal(minimum) if minimum else None,
            max_discount=Decimal(cap) if cap else None,
            usage_limit=limit,
            usage_count=0,
            valid_from=now,
            valid_to=now + timedelta(days=days),
            is_active=True,
        ))
        created["promotions"] += 1

    existing_products = set(db.scalars(select(Product.name)).all())
    for name, base_price, variants in PRODUCTS:
        if name in existing_products:
            continue
        db.add(Product(
            name=name,
            base_price=Decimal(base_price),
            variants=[
                ProductVariant(size=size, color=color, price_adjustment=Decimal(adj), stock=stock)
                for size, color, adj, stock in variants
            ],
        ))
        created["products"] += 1

    db.commit()
    logger.info("Seed data loaded", extra={'extra_fields': created})
    return created


def main() -> None:
    settings = get_settings()
    setup_logging(service_name="checkout-seed", level=settings.LOG_LEVEL)
    engine = build_engine(settings.database_url)
    init_models(engine)
    with build_session_factory(engine)() as db:
        seed(db)
    engine.dispose()


if __name__ == "__main__":
    main()
