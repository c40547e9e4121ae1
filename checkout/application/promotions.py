from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from checkout.domain.errors import ValidationError
from checkout.domain.models import DiscountType, Promotion, utcnow
from checkout.domain.pricing import (
    REASON_NOT_FOUND,
    PromotionResult,
    evaluate_promotion,
    money,
    naive_utc,
)
from shared.core import get_logger
from .schemas import PromotionCreate

logger = get_logger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class PromotionValidator:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Optional[Promotion]:
        return self.db.scalars(select(Promotion).where(Promotion.code == normalize_code(code))).first()

    def list_promotions(self, include_inactive: bool = False):
        query = select(Promotion).order_by(Promotion.created_at.desc())
        if not include_inactive:
            query = query.where(Promotion.is_active.is_(True))
        return self.db.scalars(query).all()

    def validate(self, code: str, order_amount, now: Optional[datetime] = None) -> PromotionResult:
        """Check a code against an order amount. Never consumes a usage slot."""
        promotion = self.get_by_code(code)
        if promotion is None:
            return PromotionResult.rejected(
                normalize_code(code), REASON_NOT_FOUND, "Promotion code not found"
            )
        return evaluate_promotion(promotion, order_amount, now or utcnow())

    def create(self, data: PromotionCreate) -> Promotion:
        code = normalize_code(data.code)
        if self.get_by_code(code) is not None:
            raise ValidationError("Promotion code already exists")
        if naive_utc(data.valid_to) <= naive_utc(data.valid_from):
            raise ValidationError("valid_to must be after valid_from")
        if data.discount_type == DiscountType.PERCENTAGE and money(data.value) > 100:
            raise ValidationError("Percentage discounts cannot exceed 100")

        promotion = Promotion(**data.model_dump(exclude={"code", "discount_type", "valid_from", "valid_to"}))
        promotion.code = code
        promotion.discount_type = DiscountType(data.discount_type).value
        promotion.valid_from = naive_utc(data.valid_from)
        promotion.valid_to = naive_utc(data.valid_to)
        self.db.add(promotion)
        self.db.commit()
        self.db.refresh(promotion)
        return promotion

    def increment_usage(self, promotion_id: int) -> None:
        """Atomic SQL increment; safe under concurrent completions."""
        self.db.execute(
            update(Promotion)
            .where(Promotion.id == promotion_id)
            .values(usage_count=Promotion.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Promotion {promotion_id} usage incremented")
