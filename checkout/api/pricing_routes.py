from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from checkout.application.promotions import PromotionValidator
from checkout.application.shipping import ShippingZoneResolver
from checkout.application.schemas import (
    PromotionCreate,
    PromotionRead,
    PromotionValidate,
    PromotionValidationRead,
    ShippingResolveRead,
    ShippingZoneCreate,
    ShippingZoneRead,
)
from checkout.infrastructure.db import get_db

promotions_router = APIRouter(prefix="/promotions", tags=["promotions"])
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])

@promotions_router.get("/", response_model=list[PromotionRead])
def list_promotions(include_inactive: bool = False, db: Session = Depends(get_db)):
    return PromotionValidator(db).list_promotions(include_inactive=include_inactive)

@promotions_router.post("/", response_model=PromotionRead, status_code=201)
def create_promotion(payload: PromotionCreate, db: Session = Depends(get_db)):
    return PromotionValidator(db).create(payload)

@promotions_router.post("/validate", response_model=PromotionValidationRead)
def validate_promotion(payload: PromotionValidate, db: Session = Depends(get_db)):
    result = PromotionValidator(db).validate(payload.code, payload.order_amount)
    return PromotionValidationRead(
        valid=result.valid,
        code=result.code,
        discount_amount=result.discount_amount,
        message=result.message,
        reason=result.reason,
    )

@shipping_router.get("/zones", response_model=list[ShippingZoneRead])
def list_zones(db: Session = Depends(get_db)):
    return ShippingZoneResolver(db).list_active()

@shipping_router.post("/zones", response_model=ShippingZoneRead, status_code=201)
def create_zone(payload: ShippingZoneCreate, db: Session = Depends(get_db)):
    return ShippingZoneResolver(db).create_zone(payload)

@shipping_router.get("/resolve/{region}", response_model=ShippingResolveRead)
def resolve_region(region: str, db: Session = Depends(get_db)):
    zone = ShippingZoneResolver(db).resolve(region)
    return ShippingResolveRead(region=region, zone_id=zone.id, zone_name=zone.name, fee=zone.fee)
