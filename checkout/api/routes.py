from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from checkout.api.deps import get_order_service
from checkout.application.service import OrderService
from checkout.application.schemas import (
    OrderCreate,
    OrderCreated,
    OrderPage,
    OrderRead,
    OrderStatusUpdate,
    OrderTrackingUpdate,
    PromotionValidationRead,
    QuoteRead,
    QuoteRequest,
    TrackedOrderRead,
)
from checkout.domain.models import OrderStatus

router = APIRouter(tags=["orders"])

def _promotion_read(result) -> Optional[PromotionValidationRead]:
    if result is None:
        return None
    return PromotionValidationRead(
        valid=result.valid,
        code=result.code,
        discount_amount=result.discount_amount,
        message=result.message,
        reason=result.reason,
    )

@router.post("/checkout/quote", response_model=QuoteRead)
def quote(payload: QuoteRequest, service: OrderService = Depends(get_order_service)):
    """Price a cart for preview; nothing is stored."""
    priced, zone_name, _ = service.quote(payload)
    return QuoteRead(
        subtotal=priced.subtotal,
        discount=priced.discount,
        shipping_fee=priced.shipping_fee,
        total=priced.total,
        shipping_zone=zone_name,
        promotion=_promotion_read(priced.promotion),
    )

@router.post("/orders/", response_model=OrderCreated, status_code=201)
def create_order(payload: OrderCreate, service: OrderService = Depends(get_order_service)):
    order, priced = service.create(payload)
    created = OrderCreated.model_validate(order)
    created.promotion = _promotion_read(priced.promotion)
    return created

@router.get("/orders/", response_model=OrderPage)
def list_orders(
    status: Optional[OrderStatus] = None,
    customer_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: OrderService = Depends(get_order_service),
):
    """Admin listing; with ``customer_id`` it is that customer's order history."""
    return service.list_orders(
        status=status.value if status else None,
        customer_id=customer_id,
        page=page,
        limit=limit,
    )

@router.get("/orders/track/{order_number}", response_model=TrackedOrderRead)
def track_order(order_number: str, service: OrderService = Depends(get_order_service)):
    """Public order tracking by order number."""
    order = service.get_by_number(order_number)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order

@router.get("/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: int, service: OrderService = Depends(get_order_service)):
    order = service.get(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order

@router.put("/orders/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: int, payload: OrderStatusUpdate, service: OrderService = Depends(get_order_service)
):
    return service.update_status(order_id, payload)

@router.put("/orders/{order_id}/tracking", response_model=OrderRead)
def update_order_tracking(
    order_id: int, payload: OrderTrackingUpdate, service: OrderService = Depends(get_order_service)
):
    return service.update_tracking(order_id, payload)
