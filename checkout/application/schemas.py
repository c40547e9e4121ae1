from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from checkout.domain.models import DiscountType, OrderStatus, PaymentProvider

class CartItem(BaseModel):
    variant_id: int
    quantity: int = Field(ge=1)

class ShippingAddress(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    landmark: Optional[str] = None

class QuoteRequest(BaseModel):
    items: list[CartItem] = Field(min_length=1)
    region: str = Field(min_length=1)
    promotion_code: Optional[str] = None

class PromotionValidate(BaseModel):
    code: str = Field(min_length=1)
    order_amount: Decimal = Field(ge=0)

class PromotionValidationRead(BaseModel):
    valid: bool
    code: Optional[str] = None
    discount_amount: Decimal
    message: str
    reason: Optional[str] = None

class QuoteRead(BaseModel):
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    shipping_zone: str
    promotion: Optional[PromotionValidationRead] = None

class OrderCreate(BaseModel):
    items: list[CartItem] = Field(min_length=1)
    shipping_address: ShippingAddress
    # Defaults to the shipping address state
    region: Optional[str] = None
    promotion_code: Optional[str] = None
    customer_id: Optional[int] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: Optional[str] = None

class OrderTrackingUpdate(BaseModel):
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    variant_id: int
    product_name: str
    variant_size: Optional[str] = None
    variant_color: Optional[str] = None
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    id: int
    order_number: str
    customer_id: Optional[int] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    status: str
    payment_status: str
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    total: Decimal
    currency: str
    shipping_address: dict
    shipping_zone_id: Optional[int] = None
    promotion_code: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_provider: Optional[str] = None
    paid_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    status_history: list[dict] = []
    created_at: datetime
    items: list[OrderItemRead]
    class Config:
        from_attributes = True

class OrderCreated(OrderRead):
    # Outcome of the promotion code supplied at checkout, if any
    promotion: Optional[PromotionValidationRead] = None

class OrderPage(BaseModel):
    items: list[OrderRead]
    total: int
    page: int
    limit: int
    total_pages: int

class TrackedOrderRead(BaseModel):
    order_number: str
    status: str
    payment_status: str
    total: Decimal
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    status_history: list[dict] = []
    created_at: datetime
    items: list[OrderItemRead]
    class Config:
        from_attributes = True

class PaymentInitialize(BaseModel):
    order_id: int
    email: str = Field(min_length=3)
    # When given it must equal the order total; the order total is what gets charged
    amount: Optional[Decimal] = None
    callback_url: Optional[str] = None
    # None picks the configured default provider
    provider: Optional[PaymentProvider] = None

class PaymentInitializeRead(BaseModel):
    order_id: int
    authorization_url: str
    reference: str
    provider: str

class PaymentVerifyRead(BaseModel):
    success: bool
    order_id: Optional[int] = None
    status: str
    provider: Optional[str] = None
    payment_status: Optional[str] = None
    order_status: Optional[str] = None

class WebhookAck(BaseModel):
    received: bool = True
    outcome: str

class PromotionCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1)
    discount_type: DiscountType
    value: Decimal = Field(gt=0)
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_discount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=1)
    valid_from: datetime
    valid_to: datetime
    is_active: bool = True

class PromotionRead(BaseModel):
    id: int
    code: str
    name: str
    discount_type: str
    value: Decimal
    min_order_amount: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int
    valid_from: datetime
    valid_to: datetime
    is_active: bool
    class Config:
        from_attributes = True

class ShippingZoneCreate(BaseModel):
    name: str = Field(min_length=1)
    regions: list[str] = Field(min_length=1)
    fee: Decimal = Field(ge=0)
    is_active: bool = True

class ShippingZoneRead(BaseModel):
    id: int
    name: str
    regions: list[str]
    fee: Decimal
    is_active: bool
    class Config:
        from_attributes = True

class ShippingResolveRead(BaseModel):
    region: str
    zone_id: int
    zone_name: str
    fee: Decimal
