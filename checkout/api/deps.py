from fastapi import Depends, Request
from sqlalchemy.orm import Session

from checkout.application.payments import PaymentService
from checkout.application.service import OrderService
from checkout.infrastructure.db import get_db

def get_order_service(request: Request, db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db, currency=request.app.state.settings.CURRENCY)

def get_payment_service(request: Request, db: Session = Depends(get_db)) -> PaymentService:
    state = request.app.state
    return PaymentService(
        db,
        gateways=state.gateways,
        verifiers=state.webhook_verifiers,
        default_callback_url=state.settings.PAYMENT_CALLBACK_URL,
        currency=state.settings.CURRENCY,
    )
