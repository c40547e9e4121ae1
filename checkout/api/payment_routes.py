from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from typing import Optional

from checkout.api.deps import get_payment_service
from checkout.application.payments import PaymentService
from checkout.application.schemas import (
    PaymentInitialize,
    PaymentInitializeRead,
    PaymentVerifyRead,
    WebhookAck,
)
from checkout.domain.models import PaymentProvider

router = APIRouter(prefix="/payments", tags=["payments"])

@router.post("/initialize", response_model=PaymentInitializeRead)
def initialize_payment(payload: PaymentInitialize, service: PaymentService = Depends(get_payment_service)):
    return service.initialize(payload)

@router.get("/verify/{reference}", response_model=PaymentVerifyRead)
def verify_payment(
    reference: str,
    provider: Optional[PaymentProvider] = None,
    service: PaymentService = Depends(get_payment_service),
):
    return service.verify(reference, provider.value if provider else None)

async def _receive_webhook(request: Request, provider: str, service: PaymentService) -> WebhookAck:
    # the signature covers the exact bytes received, so read them unparsed
    gateway = service.gateways.get(provider)
    raw_body = await request.body()
    signature = request.headers.get(gateway.signature_header)
    return await run_in_threadpool(service.handle_webhook, gateway.provider, raw_body, signature)

@router.post("/webhook", response_model=WebhookAck)
async def paystack_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    """Paystack's registered webhook URL."""
    return await _receive_webhook(request, PaymentProvider.PAYSTACK.value, service)

@router.post("/webhook/{provider}", response_model=WebhookAck)
async def provider_webhook(
    provider: str, request: Request, service: PaymentService = Depends(get_payment_service)
):
    return await _receive_webhook(request, provider, service)
