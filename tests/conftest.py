"""
Shared fixtures for the checkout service test suite.

The database is an in-memory SQLite engine shared between the test session
and the application; the payment providers are replaced by
``httpx.MockTransport`` handlers.
"""

import base64
import json
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from checkout.core_settings import Settings
from checkout.domain.models import (
    DiscountType,
    Product,
    ProductVariant,
    Promotion,
    ShippingZone,
    utcnow,
)
from checkout.infrastructure.db import build_engine, build_session_factory, init_models
from checkout.infrastructure.gateway import GatewayRegistry, MonnifyClient, PaystackClient
from checkout.main import create_app
from helpers import MONNIFY_API_KEY, MONNIFY_CONTRACT, MONNIFY_SECRET, SECRET_KEY, shipping_address


class FakePaystack:
    """In-memory stand-in for the Paystack transaction API."""

    def __init__(self):
        self.requests = []
        self.transactions = {}
        self.initialize_response = None
        self.timeout = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)

        path = request.url.path
        if request.method == "POST" and path == "/transaction/initialize":
            if self.initialize_response is not None:
                return httpx.Response(200, json=self.initialize_response)
            body = json.loads(request.content)
            reference = body["reference"]
            self.transactions[reference] = {
                "reference": reference,
                "amount": body["amount"],
                "currency": body["currency"],
                "status": "ongoing",
                "metadata": body["metadata"],
            }
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": f"https://checkout.paystack.com/{reference}",
                    "access_code": f"ac_{reference}",
                    "reference": reference,
                },
            })

        if request.method == "GET" and path.startswith("/transaction/verify/"):
            reference = path.rsplit("/", 1)[-1]
            transaction = self.transactions.get(reference)
            if transaction is None:
                return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})
            return httpx.Response(200, json={
                "status": True,
                "message": "Verification successful",
                "data": transaction,
            })

        return httpx.Response(404, json={"status": False, "message": "Not found"})

    def settle(self, reference: str, status: str = "success", amount=None):
        self.transactions[reference]["status"] = status
        if amount is not None:
            self.transactions[reference]["amount"] = amount

    @property
    def initialize_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path == "/transaction/initialize")


class FakeMonnify:
    """In-memory stand-in for the Monnify merchant API."""

    TOKEN = "monnify-access-token"

    def __init__(self):
        self.requests = []
        self.transactions = {}
        self.initialize_response = None
        self.timeout = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.timeout:
            raise httpx.ReadTimeout("timed out", request=request)

        path = request.url.path
        if request.method == "POST" and path == "/api/v1/auth/login":
            credentials = base64.b64encode(f"{MONNIFY_API_KEY}:{MONNIFY_SECRET}".encode()).decode()
            if request.headers.get("Authorization") != f"Basic {credentials}":
                return httpx.Response(401, json={"requestSuccessful": False, "responseMessage": "Invalid credentials"})
            return httpx.Response(200, json={
                "requestSuccessful": True,
                "responseMessage": "success",
                "responseBody": {"accessToken": self.TOKEN, "expiresIn": 3599},
            })

        if request.headers.get("Authorization") != f"Bearer {self.TOKEN}":
            return httpx.Response(401, json={"requestSuccessful": False, "responseMessage": "Unauthorized"})

        if request.method == "POST" and path == "/api/v1/merchant/transactions/init-transaction":
            if self.initialize_response is not None:
                return httpx.Response(200, json=self.initialize_response)
            body = json.loads(request.content)
            reference = body["paymentReference"]
            self.transactions[reference] = {
                "paymentReference": reference,
                "transactionReference": f"MNFY|{reference}",
                "totalPayable": body["amount"],
                "amountPaid": "0.00",
                "paymentStatus": "PENDING",
                "metaData": body["metaData"],
            }
            return httpx.Response(200, json={
                "requestSuccessful": True,
                "responseMessage": "success",
                "responseBody": {
                    "transactionReference": f"MNFY|{reference}",
                    "paymentReference": reference,
                    "checkoutUrl": f"https://sandbox.sdk.monnify.com/checkout/{reference}",
                },
            })

        if request.method == "GET" and path == "/api/v2/merchant/transactions/query":
            transaction = self.transactions.get(request.url.params.get("paymentReference"))
            if transaction is None:
                return httpx.Response(404, json={
                    "requestSuccessful": False,
                    "responseMessage": "Transaction not found",
                    "responseCode": "99",
                })
            return httpx.Response(200, json={
                "requestSuccessful": True,
                "responseMessage": "success",
                "responseBody": transaction,
            })

        return httpx.Response(404, json={"requestSuccessful": False, "responseMessage": "Not found"})

    def settle(self, reference: str, status: str = "PAID", amount_paid=None):
        transaction = self.transactions[reference]
        transaction["paymentStatus"] = status
        if amount_paid is None:
            amount_paid = transaction["totalPayable"] if status == "PAID" else "0.00"
        transaction["amountPaid"] = amount_paid

    @property
    def initialize_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith("/init-transaction"))


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = build_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def paystack():
    return FakePaystack()


@pytest.fixture
def gateway(paystack):
    return PaystackClient(secret_key=SECRET_KEY, transport=httpx.MockTransport(paystack))


@pytest.fixture
def monnify():
    return FakeMonnify()


@pytest.fixture
def monnify_gateway(monnify):
    return MonnifyClient(
        api_key=MONNIFY_API_KEY,
        secret_key=MONNIFY_SECRET,
        contract_code=MONNIFY_CONTRACT,
        transport=httpx.MockTransport(monnify),
    )


@pytest.fixture
def gateways(gateway, monnify_gateway):
    return GatewayRegistry([gateway, monnify_gateway])


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        PAYSTACK_SECRET_KEY=SECRET_KEY,
        MONNIFY_API_KEY=MONNIFY_API_KEY,
        MONNIFY_SECRET_KEY=MONNIFY_SECRET,
        MONNIFY_CONTRACT_CODE=MONNIFY_CONTRACT,
    )


@pytest.fixture
def app(settings, engine, gateways):
    return create_app(settings, engine=engine, gateways=gateways, configure_logging=False)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_product(db):
    def _make(name="Premium Streetwear Hoodie", base_price="18500", variants=(("M", "Black", "0", 25),)):
        product = Product(
            name=name,
            base_price=Decimal(base_price),
            variants=[
                ProductVariant(size=size, color=color, price_adjustment=Decimal(adj), stock=stock)
                for size, color, adj, stock in variants
            ],
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def make_zone(db):
    def _make(name="Lagos", regions=("Lagos",), fee="1500", is_active=True):
        zone = ShippingZone(name=name, regions=list(regions), fee=Decimal(fee), is_active=is_active)
        db.add(zone)
        db.commit()
        db.refresh(zone)
        return zone
    return _make


@pytest.fixture
def make_promotion(db):
    def _make(
        code="WELCOME10",
        discount_type=DiscountType.PERCENTAGE,
        value="10",
        min_order_amount=None,
        max_discount=None,
        usage_limit=None,
        usage_count=0,
        is_active=True,
        valid_from=None,
        valid_to=None,
    ):
        now = utcnow()
        promotion = Promotion(
            code=code,
            name=f"{code} promotion",
            discount_type=discount_type.value,
            value=Decimal(value),
            min_order_amount=Decimal(min_order_amount) if min_order_amount is not None else None,
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            usage_limit=usage_limit,
            usage_count=usage_count,
            valid_from=valid_from or now - timedelta(days=1),
            valid_to=valid_to or now + timedelta(days=30),
            is_active=is_active,
        )
        db.add(promotion)
        db.commit()
        db.refresh(promotion)
        return promotion
    return _make


@pytest.fixture
def catalog(make_product, make_zone):
    """A hoodie with two variants and a Lagos shipping zone."""
    hoodie = make_product(variants=(("M", "Black", "0", 5), ("XL", "Black", "1000", 2)))
    medium, xl = sorted(hoodie.variants, key=lambda v: v.id)
    zone = make_zone()
    return {"product": hoodie, "medium": medium, "xl": xl, "zone": zone}


@pytest.fixture
def place_order(client, catalog):
    """Create an order through the API and return its JSON body."""
    def _place(quantity=1, promotion_code=None, variant=None, **extra):
        payload = {
            "items": [{"variant_id": (variant or catalog["medium"]).id, "quantity": quantity}],
            "shipping_address": shipping_address(),
            **extra,
        }
        if promotion_code:
            payload["promotion_code"] = promotion_code
        response = client.post("/orders/", json=payload)
        assert response.status_code == 201, response.text
        return response.json()
    return _place
