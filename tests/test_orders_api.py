from decimal import Decimal

from checkout.domain.models import OrderStatus, ProductVariant
from checkout.infrastructure.repository import OrderRepository
from helpers import amount, shipping_address


class TestQuote:
    def test_quote_uses_live_prices(self, client, catalog):
        response = client.post("/checkout/quote", json={
            "items": [
                {"variant_id": catalog["medium"].id, "quantity": 1},
                {"variant_id": catalog["xl"].id, "quantity": 1},
            ],
            "region": "lagos",
        })
        assert response.status_code == 200
        data = response.json()
        assert amount(data["subtotal"]) == Decimal("38000")
        assert amount(data["shipping_fee"]) == Decimal("1500")
        assert amount(data["total"]) == Decimal("39500")
        assert data["shipping_zone"] == "Lagos"
        assert data["promotion"] is None

    def test_quote_with_promotion_below_minimum(self, client, catalog, make_product, make_promotion):
        tee = make_product(name="Classic Cotton T-Shirt", base_price="5000", variants=(("M", "White", "0", 10),))
        make_promotion(code="WELCOME10", min_order_amount="10000", max_discount="5000")
        response = client.post("/checkout/quote", json={
            "items": [{"variant_id": tee.variants[0].id, "quantity": 1}],
            "region": "Lagos",
            "promotion_code": "WELCOME10",
        })
        data = response.json()
        assert amount(data["discount"]) == Decimal("0")
        assert amount(data["total"]) == Decimal("6500")
        assert data["promotion"]["valid"] is False
        assert data["promotion"]["reason"] == "order amount too low"

    def test_quote_unknown_region(self, client, catalog):
        response = client.post("/checkout/quote", json={
            "items": [{"variant_id": catalog["medium"].id, "quantity": 1}],
            "region": "Kano",
        })
        assert response.status_code == 400

    def test_quote_unknown_variant(self, client, catalog):
        response = client.post("/checkout/quote", json={
            "items": [{"variant_id": 9999, "quantity": 1}],
            "region": "Lagos",
        })
        assert response.status_code == 404
        assert response.json()["error"] == "VariantNotFoundError"

    def test_quote_does_not_touch_stock(self, client, db, catalog):
        client.post("/checkout/quote", json={
            "items": [{"variant_id": catalog["medium"].id, "quantity": 3}],
            "region": "Lagos",
        })
        db.expire_all()
        assert db.get(ProductVariant, catalog["medium"].id).stock == 5


class TestCreateOrder:
    def test_create_guest_order(self, client, db, catalog, make_promotion):
        make_promotion(code="FLASH25", value="25", max_discount="15000")
        data = client.post("/orders/", json={
            "items": [{"variant_id": catalog["medium"].id, "quantity": 2}],
            "shipping_address": shipping_address(),
            "promotion_code": "flash25",
        }).json()

        assert data["order_number"].startswith("ORD-")
        assert data["status"] == "PENDING"
        assert data["payment_status"] == "PENDING"
        assert amount(data["subtotal"]) == Decimal("37000")
        assert amount(data["discount"]) == Decimal("9250")
        assert amount(data["total"]) == Decimal("29250")
        assert data["promotion_code"] == "FLASH25"
        assert data["promotion"]["valid"] is True
        assert data["guest_email"] == "ada@example.com"
        assert data["shipping_address"]["city"] == "Lekki"
        assert data["items"][0]["product_name"] == "Premium Streetwear Hoodie"
        assert amount(data["items"][0]["unit_price"]) == Decimal("18500")
        assert data["status_history"][0]["status"] == "PENDING"

        db.expire_all()
        assert db.get(ProductVariant, catalog["medium"].id).stock == 3

    def test_invalid_code_proceeds_at_full_price(self, place_order):
        data = place_order(promotion_code="NOPE")
        assert amount(data["discount"]) == Decimal("0")
        assert amount(data["total"]) == Decimal("20000")
        assert data["promotion_code"] is None
        assert data["promotion"]["valid"] is False
        assert data["promotion"]["reason"] == "not found"

    def test_customer_order_has_no_guest_contact(self, place_order):
        data = place_order(customer_id=42)
        assert data["customer_id"] == 42
        assert data["guest_email"] is None

    def test_duplicate_lines_are_merged(self, client, catalog):
        variant_id = catalog["medium"].id
        data = client.post("/orders/", json={
            "items": [{"variant_id": variant_id, "quantity": 1}, {"variant_id": variant_id, "quantity": 2}],
            "shipping_address": shipping_address(),
        }).json()
        assert len(data["items"]) == 1
        assert data["items"][0]["quantity"] == 3

    def test_insufficient_stock(self, client, db, catalog):
        response = client.post("/orders/", json={
            "items": [{"variant_id": catalog["xl"].id, "quantity": 3}],
            "shipping_address": shipping_address(),
        })
        assert response.status_code == 409
        assert response.json()["error"] == "InsufficientStockError"
        db.expire_all()
        assert db.get(ProductVariant, catalog["xl"].id).stock == 2

    def test_explicit_region_overrides_address_state(self, client, catalog, make_zone):
        make_zone(name="FCT", regions=("FCT",), fee="3000")
        data = client.post("/orders/", json={
            "items": [{"variant_id": catalog["medium"].id, "quantity": 1}],
            "shipping_address": shipping_address(),
            "region": "FCT",
        }).json()
        assert amount(data["shipping_fee"]) == Decimal("3000")

    def test_empty_cart_rejected(self, client, catalog):
        response = client.post("/orders/", json={"items": [], "shipping_address": shipping_address()})
        assert response.status_code == 422

    def test_order_numbers_are_sequential(self, place_order):
        first = place_order()
        second = place_order()
        assert first["order_number"] != second["order_number"]
        assert int(second["order_number"].rsplit("-", 1)[1]) == int(first["order_number"].rsplit("-", 1)[1]) + 1


class TestReadOrders:
    def test_get_and_track(self, client, place_order):
        created = place_order()
        response = client.get(f"/orders/{created['id']}")
        assert response.status_code == 200
        assert response.json()["order_number"] == created["order_number"]

        tracked = client.get(f"/orders/track/{created['order_number']}")
        assert tracked.status_code == 200
        assert tracked.json()["status"] == "PENDING"
        assert "shipping_address" not in tracked.json()

    def test_missing_order(self, client):
        assert client.get("/orders/999").status_code == 404
        assert client.get("/orders/track/ORD-2000-00001").status_code == 404

    def test_list_with_filter(self, client, db, place_order):
        first = place_order()
        place_order()
        OrderRepository(db).transition_status(first["id"], "PENDING", "CANCELLED")
        db.commit()

        page = client.get("/orders/", params={"limit": 1}).json()
        assert page["total"] == 2
        assert page["total_pages"] == 2
        assert len(page["items"]) == 1

        cancelled = client.get("/orders/", params={"status": "CANCELLED"}).json()
        assert [o["id"] for o in cancelled["items"]] == [first["id"]]

    def test_customer_order_history(self, client, db, place_order):
        older = place_order(customer_id=42)
        place_order(customer_id=7)
        place_order()
        newer = place_order(customer_id=42)

        history = client.get("/orders/", params={"customer_id": 42}).json()
        assert history["total"] == 2
        assert [o["id"] for o in history["items"]] == [newer["id"], older["id"]]

        items, total = OrderRepository(db).list_orders(customer_id=7, status="PENDING")
        assert total == 1
        assert items[0].customer_id == 7
        assert client.get("/orders/", params={"customer_id": 999}).json()["total"] == 0


class TestStatusUpdates:
    def test_confirm_requires_payment(self, client, place_order):
        created = place_order()
        response = client.put(f"/orders/{created['id']}/status", json={"status": "CONFIRMED"})
        assert response.status_code == 409

    def test_cancel_then_nothing(self, client, place_order):
        created = place_order()
        response = client.put(f"/orders/{created['id']}/status", json={"status": "CANCELLED", "note": "customer request"})
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["status_history"][-1]["note"] == "customer request"

        again = client.put(f"/orders/{created['id']}/status", json={"status": "PROCESSING"})
        assert again.status_code == 409

    def test_fulfillment_path(self, client, db, place_order):
        created = place_order()
        repository = OrderRepository(db)
        repository.attach_payment_reference(created["id"], "R-PAID", "PAYSTACK", None)
        repository.mark_paid(created["id"])
        db.commit()

        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            response = client.put(f"/orders/{created['id']}/status", json={"status": status.value})
            assert response.status_code == 200, response.text
            assert response.json()["status"] == status.value

        cancel = client.put(f"/orders/{created['id']}/status", json={"status": "CANCELLED"})
        assert cancel.status_code == 409

    def test_unknown_status_value(self, client, place_order):
        created = place_order()
        response = client.put(f"/orders/{created['id']}/status", json={"status": "LOST"})
        assert response.status_code == 422

    def test_update_missing_order(self, client):
        response = client.put("/orders/999/status", json={"status": "CANCELLED"})
        assert response.status_code == 404


class TestTracking:
    def test_partial_tracking_update(self, client, place_order):
        created = place_order()
        response = client.put(f"/orders/{created['id']}/tracking", json={
            "tracking_number": "GIG-123",
            "carrier_name": "GIG Logistics",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["tracking_number"] == "GIG-123"

        response = client.put(f"/orders/{created['id']}/tracking", json={
            "estimated_delivery_date": "2026-11-02T09:00:00+01:00",
        })
        data = response.json()
        assert data["carrier_name"] == "GIG Logistics"
        assert data["estimated_delivery_date"].startswith("2026-11-02T08:00:00")
