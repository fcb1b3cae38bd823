"""Test the JSON API endpoints."""

from storefront.emails import EmailResult
from storefront.vendors.base import ORDER_COMPLETED, VendorEvent


def add(client, variant_id, quantity=1, product_id="prod_1"):
    return client.post("/api/cart/items", json={"product_id": product_id, "variant_id": variant_id,
                                                "quantity": quantity})


class TestProductsEndpoint:
    def test_list_products(self, client):
        response = client.get("/api/products")
        assert response.status_code == 200
        [product] = response.json["products"]
        assert product["id"] == "stripe-prod_1"
        assert product["inventory"] == {"quantity": 100, "available": True}
        assert [p["base_units"] for p in product["prices"]] == [1, 2, 4]

    def test_product_detail_by_either_id(self, client, cms):
        cms.create_if_not_exists({"_id": "stripe-product-prod_1", "vendorProductId": "prod_1",
                                  "name": "Editorial", "price": 1500})
        assert client.get("/api/products/prod_1").json["name"] == "Editorial"
        assert client.get("/api/products/stripe-product-prod_1").json["source"] == "cms"

    def test_unknown_product_is_json_404(self, client):
        response = client.get("/api/products/nope")
        assert response.status_code == 404
        assert response.json == {"error": "Not found"}


class TestCartEndpoints:
    def test_empty_cart(self, client):
        assert client.get("/api/cart").json == {"items": [], "total_items": 0, "total_price_cents": 0}

    def test_add_and_allocation(self, client):
        add(client, "price_4oz", 10)
        response = add(client, "price_1lb", 1)
        assert response.status_code == 200
        items = {i["variant_id"]: i for i in response.json["items"]}
        assert items["price_1lb"]["max_quantity"] == 22
        assert items["price_4oz"]["max_quantity"] == 96

    def test_add_over_limit_is_clamped_with_notice(self, client):
        response = add(client, "price_1lb", 40)
        [item] = response.json["items"]
        assert item["quantity"] == 25
        assert response.json["notifications"][0]["level"] == "warning"

    def test_out_of_stock_is_409(self, client, vendor):
        vendor.set_inventory("prod_1", 0)
        response = add(client, "price_4oz")
        assert response.status_code == 409
        assert response.json["items"] == []

    def test_unknown_variant_is_404(self, client):
        assert add(client, "price_gone").status_code == 404

    def test_bad_quantity_is_400(self, client):
        assert add(client, "price_4oz", "many").status_code == 400
        assert add(client, "price_4oz", 0).status_code == 400

    def test_update_and_remove(self, client):
        add(client, "price_8oz", 1)
        response = client.patch("/api/cart/items/prod_1-price_8oz", json={"quantity": 80})
        assert response.json["items"][0]["quantity"] == 50
        assert response.json["notifications"]

        response = client.delete("/api/cart/items/prod_1-price_8oz")
        assert response.json["items"] == []

    def test_update_missing_line_is_404(self, client):
        assert client.patch("/api/cart/items/nope", json={"quantity": 1}).status_code == 404

    def test_clear(self, client):
        add(client, "price_4oz", 2)
        assert client.delete("/api/cart").json["total_items"] == 0

    def test_validate_after_stock_drop(self, client, vendor):
        add(client, "price_1lb", 25)
        vendor.set_inventory("prod_1", 40)
        response = client.post("/api/cart/validate")
        assert response.json["items"][0]["quantity"] == 10
        assert response.json["adjusted"] == [{"name": "Classic Beef Jerky (1 lb)", "from": 25, "to": 10}]
        assert response.json["notifications"][0]["message"] == "Cart quantities updated"

    def test_validate_removes_sold_out(self, client, vendor):
        add(client, "price_4oz", 2)
        vendor.set_inventory("prod_1", 0)
        response = client.post("/api/cart/validate")
        assert response.json["items"] == []
        assert response.json["removed"] == ["Classic Beef Jerky (4oz)"]


class TestCheckout:
    def test_checkout_from_cart(self, client, vendor):
        add(client, "price_8oz", 2)
        response = client.post("/api/checkout")
        assert response.json == {"url": "https://checkout.example/cs_test_1", "session_id": "cs_test_1"}
        items, success_url, _ = vendor.checkout_calls[0]
        assert items == [("price_8oz", 2)]
        assert success_url.endswith("/checkout/success")

    def test_checkout_with_explicit_items(self, client, vendor):
        client.post("/api/checkout", json={"items": [{"variant_id": "price_4oz", "quantity": 3}]})
        assert vendor.checkout_calls[0][0] == [("price_4oz", 3)]

    def test_empty_checkout_is_400(self, client):
        assert client.post("/api/checkout", json={}).status_code == 400

    def test_order_lookup(self, client, vendor, order):
        vendor.orders[order.id] = order
        response = client.get(f"/api/orders/{order.id}")
        assert response.json == {"total": 4797, "customer_email": "buyer@example.com",
                                 "item_count": 3, "state": "paid"}
        assert client.get("/api/orders/missing").status_code == 404


class TestContact:
    FORM = {"name": "Sam", "email": "sam@example.com", "subject": "Wholesale", "message": "Hello"}

    def test_sends_message(self, client, mailer):
        response = client.post("/api/contact", json=self.FORM)
        assert response.json == {"success": True, "message_id": "msg_1"}
        mailer.send_contact_message.assert_called_once_with(**self.FORM)

    def test_missing_field(self, client):
        assert client.post("/api/contact", json={**self.FORM, "message": " "}).status_code == 400

    def test_invalid_email(self, client):
        response = client.post("/api/contact", json={**self.FORM, "email": "sam@nowhere"})
        assert response.json == {"error": "Invalid email address"}

    def test_send_failure_is_500(self, client, mailer):
        mailer.send_contact_message.return_value = EmailResult(False, error="HTTP 500")
        assert client.post("/api/contact", json=self.FORM).status_code == 500


class TestMaintenance:
    def test_fix_descriptions(self, client, cms):
        cms.create_if_not_exists({"_id": "d", "vendorProductId": "p", "name": "P",
                                  "description": [{"_type": "block", "children": []}]})
        assert client.post("/api/maintenance/fix-descriptions").json == {"success": True, "fixed": 1}

    def test_cleanup_duplicates(self, client, cms):
        cms.create_if_not_exists({"_id": "a", "vendorProductId": "p", "name": "A"})
        cms.create_if_not_exists({"_id": "b", "vendorProductId": "p", "name": "B"})
        assert client.post("/api/maintenance/cleanup-duplicates").json == {"success": True, "removed": 1}


class TestWebhookAndHealth:
    def test_stripe_webhook_route(self, client, vendor, order):
        vendor.orders[order.id] = order
        vendor.events.append(VendorEvent("evt_1", ORDER_COMPLETED, order.id, {}))
        response = client.post("/webhooks/stripe", data=b"{}", headers={"X-Test-Signature": "ok"})
        assert response.status_code == 200
        assert vendor.products["prod_1"].inventory.total_base_units == 95

    def test_stripe_webhook_rejects_unsigned(self, client):
        assert client.post("/webhooks/stripe", data=b"{}").status_code == 400

    def test_health(self, client):
        body = client.get("/api/health").json
        assert body["status"] == "ok"
        assert "by_kind" in body["sync_failures"]

    def test_media(self, client, cms):
        asset = cms.upload_image(b"GIF89a", "image/gif", "x.gif")
        response = client.get(asset["url"])
        assert response.status_code == 200
        assert response.data == b"GIF89a"
        assert response.mimetype == "image/gif"


class TestServerSideCart:
    def test_cart_survives_in_database(self, vendor, cms, mailer):
        from sqlalchemy.orm import Session

        from storefront.app import create_app
        from storefront.cart_storage import SqlCartStorage
        from storefront.db import make_engine
        from storefront.models import Base

        engine = make_engine("sqlite://")
        Base.metadata.create_all(engine)
        app = create_app(vendor=vendor, cms=cms, mailer=mailer, testing=True,
                         cart_storage_factory=lambda: SqlCartStorage("cart-1", lambda: Session(engine)))

        add(app.test_client(), "price_8oz", 2)
        # a fresh client has no cookie, the cart comes from the database
        assert app.test_client().get("/api/cart").json["total_items"] == 2

    def test_vendor_inventory_lookup(self, vendor):
        assert vendor.get_inventory("prod_1").total_base_units == 100
        assert vendor.get_inventory("missing") is None
