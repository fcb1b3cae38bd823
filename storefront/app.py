# storefront/app.py
from flask import Flask, request, jsonify, abort, current_app, Response

from storefront import config
from storefront.cart import CartLineItem, CartStore
from storefront.cart_storage import default_cart_storage_factory
from storefront.catalog import find_product, load_catalog, to_snapshot
from storefront.emails import Mailer, is_valid_email
from storefront.errors import ConfigError, StorefrontError, ValidationError, VendorError
from storefront.logs import get_logger, setup_logging, sync_stats
from storefront.sync import SyncHandler, fix_description_keys, remove_duplicates
from storefront.webhooks import WebhookProcessor, handle_square_webhook, handle_stripe_webhook

log = get_logger("app")


class Services:
    """Vendor, CMS and mailer for one app; built lazily so secrets are read at first use."""

    def __init__(self, vendor=None, cms=None, mailer=None, cart_storage_factory=None):
        self._vendor = vendor
        self._cms = cms
        self._mailer = mailer
        self.cart_storage_factory = cart_storage_factory or default_cart_storage_factory(config.CART_BACKEND)
        self._processors = {}

    @property
    def vendor(self):
        if self._vendor is None:
            from storefront.vendors import get_vendor
            self._vendor = get_vendor()
        return self._vendor

    @property
    def cms(self):
        if self._cms is None:
            from storefront.cms import get_cms
            self._cms = get_cms()
        return self._cms

    @property
    def mailer(self):
        if self._mailer is None:
            self._mailer = Mailer()
        return self._mailer

    def sync(self, vendor=None):
        return SyncHandler(vendor or self.vendor, self.cms)

    def webhook_processor(self, vendor_name):
        if vendor_name not in self._processors:
            vendor = self.vendor
            if vendor.name != vendor_name:
                from storefront.vendors import get_vendor
                vendor = get_vendor(vendor_name)
            self._processors[vendor_name] = WebhookProcessor(vendor, self.sync(vendor), self.mailer)
        return self._processors[vendor_name]


def services() -> Services:
    return current_app.extensions["storefront"]


def open_cart():
    notes = []
    cart = CartStore(services().cart_storage_factory(),
                     notifier=lambda level, message, description: notes.append(
                         {"level": level, "message": message, "description": description}))
    return cart, notes


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


def int_field(data, name, default=None):
    value = data.get(name, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def create_app(vendor=None, cms=None, mailer=None, cart_storage_factory=None, testing=False):
    app = Flask(__name__)
    app.secret_key = config.SECRET
    app.config["TESTING"] = testing
    app.extensions["storefront"] = Services(vendor, cms, mailer, cart_storage_factory)
    if not testing:
        setup_logging()

    # --------------------------- CATALOG ---------------------------
    @app.get("/api/products")
    def products_list():
        products = load_catalog(services().vendor, services().cms)
        return jsonify({"products": [p.to_dict() for p in products]})

    @app.get("/api/products/<product_id>")
    def product_detail(product_id):
        p = find_product(load_catalog(services().vendor, services().cms), product_id)
        if not p:
            abort(404)
        return jsonify(p.to_dict())

    # --------------------------- CART ---------------------------
    @app.get("/api/cart")
    def cart_view():
        cart, _ = open_cart()
        return jsonify(cart.to_dict())

    @app.post("/api/cart/items")
    def cart_add():
        data = json_body()
        product_id = data.get("product_id")
        variant_id = data.get("variant_id")
        qty = int_field(data, "quantity", 1)
        if not product_id or not variant_id:
            raise ValidationError("product_id and variant_id are required")
        if qty < 1:
            raise ValidationError("quantity must be at least 1")

        p = find_product(load_catalog(services().vendor, services().cms), product_id)
        if not p:
            abort(404)
        variant = next((v for v in p.variants if v.variant_id == variant_id), None)
        if not variant:
            abort(404)

        cart, notes = open_cart()
        if not p.inventory.available:
            notes.append({"level": "error", "message": f"{p.name} is out of stock", "description": ""})
            return jsonify({**cart.to_dict(), "notifications": notes}), 409

        line = cart.add_item(CartLineItem(
            product_id=p.vendor_product_id,
            variant_id=variant.variant_id,
            unit_price_cents=variant.unit_price_cents,
            quantity=qty,
            base_units=variant.base_units,
            name=p.name,
            size_nickname=variant.nickname or "",
            image_url=p.primary_image_url or None,
        ), total_base_units=p.inventory.total_base_units)

        in_cart = line.quantity if line else 0
        if line is None or line.max_quantity is not None and in_cart < qty:
            notes.append({"level": "warning",
                          "message": f"Only {in_cart} of {p.name} ({variant.nickname}) fit in your cart",
                          "description": "Limited stock is shared across all sizes."})
        return jsonify({**cart.to_dict(), "notifications": notes})

    @app.patch("/api/cart/items/<line_id>")
    def cart_update(line_id):
        qty = int_field(json_body(), "quantity")
        cart, notes = open_cart()
        if not cart.get(line_id):
            abort(404)
        line = cart.update_quantity(line_id, qty)
        if line and line.quantity < qty:
            notes.append({"level": "warning",
                          "message": f"{line.label} quantity limited to {line.quantity}",
                          "description": "Limited stock is shared across all sizes."})
        return jsonify({**cart.to_dict(), "notifications": notes})

    @app.delete("/api/cart/items/<line_id>")
    def cart_remove(line_id):
        cart, _ = open_cart()
        cart.remove_item(line_id)
        return jsonify(cart.to_dict())

    @app.delete("/api/cart")
    def cart_clear():
        cart, _ = open_cart()
        cart.clear()
        return jsonify(cart.to_dict())

    @app.post("/api/cart/validate")
    def cart_validate():
        cart, notes = open_cart()
        if cart.items:
            products = load_catalog(services().vendor, services().cms)
            report = cart.validate(to_snapshot(products))
            return jsonify({**cart.to_dict(), "notifications": notes,
                            "removed": report.removed,
                            "adjusted": [a.to_dict() for a in report.adjusted]})
        return jsonify({**cart.to_dict(), "notifications": [], "removed": [], "adjusted": []})

    # --------------------------- CHECKOUT ---------------------------
    @app.post("/api/checkout")
    def checkout():
        data = request.get_json(silent=True) or {}
        items = []
        for it in data.get("items") or []:
            if not isinstance(it, dict) or not it.get("variant_id"):
                raise ValidationError("each item needs a variant_id")
            qty = int_field(it, "quantity", 1)
            if qty < 1:
                raise ValidationError("quantity must be at least 1")
            items.append((it["variant_id"], qty))
        if not items:
            cart, _ = open_cart()
            items = cart.checkout_items()
        if not items:
            return jsonify({"error": "No items provided"}), 400

        base = request.headers.get("Origin") or config.PUBLIC_BASE_URL
        cs = services().vendor.create_checkout_session(
            items, success_url=f"{base}/checkout/success", cancel_url=f"{base}/checkout/cancel")
        log.info(f"Checkout session {cs.id} created for {len(items)} line(s)")
        return jsonify({"url": cs.url, "session_id": cs.id})

    @app.get("/api/orders/<order_id>")
    def order_lookup(order_id):
        order = services().vendor.retrieve_order(order_id)
        if not order:
            return jsonify({"error": "Order not found"}), 404
        return jsonify(order.to_dict())

    # --------------------------- CONTACT ---------------------------
    @app.post("/api/contact")
    def contact():
        data = json_body()
        fields = {k: (data.get(k) or "").strip() for k in ("name", "email", "subject", "message")}
        if not all(fields.values()):
            return jsonify({"error": "All fields are required"}), 400
        if not is_valid_email(fields["email"]):
            return jsonify({"error": "Invalid email address"}), 400
        result = services().mailer.send_contact_message(**fields)
        if not result.success:
            return jsonify({"error": "Failed to send email"}), 500
        return jsonify({"success": True, "message_id": result.message_id})

    # --------------------------- MAINTENANCE ---------------------------
    @app.post("/api/maintenance/fix-descriptions")
    def maintenance_fix_descriptions():
        try:
            fixed = fix_description_keys(services().cms)
        except StorefrontError as e:
            log.error(f"Error fixing product descriptions: {e}")
            return jsonify({"success": False, "error": "Failed to fix product descriptions"}), 500
        return jsonify({"success": True, "fixed": fixed})

    @app.post("/api/maintenance/cleanup-duplicates")
    def maintenance_cleanup_duplicates():
        try:
            removed = remove_duplicates(services().cms)
        except StorefrontError as e:
            log.error(f"Error cleaning up duplicates: {e}")
            return jsonify({"success": False, "error": "Failed to clean up duplicates"}), 500
        return jsonify({"success": True, "removed": removed})

    # --------------------------- WEBHOOKS ---------------------------
    @app.post("/webhooks/stripe")
    def stripe_webhook():
        status, body = handle_stripe_webhook(request.get_data(), request.headers,
                                             processor=services().webhook_processor("stripe"))
        return jsonify(body), status

    @app.post("/webhooks/square")
    def square_webhook():
        status, body = handle_square_webhook(request.get_data(), request.headers,
                                             processor=services().webhook_processor("square"))
        return jsonify(body), status

    # --------------------------- MISC ---------------------------
    @app.get("/api/health")
    def health():
        return jsonify({"status": "ok", "sync_failures": sync_stats.as_dict()})

    @app.get("/media/<asset_id>")
    def media(asset_id):
        get_image = getattr(services().cms, "get_image", None)
        found = get_image(asset_id) if get_image else None
        if not found:
            abort(404)
        data, content_type = found
        return Response(data, mimetype=content_type)

    # --------------------------- ERRORS ---------------------------
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(ValidationError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ConfigError)
    def config_error(e):
        log.error(str(e))
        return jsonify({"error": "Server configuration error"}), 500

    @app.errorhandler(VendorError)
    def vendor_error(e):
        log.error(f"Vendor error: {e}")
        return jsonify({"error": str(e)}), 502

    from storefront.cli import register_commands
    register_commands(app)
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=3000, debug=True)
