# storefront/vendors/stripe_vendor.py
"""Stripe adapter.

Stock lives in the product metadata as ``stock`` (base units); every price
carries its size multiplier in metadata as ``base_units``.
"""
import os

import stripe

from storefront import config
from storefront.errors import ConfigError, SignatureError, VendorError
from storefront.inventory import InventoryPool, PriceVariant, infer_base_units, parse_positive_int
from storefront.logs import get_logger
from storefront.vendors.base import (
    ORDER_COMPLETED, PAYMENT_FAILED, PRICE_CHANGED,
    PRODUCT_CREATED, PRODUCT_DELETED, PRODUCT_UPDATED,
    CheckoutSession, OrderLine, OrderSummary, PaymentVendorPort, VendorEvent, VendorProduct,
)

log = get_logger("stripe")

EVENT_TYPES = {
    "product.created": PRODUCT_CREATED,
    "product.updated": PRODUCT_UPDATED,
    "product.deleted": PRODUCT_DELETED,
    "price.created": PRICE_CHANGED,
    "price.updated": PRICE_CHANGED,
    "checkout.session.completed": ORDER_COMPLETED,
    "payment_intent.payment_failed": PAYMENT_FAILED,
}


def _as_dict(obj) -> dict:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _get(obj, name, default=None):
    return getattr(obj, name, default) if obj is not None else default


class StripeVendor(PaymentVendorPort):
    name = "stripe"

    def __init__(self, api_key=None, webhook_secret=None):
        stripe.api_key = api_key or config.require("STRIPE_SECRET_KEY")
        self._webhook_secret = webhook_secret

    # ---------- catalog ----------
    def _variant(self, price) -> PriceVariant:
        metadata = _as_dict(_get(price, "metadata"))
        return PriceVariant(
            variant_id=price.id,
            nickname=_get(price, "nickname"),
            unit_price_cents=_get(price, "unit_amount") or 0,
            base_units=infer_base_units(_get(price, "nickname"), metadata),
            currency=_get(price, "currency") or "usd",
            metadata=metadata,
        )

    def _prices(self, product_id):
        prices = stripe.Price.list(product=product_id, active=True, limit=100)
        return [self._variant(p) for p in prices.auto_paging_iter()]

    def _to_product(self, product) -> VendorProduct:
        metadata = _as_dict(_get(product, "metadata"))
        default_price = _get(product, "default_price")
        if default_price is not None and not isinstance(default_price, str):
            default_price = default_price.id
        return VendorProduct(
            id=product.id,
            name=_get(product, "name") or "",
            description=_get(product, "description"),
            variants=self._prices(product.id),
            images=list(_get(product, "images") or []),
            inventory=InventoryPool.from_stock(product.id, metadata.get("stock")),
            active=bool(_get(product, "active", True)),
            metadata=metadata,
            default_variant_id=default_price,
        )

    def list_products(self, include_inactive=False):
        try:
            params = {"limit": 100}
            if not include_inactive:
                params["active"] = True
            products = [self._to_product(p) for p in stripe.Product.list(**params).auto_paging_iter()]
        except stripe.StripeError as e:
            log.error(f"Error fetching Stripe products: {e}")
            raise VendorError(str(e)) from e
        # a product without any price can't be sold
        return [p for p in products if p.variants or include_inactive]

    def get_product(self, product_id):
        try:
            product = stripe.Product.retrieve(product_id)
        except stripe.InvalidRequestError:
            return None
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e
        return self._to_product(product)

    # ---------- inventory ----------
    def set_inventory(self, product_id, quantity):
        try:
            stripe.Product.modify(product_id, metadata={"stock": str(max(0, int(quantity)))})
        except stripe.StripeError as e:
            log.error(f"Error updating inventory for product {product_id}: {e}")
            raise VendorError(str(e)) from e

    def decrement_inventory(self, product_id, variant_id, quantity=1):
        try:
            product = stripe.Product.retrieve(product_id)
            price = stripe.Price.retrieve(variant_id)
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e
        base_units = infer_base_units(_get(price, "nickname"), _as_dict(_get(price, "metadata")))
        current = parse_positive_int(_as_dict(product.metadata).get("stock"), allow_zero=True) or 0
        new_quantity = max(0, current - quantity * base_units)
        self.set_inventory(product_id, new_quantity)
        return new_quantity

    def set_variant_base_units(self, variant_id, base_units):
        try:
            stripe.Price.modify(variant_id, metadata={"base_units": str(base_units)})
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e

    def set_product_metadata(self, product_id, metadata):
        try:
            stripe.Product.modify(product_id, metadata={k: str(v) for k, v in metadata.items()})
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e

    def archive_product(self, product_id):
        try:
            stripe.Product.modify(product_id, active=False)
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e

    def create_product(self, name, description, images, variants, stock):
        try:
            params = {"name": name, "images": list(images or [])[:8]}
            if description:
                params["description"] = description
            if stock is not None:
                params["metadata"] = {"stock": str(stock)}
            product = stripe.Product.create(**params)
            first = None
            for v in variants:
                price = stripe.Price.create(
                    product=product.id,
                    unit_amount=v.unit_price_cents,
                    currency=v.currency.lower(),
                    nickname=v.nickname,
                    metadata={"base_units": str(v.base_units)},
                )
                first = first or price.id
            if first:
                stripe.Product.modify(product.id, default_price=first)
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e
        return self.get_product(product.id)

    # ---------- checkout ----------
    def create_checkout_session(self, items, success_url, cancel_url):
        line_items = [{"price": variant_id, "quantity": qty} for variant_id, qty in items]
        try:
            cs = stripe.checkout.Session.create(
                mode="payment",
                line_items=line_items,
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                shipping_address_collection={"allowed_countries": ["US"]},
                payment_intent_data={"metadata": {"source": config.SITE_NAME}},
            )
        except stripe.StripeError as e:
            log.error(f"Stripe checkout create failed: {e}")
            raise VendorError(str(e)) from e
        if not cs.url:
            raise VendorError("Failed to create checkout session")
        return CheckoutSession(id=cs.id, url=cs.url)

    def retrieve_order(self, order_id):
        try:
            cs = stripe.checkout.Session.retrieve(order_id, expand=["line_items.data.price.product"])
        except stripe.InvalidRequestError:
            return None
        except stripe.StripeError as e:
            raise VendorError(str(e)) from e

        lines = []
        line_items = _get(cs, "line_items")
        for item in (_get(line_items, "data") or []):
            price = _get(item, "price")
            product = _get(price, "product")
            if product is not None and not isinstance(product, str):
                product = product.id
            lines.append(OrderLine(
                product_id=product,
                variant_id=_get(price, "id"),
                name=_get(item, "description") or "Unknown Product",
                quantity=_get(item, "quantity") or 1,
                amount_cents=_get(item, "amount_total") or 0,
                size=_get(price, "nickname"),
            ))
        details = _get(cs, "customer_details")
        shipping = _get(_get(cs, "shipping_details"), "address") or _get(details, "address")
        cost = _get(cs, "shipping_cost")
        return OrderSummary(
            id=cs.id,
            total_cents=_get(cs, "amount_total") or 0,
            customer_email=_get(details, "email"),
            customer_name=_get(details, "name"),
            item_count=sum(line.quantity for line in lines),
            currency=_get(cs, "currency") or "usd",
            shipping_cents=_get(cost, "amount_total") or 0,
            shipping_address=_as_dict(shipping) if shipping else None,
            lines=lines,
            state=_get(cs, "payment_status"),
        )

    # ---------- webhooks ----------
    def parse_event(self, body, headers):
        sig = headers.get("Stripe-Signature")
        if not sig:
            raise SignatureError("Missing stripe-signature header")
        secret = self._webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")
        if not secret:
            raise ConfigError("STRIPE_WEBHOOK_SECRET is not configured")
        try:
            event = stripe.Webhook.construct_event(body, sig, secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            log.warning(f"Stripe webhook signature failure: {e}")
            raise SignatureError("Invalid signature") from e

        obj = event.data.object
        kind = EVENT_TYPES.get(event.type, event.type)
        object_id = _get(obj, "id")
        if kind == PRICE_CHANGED:
            product = _get(obj, "product")
            object_id = product if isinstance(product, str) else _get(product, "id")
        return VendorEvent(id=event.id, type=kind, object_id=object_id, data=_as_dict(obj))
