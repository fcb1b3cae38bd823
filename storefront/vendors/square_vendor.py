# storefront/vendors/square_vendor.py
"""Square adapter over the Square REST API.

Square counts stock per variation; the product pool is the sum of its
variations' IN_STOCK counts, unless the item carries a ``stock`` custom
attribute which then wins.
"""
import base64
import hashlib
import hmac
import json
import os
import uuid
from datetime import datetime, timezone

import requests

from storefront import config
from storefront.errors import ConfigError, SignatureError, ValidationError, VendorError
from storefront.inventory import InventoryPool, PriceVariant, infer_base_units, parse_positive_int
from storefront.logs import get_logger
from storefront.vendors.base import (
    CATALOG_UPDATED, INVENTORY_UPDATED, ORDER_COMPLETED, PAYMENT_FAILED,
    CheckoutSession, OrderLine, OrderSummary, PaymentVendorPort, VendorEvent, VendorProduct,
)

log = get_logger("square")

SQUARE_VERSION = "2024-10-17"
BASE_URLS = {
    "production": "https://connect.squareup.com",
    "sandbox": "https://connect.squareupsandbox.com",
}


def _now():
    return datetime.now(timezone.utc).isoformat()


def _key(prefix):
    return f"{prefix}-{uuid.uuid4().hex}"


def _custom_attrs(obj) -> dict:
    out = {}
    for key, value in (obj.get("custom_attribute_values") or {}).items():
        name = value.get("key") or key
        if value.get("string_value") is not None:
            out[name] = value["string_value"]
        elif value.get("number_value") is not None:
            out[name] = value["number_value"]
    return out


class SquareVendor(PaymentVendorPort):
    name = "square"

    def __init__(self, access_token=None, location_id=None, environment=None, session=None):
        self.access_token = access_token or config.require("SQUARE_ACCESS_TOKEN")
        self.location_id = location_id or config.require("SQUARE_LOCATION_ID")
        env = (environment or config.SQUARE_ENVIRONMENT).lower()
        self.base_url = BASE_URLS.get(env, BASE_URLS["sandbox"])
        self.http = session or requests.Session()
        self.http.headers.update({
            "Authorization": f"Bearer {self.access_token}",
            "Square-Version": SQUARE_VERSION,
            "Content-Type": "application/json",
        })

    # ---------- http ----------
    def _request(self, method, path, **kwargs):
        try:
            r = self.http.request(method, self.base_url + path, timeout=config.HTTP_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            raise VendorError(f"Square {method} {path} failed: {e}") from e
        if r.status_code == 404:
            return None
        if not r.ok:
            raise VendorError(f"Square {method} {path} returned {r.status_code}: {r.text[:300]}")
        return r.json() if r.content else {}

    def _post(self, path, payload):
        return self._request("POST", path, json=payload) or {}

    # ---------- catalog ----------
    def _list_items(self):
        items, cursor = [], None
        while True:
            params = {"types": "ITEM"}
            if cursor:
                params["cursor"] = cursor
            data = self._request("GET", "/v2/catalog/list", params=params) or {}
            items.extend(data.get("objects") or [])
            cursor = data.get("cursor")
            if not cursor:
                return items

    def _batch_retrieve(self, object_ids):
        if not object_ids:
            return []
        data = self._post("/v2/catalog/batch-retrieve", {"object_ids": list(object_ids)})
        return data.get("objects") or []

    def _counts(self, variation_ids) -> dict:
        if not variation_ids:
            return {}
        data = self._post("/v2/inventory/counts/batch-retrieve", {
            "catalog_object_ids": list(variation_ids),
            "location_ids": [self.location_id],
        })
        counts = {}
        for c in data.get("counts") or []:
            if c.get("state", "IN_STOCK") != "IN_STOCK":
                continue
            qty = parse_positive_int(c.get("quantity"), allow_zero=True) or 0
            counts[c["catalog_object_id"]] = counts.get(c["catalog_object_id"], 0) + qty
        return counts

    def _to_products(self, items, include_inactive=False):
        variation_ids, image_ids = [], []
        for item in items:
            data = item.get("item_data") or {}
            variation_ids.extend(v["id"] for v in data.get("variations") or [] if v.get("id"))
            image_ids.extend(data.get("image_ids") or [])
        counts = self._counts(variation_ids)
        images = {
            obj["id"]: obj["image_data"]["url"]
            for obj in self._batch_retrieve(image_ids)
            if (obj.get("image_data") or {}).get("url")
        }

        products = []
        for item in items:
            data = item.get("item_data") or {}
            active = not item.get("is_deleted") and not data.get("is_archived")
            if not active and not include_inactive:
                continue
            variants, total = [], 0
            for v in data.get("variations") or []:
                vdata = v.get("item_variation_data") or {}
                money = vdata.get("price_money") or {}
                attrs = _custom_attrs(v)
                variants.append(PriceVariant(
                    variant_id=v["id"],
                    nickname=vdata.get("name"),
                    unit_price_cents=int(money.get("amount") or 0),
                    base_units=infer_base_units(vdata.get("name"), attrs),
                    currency=(money.get("currency") or "USD").lower(),
                    metadata=attrs,
                ))
                total += counts.get(v["id"], 0)
            metadata = _custom_attrs(item)
            stock = parse_positive_int(metadata.get("stock"), allow_zero=True)
            quantity = stock if stock is not None else total
            if not variants and not include_inactive:
                continue
            products.append(VendorProduct(
                id=item["id"],
                name=data.get("name") or "Unnamed Product",
                description=data.get("description"),
                variants=variants,
                images=[images[i] for i in data.get("image_ids") or [] if i in images],
                inventory=InventoryPool(item["id"], quantity, quantity > 0),
                active=active,
                metadata=metadata,
                default_variant_id=variants[0].variant_id if variants else None,
            ))
        return products

    def list_products(self, include_inactive=False):
        return self._to_products(self._list_items(), include_inactive)

    def get_product(self, product_id):
        data = self._request("GET", f"/v2/catalog/object/{product_id}")
        if not data or data.get("object", {}).get("type") != "ITEM":
            return None
        found = self._to_products([data["object"]], include_inactive=True)
        return found[0] if found else None

    # ---------- inventory ----------
    def _change(self, changes):
        self._post("/v2/inventory/changes/batch-create", {
            "idempotency_key": _key("inv"),
            "changes": changes,
        })

    def set_inventory(self, product_id, quantity):
        product = self.get_product(product_id)
        if not product or not product.variants:
            raise VendorError(f"Square item {product_id} not found")
        # whole pool sits on the first variation, the rest are zeroed
        changes = []
        for i, v in enumerate(product.variants):
            changes.append({
                "type": "PHYSICAL_COUNT",
                "physical_count": {
                    "catalog_object_id": v.variant_id,
                    "location_id": self.location_id,
                    "quantity": str(max(0, int(quantity)) if i == 0 else 0),
                    "state": "IN_STOCK",
                    "occurred_at": _now(),
                },
            })
        self._change(changes)

    def decrement_inventory(self, product_id, variant_id, quantity=1):
        product = self.get_product(product_id)
        if not product:
            raise VendorError(f"Square item {product_id} not found")
        variant = next((v for v in product.variants if v.variant_id == variant_id), None)
        if not variant:
            raise VendorError(f"Variation {variant_id} not found")
        needed = quantity * variant.base_units
        counts = self._counts(product.variant_ids)
        # take from the purchased variation first, then its siblings
        order = [variant_id] + [v for v in product.variant_ids if v != variant_id]
        changes = []
        for vid in order:
            if needed <= 0:
                break
            take = min(needed, counts.get(vid, 0))
            if take <= 0:
                continue
            needed -= take
            changes.append({
                "type": "ADJUSTMENT",
                "adjustment": {
                    "catalog_object_id": vid,
                    "location_id": self.location_id,
                    "quantity": str(take),
                    "from_state": "IN_STOCK",
                    "to_state": "SOLD",
                    "occurred_at": _now(),
                },
            })
        if changes:
            self._change(changes)
        return max(0, sum(counts.values()) - quantity * variant.base_units)

    def _upsert(self, obj):
        data = self._post("/v2/catalog/object", {"idempotency_key": _key("obj"), "object": obj})
        return data

    def _set_attributes(self, object_id, values: dict):
        data = self._request("GET", f"/v2/catalog/object/{object_id}")
        if not data:
            raise VendorError(f"Catalog object {object_id} not found")
        obj = data["object"]
        attrs = obj.setdefault("custom_attribute_values", {})
        for key, value in values.items():
            attrs[key] = {"key": key, "type": "STRING", "string_value": str(value)}
        self._upsert(obj)

    def set_variant_base_units(self, variant_id, base_units):
        self._set_attributes(variant_id, {"base_units": base_units})

    def set_product_metadata(self, product_id, metadata):
        self._set_attributes(product_id, metadata)

    def archive_product(self, product_id):
        data = self._request("GET", f"/v2/catalog/object/{product_id}")
        if not data:
            return
        obj = data["object"]
        obj.setdefault("item_data", {})["is_archived"] = True
        self._upsert(obj)

    def create_product(self, name, description, images, variants, stock):
        variations = []
        for i, v in enumerate(variants):
            variations.append({
                "type": "ITEM_VARIATION",
                "id": f"#variation-{i}",
                "item_variation_data": {
                    "name": v.nickname or f"Option {i + 1}",
                    "pricing_type": "FIXED_PRICING",
                    "price_money": {"amount": v.unit_price_cents, "currency": v.currency.upper()},
                    "track_inventory": True,
                },
                "custom_attribute_values": {
                    "base_units": {"key": "base_units", "type": "STRING", "string_value": str(v.base_units)},
                },
            })
        item = {
            "type": "ITEM",
            "id": "#item",
            "item_data": {"name": name, "description": description or "", "variations": variations},
        }
        data = self._upsert(item)
        new_id = data["catalog_object"]["id"]
        if images:
            log.info(f"Square item {new_id}: images must be attached in the dashboard ({len(images)} skipped)")
        if stock is not None:
            self.set_inventory(new_id, stock)
        return self.get_product(new_id)

    # ---------- checkout ----------
    def create_checkout_session(self, items, success_url, cancel_url):
        data = self._post("/v2/online-checkout/payment-links", {
            "idempotency_key": _key("order"),
            "order": {
                "location_id": self.location_id,
                "line_items": [
                    {"catalog_object_id": variant_id, "quantity": str(qty)}
                    for variant_id, qty in items
                ],
                "metadata": {"source": config.SITE_NAME},
            },
            "checkout_options": {
                "redirect_url": success_url,
                "ask_for_shipping_address": True,
            },
        })
        link = data.get("payment_link") or {}
        if not link.get("url"):
            raise VendorError("Failed to create checkout session")
        return CheckoutSession(id=link.get("order_id") or link.get("id"), url=link["url"])

    def retrieve_order(self, order_id):
        data = self._request("GET", f"/v2/orders/{order_id}")
        if not data or not data.get("order"):
            return None
        order = data["order"]
        variation_ids = [li["catalog_object_id"] for li in order.get("line_items") or [] if li.get("catalog_object_id")]
        item_of = {
            obj["id"]: (obj.get("item_variation_data") or {}).get("item_id")
            for obj in self._batch_retrieve(variation_ids)
        }
        lines = []
        for li in order.get("line_items") or []:
            lines.append(OrderLine(
                product_id=item_of.get(li.get("catalog_object_id")),
                variant_id=li.get("catalog_object_id"),
                name=li.get("name") or "Unknown Product",
                quantity=parse_positive_int(li.get("quantity"), allow_zero=True) or 0,
                amount_cents=int((li.get("total_money") or {}).get("amount") or 0),
                size=li.get("variation_name"),
            ))
        recipient = ((order.get("fulfillments") or [{}])[0].get("shipment_details") or {}).get("recipient") or {}
        total = order.get("total_money") or {}
        return OrderSummary(
            id=order["id"],
            total_cents=int(total.get("amount") or 0),
            customer_email=recipient.get("email_address"),
            customer_name=recipient.get("display_name"),
            item_count=sum(line.quantity for line in lines),
            currency=(total.get("currency") or "USD").lower(),
            shipping_cents=int((order.get("total_service_charge_money") or {}).get("amount") or 0),
            shipping_address=recipient.get("address"),
            lines=lines,
            state=order.get("state"),
        )

    # ---------- webhooks ----------
    @staticmethod
    def sign(body: bytes, key: str, notification_url: str) -> str:
        digest = hmac.new(key.encode(), notification_url.encode() + body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def parse_event(self, body, headers):
        sig = headers.get("x-square-hmacsha256-signature")
        if not sig:
            raise SignatureError("Missing signature header")
        key = os.getenv("SQUARE_WEBHOOK_SIGNATURE_KEY")
        if not key:
            raise ConfigError("SQUARE_WEBHOOK_SIGNATURE_KEY is not configured")
        url = os.getenv("SQUARE_WEBHOOK_URL") or f"{config.PUBLIC_BASE_URL}/webhooks/square"
        if isinstance(body, str):
            body = body.encode()
        if not hmac.compare_digest(self.sign(body, key, url), sig):
            log.warning("Square webhook signature failure")
            raise SignatureError("Invalid signature")
        try:
            event = json.loads(body)
        except ValueError as e:
            raise ValidationError("Invalid JSON") from e

        kind = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        object_id = (event.get("data") or {}).get("id")
        if kind in ("payment.created", "payment.updated", "payment.completed"):
            payment = obj.get("payment") or {}
            status = payment.get("status")
            if status == "COMPLETED":
                kind, object_id = ORDER_COMPLETED, payment.get("order_id")
            elif status == "FAILED":
                kind, object_id = PAYMENT_FAILED, payment.get("id")
        elif kind == "catalog.version.updated":
            kind = CATALOG_UPDATED
        elif kind == "inventory.count.updated":
            kind = INVENTORY_UPDATED
        return VendorEvent(id=event.get("event_id") or "", type=kind, object_id=object_id, data=obj)
