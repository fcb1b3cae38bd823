"""Shared test fixtures: an in-memory vendor, an in-memory SQL CMS and a Flask client."""

import copy
from unittest.mock import MagicMock

import pytest

from storefront.cart import CartStore
from storefront.cart_storage import MemoryCartStorage
from storefront.cms.sql_store import SqlCmsStore
from storefront.db import make_engine
from storefront.emails import EmailResult
from storefront.inventory import InventoryPool, PriceVariant, infer_base_units
from storefront.logs import SyncStats
from storefront.models import CmsBase
from storefront.vendors.base import (
    CheckoutSession, OrderSummary, PaymentVendorPort, VendorEvent, VendorProduct,
)


def make_variant(variant_id, nickname, cents, base_units=None, metadata=None):
    metadata = dict(metadata or {})
    if base_units is not None:
        metadata["base_units"] = str(base_units)
    return PriceVariant(
        variant_id=variant_id,
        nickname=nickname,
        unit_price_cents=cents,
        base_units=infer_base_units(nickname, metadata),
        metadata=metadata,
    )


def make_product(product_id="prod_1", name="Classic Beef Jerky", stock=100, variants=None,
                 images=None, description="Smoked over hickory", active=True):
    if variants is None:
        variants = [
            make_variant("price_4oz", "4oz", 999, base_units=1),
            make_variant("price_8oz", "8oz", 1799, base_units=2),
            make_variant("price_1lb", "1 lb", 2999, base_units=4),
        ]
    return VendorProduct(
        id=product_id,
        name=name,
        description=description,
        variants=variants,
        images=list(images or []),
        inventory=InventoryPool.from_stock(product_id, stock),
        active=active,
    )


class FakeVendor(PaymentVendorPort):
    """Vendor held in memory; records every write."""

    name = "stripe"

    def __init__(self, products=None):
        self.products = {p.id: p for p in products or []}
        self.orders = {}
        self.events = []
        self.checkout_calls = []
        self.stock_writes = []
        self.base_unit_writes = []
        self.archived = []
        self.created = []

    def list_products(self, include_inactive=False):
        return [copy.deepcopy(p) for p in self.products.values() if p.active or include_inactive]

    def get_product(self, product_id):
        p = self.products.get(product_id)
        return copy.deepcopy(p) if p else None

    def set_inventory(self, product_id, quantity):
        self.stock_writes.append((product_id, quantity))
        self.products[product_id].inventory = InventoryPool.from_stock(product_id, quantity)

    def decrement_inventory(self, product_id, variant_id, quantity=1):
        product = self.products[product_id]
        variant = next(v for v in product.variants if v.variant_id == variant_id)
        remaining = max(0, (product.inventory.total_base_units or 0) - quantity * variant.base_units)
        self.set_inventory(product_id, remaining)
        return remaining

    def set_variant_base_units(self, variant_id, base_units):
        self.base_unit_writes.append((variant_id, base_units))
        for product in self.products.values():
            for v in product.variants:
                if v.variant_id == variant_id:
                    v.metadata["base_units"] = str(base_units)
                    v.base_units = base_units

    def set_product_metadata(self, product_id, metadata):
        self.products[product_id].metadata.update(metadata)

    def archive_product(self, product_id):
        self.archived.append(product_id)
        self.products[product_id].active = False

    def create_product(self, name, description, images, variants, stock):
        product = make_product(f"new_{len(self.created) + 1}", name=name, stock=stock,
                               variants=copy.deepcopy(variants), images=images, description=description)
        self.created.append(product)
        self.products[product.id] = product
        return product

    def create_checkout_session(self, items, success_url, cancel_url):
        self.checkout_calls.append((list(items), success_url, cancel_url))
        return CheckoutSession(id="cs_test_1", url="https://checkout.example/cs_test_1")

    def retrieve_order(self, order_id):
        return self.orders.get(order_id)

    def parse_event(self, body, headers):
        if headers.get("X-Test-Signature") != "ok":
            from storefront.errors import SignatureError
            raise SignatureError("Invalid signature")
        return self.events.pop(0) if self.events else VendorEvent("evt", "unknown.event", None, {})


@pytest.fixture
def product():
    return make_product()


@pytest.fixture
def vendor(product):
    return FakeVendor([product])


@pytest.fixture
def cms_engine():
    engine = make_engine("sqlite://")
    CmsBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def cms(cms_engine):
    return SqlCmsStore(cms_engine)


@pytest.fixture
def stats():
    return SyncStats()


@pytest.fixture
def storage():
    return MemoryCartStorage()


@pytest.fixture
def cart(storage):
    return CartStore(storage)


@pytest.fixture
def mailer():
    m = MagicMock()
    m.send_contact_message.return_value = EmailResult(True, message_id="msg_1")
    m.send_order_confirmation.return_value = EmailResult(True, message_id="msg_2")
    m.send_admin_order_notification.return_value = EmailResult(True, message_id="msg_3")
    return m


@pytest.fixture
def app(vendor, cms, mailer):
    from storefront.app import create_app
    return create_app(vendor=vendor, cms=cms, mailer=mailer, testing=True)


@pytest.fixture
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def order():
    from storefront.vendors.base import OrderLine
    return OrderSummary(
        id="cs_paid_1",
        total_cents=4797,
        customer_email="buyer@example.com",
        customer_name="Pat Buyer",
        item_count=3,
        lines=[
            OrderLine("prod_1", "price_8oz", "Classic Beef Jerky", 2, 3598, size="8oz"),
            OrderLine("prod_1", "price_4oz", "Classic Beef Jerky", 1, 999, size="4oz"),
        ],
        state="paid",
    )
