"""Test reconciling a saved cart against fresh inventory."""

import pytest

from storefront.cart import CartLineItem, CartStore, ProductSnapshot, validate_cart
from storefront.cart_storage import MemoryCartStorage
from storefront.inventory import InventoryPool

VARIANTS = ["4oz", "8oz", "1lb"]


def line(variant_id, base_units, quantity, product_id="prod_1", name="Jerky"):
    return CartLineItem(product_id=product_id, variant_id=variant_id, unit_price_cents=999,
                        quantity=quantity, base_units=base_units, name=name, size_nickname=variant_id)


def snapshot(stock, product_id="prod_1", variants=VARIANTS, alt_ids=(), image_url=None):
    return ProductSnapshot(product_id=product_id, variant_ids=list(variants),
                           inventory=InventoryPool.from_stock(product_id, stock),
                           alt_ids=alt_ids, image_url=image_url)


@pytest.fixture
def notes():
    return []


@pytest.fixture
def store(notes):
    return CartStore(MemoryCartStorage(),
                     notifier=lambda level, message, description: notes.append((level, message, description)))


class TestClamping:
    def test_stock_drop_clamps_quantity(self, store, notes):
        store.add_item(line("1lb", 4, 25), total_base_units=100)
        report = validate_cart(store, [snapshot(40)])

        assert store.get("prod_1-1lb").quantity == 10
        assert [a.to_dict() for a in report.adjusted] == [{"name": "Jerky (1lb)", "from": 25, "to": 10}]
        assert report.removed == []
        assert notes[0][0] == "warning"
        assert "reduced from 25 to 10" in notes[0][2]

    def test_siblings_are_clamped_in_cart_order(self, store):
        store.add_item(line("4oz", 1, 10), total_base_units=100)
        store.add_item(line("1lb", 4, 20))
        validate_cart(store, [snapshot(30)])

        assert store.get("prod_1-4oz").quantity == 10
        assert store.get("prod_1-1lb").quantity == 5
        assert sum(l.quantity * l.base_units for l in store.items) <= 30

    def test_unchanged_cart_sends_no_notification(self, store, notes):
        store.add_item(line("8oz", 2, 3), total_base_units=100)
        report = validate_cart(store, [snapshot(100)])
        assert not report.changed
        assert notes == []

    def test_max_quantity_refreshed(self, store):
        store.add_item(line("8oz", 2, 3), total_base_units=100)
        validate_cart(store, [snapshot(50)])
        assert store.get("prod_1-8oz").max_quantity == 25
        assert store.pool_for("prod_1") == 50


class TestRemoval:
    def test_stockout_removes_line(self, store, notes):
        store.add_item(line("1lb", 4, 2), total_base_units=100)
        report = validate_cart(store, [snapshot(0)])

        assert store.items == []
        assert report.removed == ["Jerky (1lb)"]
        assert notes[0][0] == "error"
        assert notes[0][2] == "These items are no longer available."

    def test_missing_product_removes_line(self, store):
        store.add_item(line("4oz", 1, 1), total_base_units=10)
        validate_cart(store, [snapshot(10, product_id="other")])
        assert store.items == []

    def test_missing_stock_metadata_removes_line(self, store):
        store.add_item(line("4oz", 1, 1), total_base_units=10)
        validate_cart(store, [snapshot(None)])
        assert store.items == []

    def test_retired_variant_removes_line(self, store):
        store.add_item(line("1lb", 4, 1), total_base_units=10)
        validate_cart(store, [snapshot(10, variants=["4oz"])])
        assert store.items == []

    def test_sibling_that_no_longer_fits_is_removed(self, store):
        store.add_item(line("4oz", 1, 6), total_base_units=100)
        store.add_item(line("1lb", 4, 2))
        report = validate_cart(store, [snapshot(7)])

        assert [l.line_id for l in store.items] == ["prod_1-4oz"]
        assert report.removed == ["Jerky (1lb)"]

    def test_removed_names_are_batched(self, store, notes):
        store.add_item(line("4oz", 1, 1, product_id="a", name="Teriyaki"), total_base_units=5)
        store.add_item(line("4oz", 1, 1, product_id="b", name="Peppered"), total_base_units=5)
        validate_cart(store, [])
        assert len(notes) == 1
        assert notes[0][1] == "Removed from cart: Teriyaki (4oz), Peppered (4oz)"


class TestSnapshotMatching:
    def test_matches_on_alternate_id(self, store):
        store.add_item(line("4oz", 1, 3, product_id="stripe-product-prod_1"), total_base_units=10)
        validate_cart(store, [snapshot(2, alt_ids=["stripe-product-prod_1"])])
        assert store.get("stripe-product-prod_1-4oz").quantity == 2

    def test_fills_missing_image(self, store):
        store.add_item(line("4oz", 1, 1), total_base_units=10)
        validate_cart(store, [snapshot(10, image_url="/media/image-1")])
        assert store.get("prod_1-4oz").image_url == "/media/image-1"

    def test_unlimited_pool_leaves_quantity(self, store):
        store.add_item(line("1lb", 4, 3), total_base_units=4)
        validate_cart(store, [ProductSnapshot("prod_1", VARIANTS, InventoryPool("prod_1", None, True))])
        assert store.get("prod_1-1lb").max_quantity is None


class TestIdempotence:
    @pytest.mark.parametrize("stock", [0, 3, 7, 13, 40, 200])
    def test_second_run_changes_nothing(self, store, stock):
        store.add_item(line("4oz", 1, 9), total_base_units=1000)
        store.add_item(line("8oz", 2, 7))
        store.add_item(line("1lb", 4, 5))
        validate_cart(store, [snapshot(stock)])
        before = [l.to_dict() for l in store.items]

        second = validate_cart(store, [snapshot(stock)])
        assert not second.changed
        assert [l.to_dict() for l in store.items] == before
        assert sum(l.quantity * l.base_units for l in store.items) <= stock
