"""Test base-unit inference and the allocation calculator."""

import pytest

from storefront.cart import CartLineItem
from storefront.inventory import (
    InventoryPool, base_unit_usage, clamp, has_valid_base_units, infer_base_units, max_quantity,
    parse_positive_int,
)


class TestInferBaseUnits:
    """Size labels map to base-unit multipliers."""

    @pytest.mark.parametrize("nickname, expected", [
        ("4oz", 1),
        ("4 oz", 1),
        ("8oz Bag", 2),
        ("8 OZ", 2),
        ("12oz", 3),
        ("12 oz pouch", 3),
        ("1 lb", 4),
        ("1LB Family Size", 4),
        ("Party Pack", 1),
        ("", 1),
        (None, 1),
    ])
    def test_nickname_patterns(self, nickname, expected):
        assert infer_base_units(nickname) == expected

    def test_twelve_ounce_is_not_read_as_smaller_size(self):
        assert infer_base_units("12oz") == 3

    def test_explicit_metadata_wins(self):
        assert infer_base_units("8oz", {"base_units": "5"}) == 5

    @pytest.mark.parametrize("bad", ["0", "-2", "abc", "", None])
    def test_invalid_metadata_falls_back_to_label(self, bad):
        assert infer_base_units("1 lb", {"base_units": bad}) == 4

    def test_has_valid_base_units(self):
        assert has_valid_base_units({"base_units": "2"})
        assert not has_valid_base_units({"base_units": "0"})
        assert not has_valid_base_units({})
        assert not has_valid_base_units(None)


class TestMaxQuantity:
    """floor((pool - other usage) / multiplier), never negative."""

    def test_full_pool(self):
        assert max_quantity(100, 0, 4) == 25

    def test_pool_shared_with_other_variant(self):
        # 10 x 4oz already in the cart
        assert max_quantity(100, 10, 4) == 22

    def test_other_usage_exceeds_pool(self):
        assert max_quantity(10, 15, 1) == 0

    def test_unlimited(self):
        assert max_quantity(None, 50, 4) is None

    def test_zero_multiplier_treated_as_one(self):
        assert max_quantity(7, 0, 0) == 7


class TestHelpers:
    def test_base_unit_usage_excludes_line(self):
        lines = [
            CartLineItem("p", "a", 100, quantity=3, base_units=1),
            CartLineItem("p", "b", 100, quantity=2, base_units=4),
            CartLineItem("q", "c", 100, quantity=9, base_units=1),
        ]
        assert base_unit_usage(lines, "p") == 11
        assert base_unit_usage(lines, "p", exclude="p-b") == 3

    def test_clamp(self):
        assert clamp(30, 25) == 25
        assert clamp(3, 25) == 3
        assert clamp(30, None) == 30

    def test_parse_positive_int(self):
        assert parse_positive_int("12") == 12
        assert parse_positive_int(" 3 ") == 3
        assert parse_positive_int("0") is None
        assert parse_positive_int("0", allow_zero=True) == 0
        assert parse_positive_int(True) is None
        assert parse_positive_int("1.5") is None


class TestInventoryPool:
    def test_missing_stock_is_unavailable(self):
        pool = InventoryPool.from_stock("p", None)
        assert pool.total_base_units is None
        assert pool.available is False

    def test_invalid_stock_is_unavailable(self):
        assert InventoryPool.from_stock("p", "lots").available is False

    def test_zero_stock(self):
        pool = InventoryPool.from_stock("p", "0")
        assert pool.total_base_units == 0
        assert pool.available is False

    def test_positive_stock(self):
        assert InventoryPool.from_stock("p", "40").to_dict() == {"quantity": 40, "available": True}
