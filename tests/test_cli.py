"""Test the maintenance commands through Flask's CLI runner."""

from unittest.mock import patch

from conftest import FakeVendor


class TestCommands:
    def test_sync_products(self, app, cms):
        result = app.test_cli_runner().invoke(args=["sync-products"])
        assert result.exit_code == 0
        assert "Synced 1 out of 1 product(s)" in result.output
        assert cms.get("stripe-product-prod_1") is not None

    def test_delete_requires_confirmation(self, app, cms):
        app.test_cli_runner().invoke(args=["sync-products"])
        result = app.test_cli_runner().invoke(args=["delete-cms-products"], input="n\n")
        assert result.exit_code != 0
        assert len(cms.list_products()) == 1

        result = app.test_cli_runner().invoke(args=["delete-cms-products", "--yes"])
        assert result.exit_code == 0
        assert cms.list_products() == []

    def test_archive_vendor_products(self, app, vendor):
        result = app.test_cli_runner().invoke(args=["archive-vendor-products"], input="y\n")
        assert result.exit_code == 0
        assert vendor.archived == ["prod_1"]

    def test_migrate_vendor(self, app):
        target = FakeVendor()
        with patch("storefront.vendors.get_vendor", return_value=target):
            result = app.test_cli_runner().invoke(args=["migrate-vendor", "--to", "square", "--yes"])
        assert result.exit_code == 0
        assert len(target.created) == 1

    def test_migrate_to_same_vendor_is_refused(self, app):
        result = app.test_cli_runner().invoke(args=["migrate-vendor", "--to", "stripe", "--yes"])
        assert result.exit_code != 0

    def test_fix_descriptions_and_cleanup(self, app, cms):
        cms.create_if_not_exists({"_id": "a", "vendorProductId": "p", "name": "A",
                                  "description": [{"_type": "block"}]})
        cms.create_if_not_exists({"_id": "b", "vendorProductId": "p", "name": "B"})
        runner = app.test_cli_runner()
        assert "Fixed 1 product(s)" in runner.invoke(args=["fix-descriptions"]).output
        assert "Removed 1 duplicate(s)" in runner.invoke(args=["cleanup-duplicates", "--yes"]).output
