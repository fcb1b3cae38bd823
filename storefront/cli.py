# storefront/cli.py
"""Maintenance commands, run as ``flask --app storefront.app <command>``."""
import click
from flask import current_app

from storefront.sync import fix_description_keys, migrate_catalog, remove_duplicates


def _services():
    return current_app.extensions["storefront"]


def _report(result, verb):
    click.echo(f"{verb} {result.succeeded} out of {result.total} product(s)")
    for item_id, error in result.errors:
        click.echo(f"  {item_id}: {error}", err=True)


def register_commands(app):
    @app.cli.command("sync-products")
    def sync_products():
        """Push every active vendor product into the CMS."""
        result = _services().sync().sync_all()
        _report(result, "Synced")

    @app.cli.command("delete-cms-products")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def delete_cms_products(yes):
        """Delete every product document from the CMS."""
        if not yes:
            click.confirm("Delete ALL product documents from the CMS?", abort=True)
        _report(_services().sync().delete_all_cms_products(), "Deleted")

    @app.cli.command("archive-vendor-products")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def archive_vendor_products(yes):
        """Deactivate every active product on the payment vendor."""
        if not yes:
            click.confirm(f"Archive ALL products on {_services().vendor.name}?", abort=True)
        _report(_services().sync().archive_all_vendor_products(), "Archived")

    @app.cli.command("migrate-vendor")
    @click.option("--to", "target_name", required=True, type=click.Choice(["stripe", "square"]))
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def migrate_vendor(target_name, yes):
        """Copy products, variants and stock to another vendor."""
        from storefront.vendors import get_vendor

        source = _services().vendor
        if source.name == target_name:
            raise click.UsageError(f"Products already live on {target_name}")
        if not yes:
            click.confirm(f"Create every {source.name} product on {target_name}?", abort=True)
        _report(migrate_catalog(source, get_vendor(target_name)), "Migrated")

    @app.cli.command("fix-descriptions")
    def fix_descriptions():
        """Add missing _key fields to rich-text descriptions."""
        click.echo(f"Fixed {fix_description_keys(_services().cms)} product(s)")

    @app.cli.command("cleanup-duplicates")
    @click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
    def cleanup_duplicates(yes):
        """Keep the newest document per vendor product and delete the rest."""
        if not yes:
            click.confirm("Delete duplicate product documents?", abort=True)
        click.echo(f"Removed {remove_duplicates(_services().cms)} duplicate(s)")
