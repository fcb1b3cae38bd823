"""One-way mirroring of vendor products into the CMS.

Per vendor product id a CMS document moves through::

    absent  --sync-->    created   (deterministic id, create-if-not-exists)
    present --sync-->    updated   (vendor-owned fields overwritten)
    active  --remove-->  removed   (deleted, or archived)

Vendor-owned fields are the name, prices, subtitle and primary image.
The rich-text description and the featured flag belong to the CMS and are
never written here. Repeated or out-of-order deliveries converge because
every write copies the current vendor state.
"""
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import List

from storefront.cms.base import PRODUCT_TYPE, upload_image_from_url
from storefront.errors import VendorError
from storefront.inventory import InventoryPool, has_valid_base_units, infer_base_units
from storefront.logs import get_logger, notify, sync_stats

log = get_logger("sync")


def document_id(vendor_name: str, vendor_product_id: str) -> str:
    return f"{vendor_name}-product-{vendor_product_id}"


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: int = 0
    errors: List[tuple] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def ok(self):
        self.succeeded += 1

    def fail(self, item_id, error):
        self.failed += 1
        self.errors.append((item_id, str(error)))

    def to_dict(self) -> dict:
        return {"succeeded": self.succeeded, "failed": self.failed,
                "errors": [{"id": i, "error": e} for i, e in self.errors]}


class SyncHandler:
    def __init__(self, vendor, cms, stats=None, archive=False):
        self.vendor = vendor
        self.cms = cms
        self.stats = stats or sync_stats
        self.archive = archive

    # ---------- vendor metadata repair ----------
    def ensure_stock_metadata(self, product):
        """Missing or invalid stock on the vendor is written back as 0."""
        if product.inventory.total_base_units is not None:
            return product
        log.info(f"Product {product.id} has invalid or missing stock metadata. Setting to 0.")
        self.vendor.set_inventory(product.id, 0)
        product.inventory = InventoryPool(product.id, 0, False)
        return product

    def repair_variant_metadata(self, product) -> int:
        repaired = 0
        for v in product.variants:
            if has_valid_base_units(v.metadata):
                continue
            units = infer_base_units(v.nickname)
            try:
                self.vendor.set_variant_base_units(v.variant_id, units)
            except VendorError as e:
                log.warning(f"[Sync] Could not persist base_units={units} for {v.variant_id}: {e}")
                self.stats.record_failure("variant_metadata", e)
                continue
            v.metadata["base_units"] = str(units)
            v.base_units = units
            repaired += 1
            log.info(f"[Sync] Inferred base_units={units} for {v.variant_id} ({v.nickname!r})")
        return repaired

    # ---------- vendor -> CMS ----------
    def _vendor_fields(self, product) -> dict:
        default = product.default_variant
        fields = {
            "vendorProductId": product.id,
            "vendorPriceId": default.variant_id if default else None,
            "name": product.name,
            "price": default.unit_price_cents if default else 0,
            "prices": [v.to_dict() for v in product.variants],
        }
        if product.description:
            fields["subtitle"] = product.description
        if product.images:
            image = upload_image_from_url(self.cms, product.images[0], product.name)
            if image:
                fields["primaryImage"] = image
            else:
                log.warning(f"[Sync] Failed to sync primary image for product {product.id}")
        return fields

    def sync_product(self, product) -> str:
        """Create or update the CMS document for a vendor product; returns its id."""
        self.repair_variant_metadata(product)
        log.info(f"[Sync] Checking for existing product with vendor ID: {product.id}")
        existing = self.cms.find_by_vendor_id(product.id)
        fields = self._vendor_fields(product)

        if existing:
            self.cms.patch(existing["_id"], fields)
            log.info(f"[Sync] Updated product {product.id} ({existing['_id']})")
            return existing["_id"]

        doc_id = document_id(self.vendor.name, product.id)
        doc = {"_id": doc_id, "_type": PRODUCT_TYPE, "isFeatured": False, **fields}
        if self.cms.create_if_not_exists(doc):
            log.info(f"[Sync] Created new product {product.id} ({doc_id})")
        else:
            # a concurrent delivery created it first
            self.cms.patch(doc_id, fields)
            log.info(f"[Sync] Product {doc_id} already existed, updated instead")
        return doc_id

    def remove_product(self, vendor_product_id: str) -> int:
        removed = 0
        doc = self.cms.find_by_vendor_id(vendor_product_id)
        if doc and self.archive:
            self.cms.patch(doc["_id"], {"archived": True})
            log.info(f"Archived product {vendor_product_id} in CMS")
            return 1
        seen = set()
        while doc and doc["_id"] not in seen:
            seen.add(doc["_id"])
            self.cms.delete(doc["_id"])
            removed += 1
            doc = self.cms.find_by_vendor_id(vendor_product_id)
        if removed:
            log.info(f"Deleted product {vendor_product_id} from CMS ({removed} document(s))")
        return removed

    def handle_product_event(self, vendor_product_id: str, deleted: bool = False) -> bool:
        """Sync one product after a webhook. Failures are logged, counted and swallowed."""
        try:
            if deleted:
                self.remove_product(vendor_product_id)
                return True
            product = self.vendor.get_product(vendor_product_id)
            if product is None or not product.active:
                self.remove_product(vendor_product_id)
                log.info(f"Product {vendor_product_id} deactivated, removed from CMS")
                return True
            self.sync_product(self.ensure_stock_metadata(product))
            return True
        except Exception as e:
            log.exception(f"Failed to sync product {vendor_product_id} to CMS")
            self.stats.record_failure("product_sync", e)
            notify(f"CMS sync failed for {vendor_product_id}: {e}")
            return False

    # ---------- batches ----------
    def sync_all(self) -> BatchResult:
        result = BatchResult()
        products = self.vendor.list_products()
        log.info(f"Found {len(products)} active product(s) to sync")
        for product in products:
            try:
                self.sync_product(self.ensure_stock_metadata(product))
                result.ok()
            except Exception as e:
                log.error(f"Failed to sync {product.name} ({product.id}): {e}")
                result.fail(product.id, e)
        log.info(f"Synced {result.succeeded} out of {result.total} product(s)")
        return result

    def delete_all_cms_products(self) -> BatchResult:
        result = BatchResult()
        for doc in self.cms.list_products():
            try:
                self.cms.delete(doc["_id"])
                result.ok()
            except Exception as e:
                log.error(f"Failed to delete {doc['_id']}: {e}")
                result.fail(doc["_id"], e)
        return result

    def archive_all_vendor_products(self) -> BatchResult:
        result = BatchResult()
        for product in self.vendor.list_products():
            try:
                self.vendor.archive_product(product.id)
                result.ok()
            except Exception as e:
                log.error(f"Failed to archive {product.id}: {e}")
                result.fail(product.id, e)
        return result


def migrate_catalog(source, target) -> BatchResult:
    """Copy every active product, its variants and its stock between vendors."""
    result = BatchResult()
    for product in source.list_products():
        try:
            created = target.create_product(
                name=product.name,
                description=product.description,
                images=product.images,
                variants=product.variants,
                stock=product.inventory.total_base_units,
            )
            log.info(f"Migrated {product.name}: {product.id} -> {created.id if created else '?'}")
            result.ok()
        except Exception as e:
            log.error(f"Failed to migrate {product.name} ({product.id}): {e}")
            result.fail(product.id, e)
    return result


# ---------- CMS maintenance ----------
def _new_key() -> str:
    return uuid.uuid4().hex[:12]


def _needs_keys(blocks) -> bool:
    for block in blocks:
        if not isinstance(block, dict):
            continue
        if not block.get("_key"):
            return True
        if any(isinstance(c, dict) and not c.get("_key") for c in block.get("children") or []):
            return True
    return False


def fix_description_keys(cms) -> int:
    """Give every rich-text block and span a ``_key``; returns documents fixed."""
    fixed = 0
    for doc in cms.list_products():
        blocks = doc.get("description")
        if not isinstance(blocks, list) or not _needs_keys(blocks):
            continue
        log.info(f"Fixing description keys for product {doc['_id']}")
        repaired = []
        for block in blocks:
            if not isinstance(block, dict):
                continue
            block = dict(block)
            block["_key"] = block.get("_key") or _new_key()
            if block.get("children") is not None:
                block["children"] = [
                    {**child, "_key": child.get("_key") or _new_key(), "marks": child.get("marks") or []}
                    for child in block["children"] if isinstance(child, dict)
                ]
            block.setdefault("markDefs", [])
            block["style"] = block.get("style") or "normal"
            repaired.append(block)
        cms.patch(doc["_id"], {"description": repaired})
        fixed += 1
    log.info(f"Fixed {fixed} product(s) with invalid description keys")
    return fixed


def remove_duplicates(cms) -> int:
    """Keep the most recently updated document per vendor id, delete the rest."""
    groups = defaultdict(list)
    for doc in cms.list_products():
        if doc.get("vendorProductId"):
            groups[doc["vendorProductId"]].append(doc)

    removed = 0
    for vendor_id, docs in groups.items():
        if len(docs) < 2:
            continue
        docs.sort(key=lambda d: d.get("_updatedAt") or "", reverse=True)
        keep, *duplicates = docs
        log.info(f"[Cleanup] {len(duplicates)} duplicate(s) for {vendor_id}, keeping {keep['_id']}")
        for dup in duplicates:
            cms.delete(dup["_id"])
            removed += 1
    log.info(f"[Cleanup] Removed {removed} duplicate product(s)")
    return removed
