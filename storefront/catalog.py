# storefront/catalog.py
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from storefront.cart import ProductSnapshot
from storefront.inventory import InventoryPool, PriceVariant
from storefront.logs import get_logger

log = get_logger("catalog")


@dataclass
class MergedProduct:
    id: str
    vendor_product_id: str
    name: str
    price_cents: int
    inventory: InventoryPool
    variants: List[PriceVariant] = field(default_factory=list)
    vendor_price_id: Optional[str] = None
    subtitle: str = ""
    description: list = field(default_factory=list)
    primary_image_url: str = ""
    primary_image_alt: str = ""
    additional_image_urls: List[str] = field(default_factory=list)
    is_featured: bool = False
    source: str = "vendor"  # "cms" when editorial data was found

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_product_id": self.vendor_product_id,
            "vendor_price_id": self.vendor_price_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "subtitle": self.subtitle,
            "description": self.description,
            "primary_image_url": self.primary_image_url,
            "primary_image_alt": self.primary_image_alt,
            "additional_image_urls": self.additional_image_urls,
            "is_featured": self.is_featured,
            "inventory": self.inventory.to_dict(),
            "prices": [v.to_dict() for v in self.variants],
            "source": self.source,
        }


def temporary_id(vendor_name: str, vendor_product_id: str) -> str:
    return f"{vendor_name}-{vendor_product_id}"


def _latest_by_vendor_id(cms_docs) -> dict:
    by_vendor = {}
    for doc in cms_docs or []:
        vid = (doc or {}).get("vendorProductId")
        if not vid:
            continue
        current = by_vendor.get(vid)
        if current is None or (doc.get("_updatedAt") or "") > (current.get("_updatedAt") or ""):
            by_vendor[vid] = doc
    return by_vendor


def _default_image_url(image) -> str:
    return (image or {}).get("url") or ""


def merge_catalog(vendor_products: Iterable, cms_docs: Iterable[dict], vendor_name: str = "stripe",
                  image_url: Callable = _default_image_url) -> List[MergedProduct]:
    """One display record per vendor product.

    Editorial fields come from the CMS document with the same vendor id when
    there is one; inventory and price variants always come from the vendor.
    Featured products sort first, then by name.
    """
    docs = _latest_by_vendor_id(cms_docs)
    merged = []
    for vp in vendor_products:
        default = vp.default_variant
        vendor_price = default.unit_price_cents if default else 0
        vendor_images = list(vp.images or [])
        doc = docs.get(vp.id)

        if doc:
            primary = image_url(doc.get("primaryImage"))
            extra = [u for u in (image_url(i) for i in doc.get("additionalImages") or []) if u]
            if not primary and vendor_images:
                primary, vendor_images = vendor_images[0], vendor_images[1:]
            price = doc.get("price")
            merged.append(MergedProduct(
                id=doc.get("_id") or temporary_id(vendor_name, vp.id),
                vendor_product_id=vp.id,
                vendor_price_id=default.variant_id if default else doc.get("vendorPriceId"),
                name=doc.get("name") or vp.name or "",
                price_cents=price if price is not None else vendor_price,
                subtitle=doc.get("subtitle") or vp.description or "",
                description=doc.get("description") or [],
                primary_image_url=primary,
                primary_image_alt=(doc.get("primaryImage") or {}).get("alt") or doc.get("name") or vp.name or "",
                additional_image_urls=extra + [u for u in vendor_images if u != primary],
                is_featured=bool(doc.get("isFeatured")),
                inventory=vp.inventory,
                variants=list(vp.variants),
                source="cms",
            ))
        else:
            merged.append(MergedProduct(
                id=temporary_id(vendor_name, vp.id),
                vendor_product_id=vp.id,
                vendor_price_id=default.variant_id if default else None,
                name=vp.name or "",
                price_cents=vendor_price,
                subtitle=vp.description or "",
                primary_image_url=vendor_images[0] if vendor_images else "",
                primary_image_alt=vp.name or "",
                additional_image_urls=vendor_images[1:],
                is_featured=False,
                inventory=vp.inventory,
                variants=list(vp.variants),
                source="vendor",
            ))

    merged.sort(key=lambda p: (not p.is_featured, p.name.casefold()))
    return merged


def load_catalog(vendor, cms) -> List[MergedProduct]:
    """Fetch vendor and CMS data in parallel and merge them."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        vendor_future = pool.submit(vendor.list_products)
        cms_future = pool.submit(cms.list_products)
        vendor_products = vendor_future.result()
        cms_docs = cms_future.result()
    log.info(f"Merging {len(vendor_products)} vendor products with {len(cms_docs)} CMS documents")
    return merge_catalog(vendor_products, cms_docs, vendor_name=vendor.name, image_url=cms.image_url)


def find_product(products: Iterable[MergedProduct], product_id: str) -> Optional[MergedProduct]:
    for p in products:
        if product_id in (p.id, p.vendor_product_id):
            return p
    return None


def to_snapshot(products: Iterable[MergedProduct]) -> List[ProductSnapshot]:
    """Cart-validator input built from the merged catalog."""
    return [
        ProductSnapshot(
            product_id=p.vendor_product_id,
            variant_ids=[v.variant_id for v in p.variants],
            inventory=p.inventory,
            alt_ids=[p.id],
            image_url=p.primary_image_url or None,
        )
        for p in products
    ]
