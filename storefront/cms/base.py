# storefront/cms/base.py
from abc import ABC, abstractmethod
from typing import List, Optional

import requests

from storefront import config
from storefront.errors import CmsError
from storefront.logs import get_logger

log = get_logger("cms")

PRODUCT_TYPE = "products"


class CmsStorePort(ABC):
    """Editorial product documents, shaped like Sanity documents.

    Keys: ``_id``, ``_type``, ``_updatedAt``, ``vendorProductId``,
    ``vendorPriceId``, ``name``, ``price`` (cents), ``subtitle``,
    ``description`` (rich text blocks), ``primaryImage``,
    ``additionalImages``, ``prices``, ``isFeatured``.
    """

    @abstractmethod
    def list_products(self) -> List[dict]: ...

    @abstractmethod
    def get(self, doc_id: str) -> Optional[dict]: ...

    @abstractmethod
    def find_by_vendor_id(self, vendor_product_id: str) -> Optional[dict]: ...

    @abstractmethod
    def create_if_not_exists(self, doc: dict) -> bool:
        """Insert ``doc`` unless its ``_id`` exists. True when inserted."""

    @abstractmethod
    def patch(self, doc_id: str, fields: dict) -> None: ...

    @abstractmethod
    def delete(self, doc_id: str) -> None: ...

    @abstractmethod
    def upload_image(self, data: bytes, content_type: str, filename: str) -> dict:
        """Store image bytes, returning ``{"_id": ..., "url": ...}``."""

    def image_url(self, image: Optional[dict]) -> str:
        if not image:
            return ""
        return image.get("url") or ""


def download_image(url: str):
    """Fetch an image for re-upload. Returns (bytes, content_type, filename) or None."""
    log.info(f"[Image Upload] Fetching image from: {url}")
    try:
        r = requests.get(url, timeout=config.HTTP_TIMEOUT)
    except requests.RequestException as e:
        log.error(f"[Image Upload] Failed to fetch image: {e}")
        return None
    if not r.ok:
        log.error(f"[Image Upload] Failed to fetch image: {r.status_code} {r.reason}")
        return None
    content_type = r.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        log.error(f"[Image Upload] Invalid content type: {content_type}")
        return None
    filename = url.split("?")[0].rstrip("/").split("/")[-1] or "product-image.jpg"
    return r.content, content_type, filename


def upload_image_from_url(cms: CmsStorePort, url: str, alt: str) -> Optional[dict]:
    """Download ``url`` and re-store it in the CMS as an image reference."""
    fetched = download_image(url)
    if not fetched:
        return None
    data, content_type, filename = fetched
    log.info(f"[Image Upload] Uploading image to CMS ({len(data)} bytes)")
    try:
        asset = cms.upload_image(data, content_type, filename)
    except CmsError as e:
        log.error(f"[Image Upload] Failed to upload image: {e}")
        return None
    return {
        "_type": "image",
        "asset": {"_ref": asset["_id"], "_type": "reference"},
        "url": asset.get("url"),
        "alt": alt,
    }
