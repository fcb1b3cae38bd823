# storefront/cms/sanity_store.py
"""Sanity content lake over its HTTP API (GROQ queries, mutations, assets)."""
import json

import requests

from storefront import config
from storefront.cms.base import CmsStorePort, PRODUCT_TYPE
from storefront.errors import CmsError
from storefront.logs import get_logger

log = get_logger("sanity")

PROJECTION = """{
    _id, _type, _updatedAt, vendorProductId, vendorPriceId, name, price,
    subtitle, description, primaryImage{..., "url": asset->url},
    additionalImages[]{..., "url": asset->url}, prices, isFeatured, archived
}"""


class SanityCmsStore(CmsStorePort):
    def __init__(self, project_id=None, dataset=None, api_version=None, token=None, session=None):
        self.project_id = project_id or config.require("SANITY_PROJECT_ID")
        self.dataset = dataset or config.SANITY_DATASET
        self.api_version = api_version or config.SANITY_API_VERSION
        self.token = token or config.require("SANITY_API_WRITE_TOKEN")
        self.base_url = f"https://{self.project_id}.api.sanity.io/v{self.api_version}"
        self.http = session or requests.Session()
        self.http.headers.update({"Authorization": f"Bearer {self.token}"})

    def _call(self, method, path, **kwargs):
        try:
            r = self.http.request(method, self.base_url + path, timeout=config.HTTP_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            raise CmsError(f"Sanity {method} {path} failed: {e}") from e
        if not r.ok:
            raise CmsError(f"Sanity {method} {path} returned {r.status_code}: {r.text[:300]}")
        return r.json()

    def query(self, groq: str, **params):
        qs = {"query": groq}
        for name, value in params.items():
            qs[f"${name}"] = json.dumps(value)
        return self._call("GET", f"/data/query/{self.dataset}", params=qs).get("result")

    def mutate(self, *mutations):
        return self._call(
            "POST", f"/data/mutate/{self.dataset}",
            params={"returnIds": "true"},
            json={"mutations": list(mutations)},
        )

    def list_products(self):
        return self.query(
            f'*[_type == "{PRODUCT_TYPE}"] | order(isFeatured desc, name asc) {PROJECTION}'
        ) or []

    def get(self, doc_id):
        return self.query(f"*[_id == $id][0] {PROJECTION}", id=doc_id)

    def find_by_vendor_id(self, vendor_product_id):
        return self.query(
            f'*[_type == "{PRODUCT_TYPE}" && vendorProductId == $vid] | order(_updatedAt desc)[0] {PROJECTION}',
            vid=vendor_product_id,
        )

    def create_if_not_exists(self, doc):
        doc = {"_type": PRODUCT_TYPE, **doc}
        result = self.mutate({"createIfNotExists": doc})
        ops = [r.get("operation") for r in result.get("results", [])]
        return "create" in ops

    def patch(self, doc_id, fields):
        self.mutate({"patch": {"id": doc_id, "set": fields}})

    def delete(self, doc_id):
        self.mutate({"delete": {"id": doc_id}})

    def upload_image(self, data, content_type, filename):
        result = self._call(
            "POST", f"/assets/images/{self.dataset}",
            params={"filename": filename},
            data=data,
            headers={"Content-Type": content_type},
        )
        asset = result.get("document") or {}
        log.info(f"[Image Upload] Uploaded image asset {asset.get('_id')}")
        return {"_id": asset.get("_id"), "url": asset.get("url")}
