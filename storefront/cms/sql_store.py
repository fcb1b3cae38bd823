# storefront/cms/sql_store.py
import hashlib

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.cms.base import CmsStorePort, PRODUCT_TYPE
from storefront.errors import CmsError
from storefront.models import ImageAsset, ProductDocument

# document key -> column
FIELDS = {
    "_type": "doc_type",
    "vendorProductId": "vendor_product_id",
    "vendorPriceId": "vendor_price_id",
    "name": "name",
    "price": "price",
    "subtitle": "subtitle",
    "description": "description",
    "primaryImage": "primary_image",
    "additionalImages": "additional_images",
    "prices": "prices",
    "isFeatured": "is_featured",
    "archived": "archived",
}


class SqlCmsStore(CmsStorePort):
    """CMS documents kept in a SQLAlchemy database."""

    def __init__(self, engine, media_prefix="/media"):
        self.engine = engine
        self.media_prefix = media_prefix

    def session(self):
        return Session(self.engine)

    def list_products(self):
        with self.session() as db:
            rows = db.execute(
                select(ProductDocument)
                .where(ProductDocument.doc_type == PRODUCT_TYPE)
                .order_by(ProductDocument.is_featured.desc(), ProductDocument.name)
            ).scalars().all()
            return [r.to_doc() for r in rows]

    def get(self, doc_id):
        with self.session() as db:
            row = db.get(ProductDocument, doc_id)
            return row.to_doc() if row else None

    def find_by_vendor_id(self, vendor_product_id):
        with self.session() as db:
            row = db.execute(
                select(ProductDocument)
                .where(ProductDocument.vendor_product_id == vendor_product_id)
                .order_by(ProductDocument.updated_at.desc())
            ).scalars().first()
            return row.to_doc() if row else None

    def create_if_not_exists(self, doc):
        values = {col: doc[key] for key, col in FIELDS.items() if key in doc}
        values.setdefault("doc_type", PRODUCT_TYPE)
        with self.session() as db:
            if db.get(ProductDocument, doc["_id"]):
                return False
            db.add(ProductDocument(id=doc["_id"], **values))
            try:
                db.commit()
            except IntegrityError:
                # lost a race against a concurrent insert of the same id
                db.rollback()
                return False
            except SQLAlchemyError as e:
                db.rollback()
                raise CmsError(str(e)) from e
        return True

    def patch(self, doc_id, fields):
        with self.session() as db:
            row = db.get(ProductDocument, doc_id)
            if not row:
                raise CmsError(f"Document {doc_id} not found")
            for key, value in fields.items():
                if key not in FIELDS:
                    raise CmsError(f"Unknown field {key}")
                setattr(row, FIELDS[key], value)
            db.commit()

    def delete(self, doc_id):
        with self.session() as db:
            row = db.get(ProductDocument, doc_id)
            if row:
                db.delete(row)
                db.commit()

    def upload_image(self, data, content_type, filename):
        # same bytes, same asset
        asset_id = f"image-{hashlib.sha1(data).hexdigest()}"
        with self.session() as db:
            if not db.get(ImageAsset, asset_id):
                db.add(ImageAsset(id=asset_id, filename=filename, content_type=content_type,
                                  size=len(data), data=data))
                try:
                    db.commit()
                except IntegrityError:
                    # stored by a concurrent upload of the same bytes
                    db.rollback()
        return {"_id": asset_id, "url": f"{self.media_prefix}/{asset_id}"}

    def get_image(self, asset_id):
        with self.session() as db:
            row = db.get(ImageAsset, asset_id)
            if not row:
                return None
            return row.data, row.content_type

    def image_url(self, image):
        if not image:
            return ""
        if image.get("url"):
            return image["url"]
        ref = (image.get("asset") or {}).get("_ref")
        return f"{self.media_prefix}/{ref}" if ref else ""
