# storefront/models.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, LargeBinary
from sqlalchemy.orm import declarative_base


def utcnow():
    return datetime.now(timezone.utc)


# ----------------- MAIN APP SCHEMA (cart snapshots) -----------------
Base = declarative_base()

class CartSnapshot(Base):
    __tablename__ = "cart_snapshots"
    id = Column(Integer, primary_key=True)
    cart_id = Column(String(64), index=True, nullable=False)
    json_payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ----------------- CMS SCHEMA (editorial product documents) -----------------
CmsBase = declarative_base()

class ProductDocument(CmsBase):
    __tablename__ = "product_documents"
    id = Column(String(128), primary_key=True)  # deterministic: "<vendor>-product-<vendor id>"
    doc_type = Column(String(50), nullable=False, default="products")
    vendor_product_id = Column(String(128), index=True, nullable=False)  # NOT unique: duplicates can exist
    vendor_price_id = Column(String(128))
    name = Column(String(200), nullable=False)
    price = Column(Integer, nullable=False, default=0)  # cents
    subtitle = Column(Text)
    description = Column(JSON)  # rich text blocks, CMS-only
    primary_image = Column(JSON)
    additional_images = Column(JSON)
    prices = Column(JSON)
    is_featured = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_doc(self) -> dict:
        return {
            "_id": self.id,
            "_type": self.doc_type,
            "_updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "vendorProductId": self.vendor_product_id,
            "vendorPriceId": self.vendor_price_id,
            "name": self.name,
            "price": self.price,
            "subtitle": self.subtitle,
            "description": self.description,
            "primaryImage": self.primary_image,
            "additionalImages": self.additional_images,
            "prices": self.prices,
            "isFeatured": bool(self.is_featured),
            "archived": bool(self.archived),
        }


class ImageAsset(CmsBase):
    __tablename__ = "image_assets"
    id = Column(String(128), primary_key=True)
    filename = Column(String(255))
    content_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False, default=0)
    data = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

