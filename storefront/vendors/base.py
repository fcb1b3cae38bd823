# storefront/vendors/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from storefront.inventory import InventoryPool, PriceVariant


@dataclass
class VendorProduct:
    id: str
    name: str
    description: Optional[str]
    variants: List[PriceVariant]
    images: List[str]
    inventory: InventoryPool
    active: bool = True
    metadata: dict = field(default_factory=dict)
    default_variant_id: Optional[str] = None

    @property
    def currency(self) -> str:
        return self.variants[0].currency if self.variants else "usd"

    @property
    def default_variant(self) -> Optional[PriceVariant]:
        for v in self.variants:
            if v.variant_id == self.default_variant_id:
                return v
        return self.variants[0] if self.variants else None

    @property
    def variant_ids(self) -> List[str]:
        return [v.variant_id for v in self.variants]


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class OrderLine:
    product_id: Optional[str]
    variant_id: Optional[str]
    name: str
    quantity: int
    amount_cents: int
    size: Optional[str] = None


@dataclass
class OrderSummary:
    id: str
    total_cents: int
    customer_email: Optional[str]
    item_count: int
    customer_name: Optional[str] = None
    currency: str = "usd"
    shipping_cents: int = 0
    shipping_address: Optional[dict] = None
    lines: List[OrderLine] = field(default_factory=list)
    state: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "total": self.total_cents,
            "customer_email": self.customer_email,
            "item_count": self.item_count,
            "state": self.state,
        }


@dataclass
class VendorEvent:
    """A verified inbound webhook notification, normalised across vendors."""
    id: str
    type: str
    object_id: Optional[str]
    data: dict


# Normalised event kinds the webhook dispatcher understands.
PRODUCT_CREATED = "product.created"
PRODUCT_UPDATED = "product.updated"
PRODUCT_DELETED = "product.deleted"
PRICE_CHANGED = "price.changed"
ORDER_COMPLETED = "order.completed"
PAYMENT_FAILED = "payment.failed"
CATALOG_UPDATED = "catalog.updated"
INVENTORY_UPDATED = "inventory.updated"


class PaymentVendorPort(ABC):
    """What the storefront needs from a payment / commerce platform."""

    name = "vendor"

    @abstractmethod
    def list_products(self, include_inactive: bool = False) -> List[VendorProduct]: ...

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[VendorProduct]: ...

    def get_inventory(self, product_id: str) -> Optional[InventoryPool]:
        product = self.get_product(product_id)
        return product.inventory if product else None

    @abstractmethod
    def set_inventory(self, product_id: str, quantity: int) -> None: ...

    @abstractmethod
    def decrement_inventory(self, product_id: str, variant_id: str, quantity: int = 1) -> int: ...

    @abstractmethod
    def set_variant_base_units(self, variant_id: str, base_units: int) -> None: ...

    @abstractmethod
    def set_product_metadata(self, product_id: str, metadata: dict) -> None: ...

    @abstractmethod
    def archive_product(self, product_id: str) -> None: ...

    @abstractmethod
    def create_product(self, name: str, description: Optional[str], images: List[str],
                       variants: List[PriceVariant], stock: Optional[int]) -> VendorProduct: ...

    @abstractmethod
    def create_checkout_session(self, items: Iterable[Tuple[str, int]],
                                success_url: str, cancel_url: str) -> CheckoutSession: ...

    @abstractmethod
    def retrieve_order(self, order_id: str) -> Optional[OrderSummary]: ...

    def order_line_items(self, order_id: str) -> List[OrderLine]:
        order = self.retrieve_order(order_id)
        return order.lines if order else []

    @abstractmethod
    def parse_event(self, body: bytes, headers) -> VendorEvent:
        """Verify the signature and decode the payload.

        Raises ``SignatureError`` for a missing/invalid signature and
        ``ConfigError`` when the signing secret is not configured.
        """
