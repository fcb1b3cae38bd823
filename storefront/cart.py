"""Cart store and cart validator.

All variants of a product draw from one shared pool of base units, so any
change to one line can shrink or grow the maximum of its siblings. After
every mutation, for each product with a known pool::

    sum(line.quantity * line.base_units) <= pool
"""
from dataclasses import dataclass, field, asdict, replace
from typing import Callable, Iterable, List, Optional

from storefront.errors import ValidationError
from storefront.inventory import InventoryPool, base_unit_usage, clamp, max_quantity
from storefront.logs import get_logger

log = get_logger("cart")

KEEP = object()

# notifier(level, message, description)
Notifier = Callable[[str, str, str], None]


@dataclass
class CartLineItem:
    product_id: str
    variant_id: str
    unit_price_cents: int
    quantity: int = 1
    base_units: int = 1
    name: str = ""
    size_nickname: str = ""
    max_quantity: Optional[int] = None
    image_url: Optional[str] = None

    @property
    def line_id(self) -> str:
        return f"{self.product_id}-{self.variant_id}"

    @property
    def label(self) -> str:
        name = self.name or self.product_id
        return f"{name} ({self.size_nickname})" if self.size_nickname else name

    def to_dict(self) -> dict:
        d = asdict(self)
        d["line_id"] = self.line_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "CartLineItem":
        try:
            return cls(
                product_id=str(d["product_id"]),
                variant_id=str(d["variant_id"]),
                unit_price_cents=int(d.get("unit_price_cents") or 0),
                quantity=int(d.get("quantity", 1)),
                base_units=max(1, int(d.get("base_units") or 1)),
                name=d.get("name") or "",
                size_nickname=d.get("size_nickname") or "",
                max_quantity=d.get("max_quantity"),
                image_url=d.get("image_url"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid cart item: {e}") from e


@dataclass
class ProductSnapshot:
    """Fresh per-product state the validator reconciles the cart against."""
    product_id: str
    variant_ids: Iterable[str]
    inventory: InventoryPool
    alt_ids: Iterable[str] = ()
    image_url: Optional[str] = None


@dataclass
class Adjustment:
    name: str
    from_quantity: int
    to_quantity: int

    def to_dict(self) -> dict:
        return {"name": self.name, "from": self.from_quantity, "to": self.to_quantity}


@dataclass
class ValidationReport:
    removed: List[str] = field(default_factory=list)
    adjusted: List[Adjustment] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.adjusted)

    def notifications(self) -> list:
        out = []
        if self.removed:
            out.append({
                "level": "error",
                "message": f"Removed from cart: {', '.join(self.removed)}",
                "description": "These items are no longer available.",
            })
        if self.adjusted:
            out.append({
                "level": "warning",
                "message": "Cart quantities updated",
                "description": "; ".join(
                    f"{a.name}: reduced from {a.from_quantity} to {a.to_quantity} due to limited stock"
                    for a in self.adjusted
                ),
            })
        return out


class CartStore:
    """Client cart with shared-pool allocation, persisted on every mutation."""

    def __init__(self, storage, notifier: Optional[Notifier] = None):
        self.storage = storage
        self.notifier = notifier
        self._lines: List[CartLineItem] = []
        # product id -> total base units; absent means unlimited / unknown
        self._pools = {}
        self.load()

    # ---------- persistence ----------
    def load(self):
        payload = self.storage.get() or {}
        try:
            self._lines = [CartLineItem.from_dict(d) for d in payload.get("items", [])]
            self._pools = {k: int(v) for k, v in (payload.get("inventory") or {}).items()}
        except (ValidationError, AttributeError, TypeError, ValueError) as e:
            log.warning(f"Discarding unreadable saved cart: {e}")
            self._lines, self._pools = [], {}

    def save(self):
        self.storage.set({
            "items": [line.to_dict() for line in self._lines],
            "inventory": dict(self._pools),
        })

    # ---------- queries ----------
    @property
    def items(self) -> List[CartLineItem]:
        return list(self._lines)

    def get(self, line_id: str) -> Optional[CartLineItem]:
        for line in self._lines:
            if line.line_id == line_id:
                return line
        return None

    def pool_for(self, product_id: str) -> Optional[int]:
        return self._pools.get(product_id)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def total_price_cents(self) -> int:
        return sum(line.unit_price_cents * line.quantity for line in self._lines)

    def checkout_items(self) -> list:
        return [(line.variant_id, line.quantity) for line in self._lines]

    def to_dict(self) -> dict:
        return {
            "items": [line.to_dict() for line in self._lines],
            "total_items": self.total_items,
            "total_price_cents": self.total_price_cents,
        }

    # ---------- mutations ----------
    def _limit_for(self, line: CartLineItem) -> Optional[int]:
        others = base_unit_usage(self._lines, line.product_id, exclude=line.line_id)
        return max_quantity(self._pools.get(line.product_id), others, line.base_units)

    def _recalculate(self, product_id: str):
        for line in self._lines:
            if line.product_id == product_id:
                line.max_quantity = self._limit_for(line)

    def _fit_to_pool(self, product_id: str):
        """Clamp a product's lines in cart order after its pool shrank."""
        pool = self._pools.get(product_id)
        if pool is None:
            return
        kept, used = [], 0
        for line in self._lines:
            if line.product_id != product_id:
                kept.append(line)
                continue
            limit = max_quantity(pool, used, line.base_units)
            if line.quantity > limit:
                log.info(f"Clamped {line.line_id} to {limit} after pool refresh ({pool} base units)")
                line.quantity = limit
            if line.quantity <= 0:
                continue
            used += line.quantity * line.base_units
            kept.append(line)
        self._lines = kept

    def add_item(self, item: CartLineItem, total_base_units=KEEP) -> Optional[CartLineItem]:
        """Add ``item.quantity`` of a variant, clamped to what the pool allows.

        ``total_base_units`` refreshes the product pool; ``None`` marks it
        unlimited and leaving it out keeps the last known pool.
        """
        if item.quantity < 1:
            raise ValidationError("quantity must be at least 1")
        if total_base_units is None:
            self._pools.pop(item.product_id, None)
        elif total_base_units is not KEEP:
            self._pools[item.product_id] = max(0, int(total_base_units))
            self._fit_to_pool(item.product_id)

        existing = self.get(item.line_id)
        if existing:
            wanted = existing.quantity + item.quantity
            existing.quantity = clamp(wanted, self._limit_for(existing))
            if existing.quantity < wanted:
                log.info(f"Clamped {existing.line_id} to {existing.quantity} (asked {wanted})")
            if existing.quantity <= 0:
                self._lines.remove(existing)
                existing = None
            line = existing
        else:
            line = replace(item)
            line.quantity = clamp(item.quantity, self._limit_for(line))
            if line.quantity > 0:
                self._lines.append(line)
            else:
                log.info(f"{line.line_id} not added: no stock left for this size")
                line = None

        self._recalculate(item.product_id)
        self.save()
        return line

    def update_quantity(self, line_id: str, quantity: int) -> Optional[CartLineItem]:
        if quantity <= 0:
            self.remove_item(line_id)
            return None
        line = self.get(line_id)
        if not line:
            return None
        actual = clamp(quantity, self._limit_for(line))
        if actual <= 0:
            self.remove_item(line_id)
            return None
        line.quantity = actual
        self._recalculate(line.product_id)
        self.save()
        return line

    def remove_item(self, line_id: str):
        line = self.get(line_id)
        if line:
            self._lines.remove(line)
            self._recalculate(line.product_id)
        self.save()

    def clear(self):
        self._lines, self._pools = [], {}
        self.storage.clear()

    # ---------- validation ----------
    def validate(self, products: Iterable[ProductSnapshot]) -> ValidationReport:
        """Reconcile saved lines against fresh inventory; see ``validate_cart``."""
        by_id = {}
        for p in products:
            by_id[p.product_id] = p
            for alt in p.alt_ids or ():
                by_id.setdefault(alt, p)

        report = ValidationReport()

        working = []
        for line in self._lines:
            product = by_id.get(line.product_id)
            if (not product or not product.inventory.available
                    or line.variant_id not in set(product.variant_ids or ())):
                report.removed.append(line.label)
                continue
            working.append(line)

        # product ids in the cart may be CMS ids; pools are keyed by cart ids
        for line in working:
            pool = by_id[line.product_id].inventory.total_base_units
            if pool is None:
                self._pools.pop(line.product_id, None)
            else:
                self._pools[line.product_id] = pool

        # earlier lines keep their claim on the pool; later ones get what is left
        kept = []
        for line in working:
            product = by_id[line.product_id]
            if not line.image_url and product.image_url:
                line.image_url = product.image_url
            if self._pools.get(line.product_id) is None:
                kept.append(line)
                continue
            others = base_unit_usage(kept, line.product_id)
            limit = max_quantity(self._pools[line.product_id], others, line.base_units)
            if line.quantity > limit:
                if limit == 0:
                    report.removed.append(line.label)
                    continue
                report.adjusted.append(Adjustment(line.label, line.quantity, limit))
                line.quantity = limit
            kept.append(line)

        self._lines = kept
        for product_id in {line.product_id for line in kept}:
            self._recalculate(product_id)
        self.save()

        if report.changed:
            log.info(f"Cart validated: removed={report.removed} adjusted={[a.to_dict() for a in report.adjusted]}")
            if self.notifier:
                for n in report.notifications():
                    self.notifier(n["level"], n["message"], n["description"])
        return report


def validate_cart(store: CartStore, products: Iterable[ProductSnapshot]) -> ValidationReport:
    """Drop stale lines and clamp over-limit quantities against a fresh snapshot.

    A line is removed when its product is missing or unavailable, when its
    variant no longer exists, or when no base units remain for it. A line
    whose quantity exceeds the recomputed maximum is clamped down and
    reported as adjusted. Running it twice with the same snapshot changes
    nothing the second time.
    """
    return store.validate(products)
